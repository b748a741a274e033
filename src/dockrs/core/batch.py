"""
Batch execution
Runs one operation per handle on a bounded worker pool, collecting an
outcome for every handle without letting one failure stop the others
"""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

from ..utils.logger import get_logger
from .engine import EngineClient
from .errors import EmptyBatch, EngineError, Unknown
from .models import BatchOutcome, ResourceHandle, sort_outcomes

logger = get_logger("batch")

T = TypeVar("T")

Operation = Callable[[ResourceHandle], Awaitable[T]]
OutcomeCallback = Callable[[BatchOutcome], None]

DEFAULT_CONCURRENCY = 8


class BatchExecutor:
    """Apply an operation to many handles with at most ``concurrency`` in flight.

    Workers pull handles from a queue and push exactly one outcome each
    into a results queue; the collecting loop is the only reader. Extra
    handles wait in the queue rather than being rejected.
    """

    def __init__(self, client: EngineClient, concurrency: int = DEFAULT_CONCURRENCY,
                 on_outcome: Optional[OutcomeCallback] = None):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.client = client
        self.concurrency = concurrency
        self.on_outcome = on_outcome

    @staticmethod
    async def _attempt(handle: ResourceHandle, operation: Operation) -> BatchOutcome:
        try:
            value = await operation(handle)
        except EngineError as e:
            logger.debug("%s failed: %s", handle, e)
            return BatchOutcome.failure(handle, e)
        except Exception as e:
            logger.warning("Unexpected error on %s: %s", handle, e, exc_info=True)
            return BatchOutcome.failure(handle, Unknown(f"{type(e).__name__}: {e}"))
        return BatchOutcome.success(handle, value)

    async def _worker(self, pending: "asyncio.Queue[ResourceHandle]", results: "asyncio.Queue[BatchOutcome]",
                      operation: Operation, stopping: asyncio.Event) -> None:
        while True:
            try:
                handle = pending.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                outcome = await self._attempt(handle, operation)
            except asyncio.CancelledError:
                # Workers are only cancelled by run() once it sets stopping
                if stopping.is_set():
                    raise
                logger.warning("Operation on %s was cancelled", handle)
                outcome = BatchOutcome.failure(handle, Unknown("operation was cancelled"))
            await results.put(outcome)

    async def run(self, handles: Iterable[ResourceHandle], operation: Operation) -> List[BatchOutcome]:
        """Run ``operation`` on every distinct handle.

        Returns one outcome per handle in completion order. Raises
        EmptyBatch for no handles, and the engine error when the daemon
        cannot be reached before anything starts.
        """
        unique = list(dict.fromkeys(handles))
        if not unique:
            raise EmptyBatch("no resources to operate on")

        await self.client.ping()

        pending: "asyncio.Queue[ResourceHandle]" = asyncio.Queue()
        for handle in unique:
            pending.put_nowait(handle)
        results: "asyncio.Queue[BatchOutcome]" = asyncio.Queue()

        workers = min(self.concurrency, len(unique))
        logger.debug("Running batch of %d with %d workers", len(unique), workers)
        stopping = asyncio.Event()
        tasks = [asyncio.create_task(self._worker(pending, results, operation, stopping)) for _ in range(workers)]

        outcomes: List[BatchOutcome] = []
        try:
            while len(outcomes) < len(unique):
                outcome = await results.get()
                outcomes.append(outcome)
                if self.on_outcome is not None:
                    self.on_outcome(outcome)
        finally:
            stopping.set()
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        failed = sum(1 for o in outcomes if not o.ok)
        logger.debug("Batch finished: %d ok, %d failed", len(outcomes) - failed, failed)
        return outcomes

    async def run_sorted(self, handles: Iterable[ResourceHandle], operation: Operation) -> List[BatchOutcome]:
        """Like run, but ordered by submission for stable display"""
        handles = list(handles)
        return sort_outcomes(await self.run(handles, operation), handles)
