"""
Log and event streaming
Merges several long-lived streams into one sequence with cooperative cancellation
"""

import asyncio
from typing import AsyncIterator, Callable, Dict, Iterable, Optional

from ..utils.logger import get_logger
from .engine import EngineClient
from .errors import EngineError, Unknown
from .models import ResourceHandle, StreamEvent

logger = get_logger("streamer")

StreamFactory = Callable[[ResourceHandle], AsyncIterator[StreamEvent]]


class _Finished:
    """Marker a producer leaves in the queue when its stream is done"""

    __slots__ = ("source",)

    def __init__(self, source: ResourceHandle):
        self.source = source


class StreamMerger:
    """Interleave events from one producer task per source.

    Producers only put into a single queue; the consuming generator is the
    only place that orders output. A transport error on one source becomes
    a terminal event for that source while the others keep going. Setting
    ``cancel`` (or closing the generator) closes every underlying stream.
    """

    def __init__(self, factory: StreamFactory, cancel: Optional[asyncio.Event] = None):
        self.factory = factory
        self.cancel = cancel or asyncio.Event()
        self.closed: Dict[ResourceHandle, bool] = {}

    async def _produce(self, source: ResourceHandle, queue: asyncio.Queue) -> None:
        last = 0
        stream = self.factory(source)
        self.closed[source] = False
        try:
            async for event in stream:
                last = event.sequence
                await queue.put(event)
        except EngineError as e:
            logger.debug("Stream for %s failed: %s", source, e)
            await queue.put(StreamEvent(source=source, sequence=last + 1, error=e))
        except Exception as e:
            logger.warning("Stream for %s failed unexpectedly: %s", source, e, exc_info=True)
            await queue.put(StreamEvent(source=source, sequence=last + 1, error=Unknown(f"{type(e).__name__}: {e}")))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
            self.closed[source] = True
        await queue.put(_Finished(source))

    async def merge(self, sources: Iterable[ResourceHandle]) -> AsyncIterator[StreamEvent]:
        sources = list(dict.fromkeys(sources))
        queue: asyncio.Queue = asyncio.Queue()
        producers = [asyncio.create_task(self._produce(s, queue)) for s in sources]
        cancelled = asyncio.create_task(self.cancel.wait())
        remaining = len(producers)
        getter = None
        logger.debug("Merging %d streams", remaining)

        try:
            while remaining:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({getter, cancelled}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    logger.debug("Stream merge cancelled with %d sources open", remaining)
                    break
                item = getter.result()
                if isinstance(item, _Finished):
                    remaining -= 1
                    continue
                yield item
        finally:
            pending = [t for t in [getter, cancelled, *producers] if t is not None]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)


def stream_logs(client: EngineClient, handles: Iterable[ResourceHandle], follow: bool = False,
                tail: str = "all", cancel: Optional[asyncio.Event] = None) -> AsyncIterator[StreamEvent]:
    """Merged logs of several containers"""
    merger = StreamMerger(lambda handle: client.stream_logs(handle, follow=follow, tail=tail), cancel)
    return merger.merge(handles)


def stream_stats(client: EngineClient, handles: Iterable[ResourceHandle], follow: bool = True,
                 cancel: Optional[asyncio.Event] = None) -> AsyncIterator[StreamEvent]:
    """Merged resource usage samples of several containers"""
    merger = StreamMerger(lambda handle: client.stream_stats(handle, follow=follow), cancel)
    return merger.merge(handles)


async def stream_events(client: EngineClient, filters=None,
                        cancel: Optional[asyncio.Event] = None) -> AsyncIterator[StreamEvent]:
    """Daemon events until the stream ends or ``cancel`` is set"""
    cancel = cancel or asyncio.Event()
    events = client.stream_events(filters)
    cancelled = asyncio.create_task(cancel.wait())
    getter = None
    try:
        while True:
            getter = asyncio.ensure_future(events.__anext__())
            done, _ = await asyncio.wait({getter, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                break
            try:
                event = getter.result()
            except StopAsyncIteration:
                break
            yield event
    finally:
        pending = [t for t in (getter, cancelled) if t is not None]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await events.aclose()
