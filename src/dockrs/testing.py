"""
Test doubles: an in-memory engine backend and a scripted terminal input

Used by the test-suite to exercise the resolver, batch executor, streamer
and selector without a daemon or a TTY.
"""

import asyncio
import time
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, AsyncIterator, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

from prompt_toolkit.input import PipeInput, create_pipe_input
from prompt_toolkit.output import DummyOutput

from .core.engine import EngineClient, Filters
from .core.errors import EngineError, NotFound
from .core.models import ResourceDescriptor, ResourceHandle, ResourceKind, StreamEvent
from .utils.selector import Selector

StreamItem = Union[str, bytes, Dict[str, Any], EngineError]


class FakeEngineClient(EngineClient):
    """Engine client answering from pre-programmed state.

    * ``add`` registers resources; ``stop`` and ``remove`` replace them with
      fresh descriptors, never mutating handed-out ones.
    * ``fail`` programs an error for an operation, optionally for one id.
    * ``set_stream`` scripts the items of a log/stats stream; with
      ``follow`` the stream stays open after its items until cancelled.
    * ``calls``, ``max_in_flight`` and ``open_streams`` / ``closed_streams``
      record what happened.
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.resources: Dict[ResourceKind, Dict[str, ResourceDescriptor]] = {k: {} for k in ResourceKind}
        self.errors: Dict[Tuple[str, Optional[str]], EngineError] = {}
        self.streams: Dict[Tuple[str, str], List[StreamItem]] = {}
        self.events: List[Dict[str, Any]] = []
        self.calls: List[Tuple[str, Optional[ResourceHandle]]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.open_streams: Set[Tuple[str, ResourceHandle]] = set()
        self.closed_streams: List[Tuple[str, ResourceHandle]] = []
        self.closed = False

    # -- programming ---------------------------------------------------

    def add(self, kind: ResourceKind, resource_id: str, name: str = "", status: str = "",
            **details: str) -> ResourceDescriptor:
        names = (name,) if name else ()
        descriptor = ResourceDescriptor(
            handle=ResourceHandle(kind, resource_id, name or resource_id[:12]),
            names=names,
            status=status or ("running" if kind == ResourceKind.CONTAINER else ""),
            details=dict(details),
            attrs={"Id": resource_id, "Name": name},
        )
        self.resources[kind][resource_id] = descriptor
        return descriptor

    def fail(self, operation: str, error: EngineError, resource_id: Optional[str] = None) -> None:
        self.errors[(operation, resource_id)] = error

    def set_stream(self, operation: str, resource_id: str, items: Iterable[StreamItem]) -> None:
        self.streams[(operation, resource_id)] = list(items)

    def handle(self, kind: ResourceKind, resource_id: str) -> ResourceHandle:
        return self.resources[kind][resource_id].handle

    # -- helpers -------------------------------------------------------

    async def _enter(self, operation: str, handle: Optional[ResourceHandle] = None) -> None:
        self.calls.append((operation, handle))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1

        resource_id = handle.id if handle is not None else None
        error = self.errors.get((operation, resource_id)) or self.errors.get((operation, None))
        if error is not None:
            raise error

    def _lookup(self, handle: ResourceHandle) -> ResourceDescriptor:
        try:
            return self.resources[handle.kind][handle.id]
        except KeyError:
            raise NotFound(f"no such {handle.kind.value}: {handle.id}") from None

    def called(self, operation: str) -> List[ResourceHandle]:
        return [h for op, h in self.calls if op == operation]

    # -- EngineClient --------------------------------------------------

    async def ping(self) -> None:
        await self._enter("ping")

    async def version(self) -> Dict[str, Any]:
        await self._enter("version")
        return {"Version": "24.0.0-fake", "ApiVersion": "1.43", "Os": "linux", "Arch": "amd64"}

    async def list(self, kind: ResourceKind, filters: Optional[Filters] = None,
                   all: bool = True, size: bool = False) -> List[ResourceDescriptor]:
        await self._enter("list")
        rows = list(self.resources[kind].values())
        if kind == ResourceKind.CONTAINER and not all:
            rows = [r for r in rows if r.running]
        for key, values in (filters or {}).items():
            if key == "status":
                rows = [r for r in rows if r.status in values]
            elif key == "name":
                rows = [r for r in rows if any(v in n for v in values for n in r.names)]
        return rows

    async def inspect(self, handle: ResourceHandle) -> ResourceDescriptor:
        await self._enter("inspect", handle)
        return self._lookup(handle)

    async def stop(self, handle: ResourceHandle, timeout: Optional[int] = None) -> None:
        await self._enter("stop", handle)
        current = self._lookup(handle)
        self.resources[handle.kind][handle.id] = replace(current, status="exited")

    async def remove(self, handle: ResourceHandle, force: bool = False) -> None:
        await self._enter("remove", handle)
        self._lookup(handle)
        del self.resources[handle.kind][handle.id]

    async def _stream(self, operation: str, handle: ResourceHandle, follow: bool) -> AsyncIterator[StreamEvent]:
        await self._enter(operation, handle)
        key = (operation, handle)
        self.open_streams.add(key)
        try:
            sequence = 0
            for item in self.streams.get((operation, handle.id), []):
                await asyncio.sleep(0)
                if isinstance(item, EngineError):
                    raise item
                sequence += 1
                yield StreamEvent(source=handle, sequence=sequence, payload=item, timestamp=time.time())
            if follow:
                await asyncio.Event().wait()
        finally:
            self.open_streams.discard(key)
            self.closed_streams.append(key)

    def stream_logs(self, handle: ResourceHandle, follow: bool = False,
                    tail: str = "all") -> AsyncIterator[StreamEvent]:
        return self._stream("logs", handle, follow)

    def stream_stats(self, handle: ResourceHandle, follow: bool = True) -> AsyncIterator[StreamEvent]:
        return self._stream("stats", handle, follow)

    async def stream_events(self, filters: Optional[Filters] = None) -> AsyncIterator[StreamEvent]:
        await self._enter("events")
        key = ("events", None)
        self.open_streams.add(key)
        try:
            for sequence, event in enumerate(self.events, start=1):
                await asyncio.sleep(0)
                actor = event.get("Actor") or {}
                kind = ResourceKind(event.get("Type", "container"))
                source = ResourceHandle(kind, actor.get("ID", ""), (actor.get("Attributes") or {}).get("name", ""))
                yield StreamEvent(source=source, sequence=sequence, payload=event)
            await asyncio.Event().wait()
        finally:
            self.open_streams.discard(key)
            self.closed_streams.append(key)

    async def run(self, image: str, name: Optional[str] = None, network: Optional[str] = None,
                  volumes: Sequence[str] = (), remove: bool = False) -> AsyncIterator[StreamEvent]:
        await self._enter("run")
        descriptor = self.add(ResourceKind.CONTAINER, f"run{len(self.calls):061d}", name or "", image=image,
                              network=network or "")
        try:
            async for event in self._stream("logs", descriptor.handle, follow=False):
                yield event
        finally:
            if remove:
                del self.resources[ResourceKind.CONTAINER][descriptor.handle.id]

    async def close(self) -> None:
        self.closed = True


class Key:
    """Byte sequences a terminal sends for the keys the selector binds"""

    UP = "\x1b[A"
    DOWN = "\x1b[B"
    HOME = "\x1b[H"
    END = "\x1b[F"
    PAGE_UP = "\x1b[5~"
    PAGE_DOWN = "\x1b[6~"
    ENTER = "\r"
    TAB = "\t"
    SPACE = " "
    ESCAPE = "\x1b"
    CTRL_C = "\x03"
    CTRL_D = "\x04"


class ScriptedTerminal:
    """Pipe-backed prompt_toolkit input fed with scripted keys.

    ``mode`` is "cooked" outside the selector's raw mode and "raw" inside;
    ``raw_entries`` and ``restores`` count the transitions.
    """

    def __init__(self, pipe: PipeInput):
        self.pipe = pipe
        self.mode = "cooked"
        self.raw_entries = 0
        self.restores = 0
        pipe_raw_mode = pipe.raw_mode

        @contextmanager
        def raw_mode() -> Iterator[None]:
            self.mode = "raw"
            self.raw_entries += 1
            try:
                with pipe_raw_mode():
                    yield
            finally:
                self.mode = "cooked"
                self.restores += 1

        pipe.raw_mode = raw_mode

    def send(self, *keys: str) -> None:
        for key in keys:
            self.pipe.send_text(key)

    def selector(self, title: str = "Pick", height: int = 5) -> Selector:
        return Selector(title=title, height=height, input=self.pipe, output=DummyOutput())


@contextmanager
def scripted_terminal(*keys: str) -> Iterator[ScriptedTerminal]:
    with create_pipe_input() as pipe:
        terminal = ScriptedTerminal(pipe)
        terminal.send(*keys)
        yield terminal
