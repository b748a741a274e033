"""
Engine client interface
The capability set every backend (real daemon or fake) provides to the core
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from .models import ResourceDescriptor, ResourceHandle, ResourceKind, StreamEvent

Filters = Mapping[str, Sequence[str]]


class EngineClient(ABC):
    """Asynchronous operations on daemon resources.

    Every method raises one of the :mod:`dockrs.core.errors` exceptions on
    failure. Streaming methods return async iterators that are not
    restartable: call again to reopen the stream.
    """

    @abstractmethod
    async def ping(self) -> None:
        """Fail with DaemonUnreachable unless the daemon answers"""

    @abstractmethod
    async def version(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def list(self, kind: ResourceKind, filters: Optional[Filters] = None,
                   all: bool = True, size: bool = False) -> List[ResourceDescriptor]:
        ...

    @abstractmethod
    async def inspect(self, handle: ResourceHandle) -> ResourceDescriptor:
        ...

    @abstractmethod
    async def stop(self, handle: ResourceHandle, timeout: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def remove(self, handle: ResourceHandle, force: bool = False) -> None:
        ...

    @abstractmethod
    def stream_logs(self, handle: ResourceHandle, follow: bool = False,
                    tail: str = "all") -> AsyncIterator[StreamEvent]:
        ...

    @abstractmethod
    def stream_events(self, filters: Optional[Filters] = None) -> AsyncIterator[StreamEvent]:
        ...

    @abstractmethod
    def stream_stats(self, handle: ResourceHandle, follow: bool = True) -> AsyncIterator[StreamEvent]:
        ...

    @abstractmethod
    def run(self, image: str, name: Optional[str] = None, network: Optional[str] = None,
            volumes: Sequence[str] = (), remove: bool = False) -> AsyncIterator[StreamEvent]:
        """Create and start a container, yielding its output until it exits"""

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "EngineClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
