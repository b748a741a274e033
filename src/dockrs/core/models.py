"""
Data model for daemon resources
Handles, descriptors, resolver candidates, batch outcomes and stream events
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from .errors import EngineError, ErrorKind

T = TypeVar("T")


class ResourceKind(str, Enum):
    CONTAINER = "container"
    IMAGE = "image"
    VOLUME = "volume"
    NETWORK = "network"

    @property
    def plural(self) -> str:
        return f"{self.value}s"


def short_id(resource_id: str) -> str:
    """Strip the digest algorithm prefix and cut to the usual 12 characters"""
    if ":" in resource_id and resource_id.startswith("sha256:"):
        resource_id = resource_id.split(":", 1)[1]
    return resource_id[:12]


@dataclass(frozen=True)
class ResourceHandle:
    """Immutable reference to one daemon resource.

    Identity is (kind, id); the display name is only a label and does not
    take part in equality or hashing.
    """

    kind: ResourceKind
    id: str
    display_name: str = field(default="", compare=False)

    @property
    def short_id(self) -> str:
        if self.kind == ResourceKind.VOLUME:
            return self.id
        return short_id(self.id)

    @property
    def label(self) -> str:
        return self.display_name or self.short_id

    def __str__(self) -> str:
        return f"{self.kind.value} {self.label}"


@dataclass(frozen=True)
class ResourceDescriptor:
    """Read-only snapshot of a resource, as returned by list or inspect.

    ``details`` holds the kind-specific columns (image and command for a
    container, tags for an image, driver and mountpoint for a volume...)
    in display order; ``attrs`` is the raw daemon payload.
    """

    handle: ResourceHandle
    names: Tuple[str, ...] = ()
    status: str = ""
    created: Optional[datetime] = None
    size: Optional[int] = None
    details: Dict[str, str] = field(default_factory=dict, compare=False)
    attrs: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def kind(self) -> ResourceKind:
        return self.handle.kind

    @property
    def name(self) -> str:
        return self.names[0] if self.names else ""

    @property
    def running(self) -> bool:
        return self.status == "running"

    def label(self) -> str:
        parts = [self.handle.short_id]
        if self.name and self.name != self.handle.short_id:
            parts.append(self.name)
        if self.status:
            parts.append(self.status)
        if self.kind == ResourceKind.CONTAINER and self.details.get("image"):
            parts.append(self.details["image"])
        return "  ".join(parts)


@dataclass(frozen=True)
class Candidate:
    handle: ResourceHandle
    label: str
    matched: bool = False


@dataclass(frozen=True)
class BatchOutcome(Generic[T]):
    """Result of one handle's operation in a batch: a value or an error"""

    handle: ResourceHandle
    value: Optional[T] = None
    error: Optional[EngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @classmethod
    def success(cls, handle: ResourceHandle, value: Optional[T] = None) -> "BatchOutcome[T]":
        return cls(handle=handle, value=value)

    @classmethod
    def failure(cls, handle: ResourceHandle, error: EngineError) -> "BatchOutcome[T]":
        return cls(handle=handle, error=error)


def sort_outcomes(outcomes: Iterable[BatchOutcome], handles: Iterable[ResourceHandle]) -> List[BatchOutcome]:
    """Order outcomes by the position of their handle in ``handles``"""
    order = {}
    for position, handle in enumerate(handles):
        order.setdefault(handle, position)
    return sorted(outcomes, key=lambda o: order.get(o.handle, len(order)))


@dataclass(frozen=True)
class StreamEvent:
    """One item read from a long-lived stream.

    ``sequence`` grows monotonically per source. A terminal item for a
    source whose transport failed carries ``error`` and an empty payload.
    """

    source: ResourceHandle
    sequence: int
    payload: Any = ""
    timestamp: float = field(default_factory=time.time)
    error: Optional[EngineError] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def text(self) -> str:
        if isinstance(self.payload, bytes):
            return self.payload.decode("utf-8", errors="replace")
        return str(self.payload)
