"""
Error taxonomy shared by every engine backend and the core operations
"""

from enum import Enum
from typing import Sequence


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    CONFLICT = "conflict"
    DAEMON_UNREACHABLE = "daemon_unreachable"
    PERMISSION_DENIED = "permission_denied"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class EngineError(Exception):
    """Base class for failures reported by an engine backend or the core"""

    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind.value.replace("_", " "))
        self.message = message or self.kind.value.replace("_", " ")


class NotFound(EngineError):
    kind = ErrorKind.NOT_FOUND


class Ambiguous(EngineError):
    """More than one resource matched a token that needs a single target"""

    kind = ErrorKind.AMBIGUOUS

    def __init__(self, token: str, candidates: Sequence = ()):
        self.token = token
        self.candidates = list(candidates)
        labels = ", ".join(c.handle.short_id for c in self.candidates[:5])
        if len(self.candidates) > 5:
            labels += ", ..."
        super().__init__(f"'{token}' matches {len(self.candidates)} resources: {labels}")


class Conflict(EngineError):
    kind = ErrorKind.CONFLICT


class DaemonUnreachable(EngineError):
    kind = ErrorKind.DAEMON_UNREACHABLE


class PermissionDenied(EngineError):
    kind = ErrorKind.PERMISSION_DENIED


class Cancelled(EngineError):
    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "cancelled by operator"):
        super().__init__(message)


class Unknown(EngineError):
    kind = ErrorKind.UNKNOWN

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(detail or "unknown engine error")


class EmptyBatch(ValueError):
    """A batch was submitted without any handles"""
