"""
FileSystemGate error types.

Each exception carries the ErrorKind it maps to, so operation handlers can
turn any of them into a failed OperationResult without inspecting messages.
"""

from .models import ErrorKind


class GateError(Exception):
    """Base class for all FileSystemGate failures."""

    kind: ErrorKind = ErrorKind.IO_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInputError(GateError):
    """Missing or malformed argument."""
    kind = ErrorKind.INVALID_INPUT


class PathRejectedError(GateError):
    """Path escapes the allowed root or an archive entry escapes its destination."""
    kind = ErrorKind.PATH_REJECTED


class NotFoundError(GateError):
    """Target does not exist."""
    kind = ErrorKind.NOT_FOUND


class ConflictError(GateError):
    """Destination exists when it must not."""
    kind = ErrorKind.CONFLICT


class GateIOError(GateError):
    """Underlying file-system failure not covered by the other kinds."""
    kind = ErrorKind.IO_ERROR


class OperationCancelled(GateIOError):
    """Raised between archive entries when the caller asked to abort."""
