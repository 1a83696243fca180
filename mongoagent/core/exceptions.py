"""
Error taxonomy for replica set topology actions.

Every failure an action can end with is an ``ActionError`` carrying a
machine-readable kind and a human-readable message. Only ``Unreachable``
and ``Conflict`` errors are transient and retried by the action manager.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ActionErrorKind(str, Enum):
    """Classified reasons an action did not complete."""
    UNREACHABLE = "Unreachable"
    NOT_INITIALIZED = "NotInitialized"
    CONFLICT = "Conflict"
    REJECTED = "Rejected"
    INVALID = "Invalid"
    BUSY = "Busy"
    CANCELLED = "Cancelled"
    CONFLICT_EXHAUSTED = "ConflictExhausted"
    UNSUPPORTED = "Unsupported"


class ActionError(Exception):
    """Base exception for all action failures."""

    kind: ActionErrorKind = ActionErrorKind.INVALID
    transient: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        transient: Optional[bool] = None,
    ):
        self.message = message
        self.details = details or {}
        if transient is not None:
            self.transient = transient
        super().__init__(self.message)

    def to_error(self) -> Dict[str, str]:
        """Error document reported with terminal action states."""
        return {"kind": self.kind.value, "message": self.message}


class UnreachableError(ActionError):
    """The local database could not be reached or timed out."""
    kind = ActionErrorKind.UNREACHABLE
    transient = True


class NotInitializedError(ActionError):
    """The node has no replica set configuration yet."""
    kind = ActionErrorKind.NOT_INITIALIZED


class ConflictError(ActionError):
    """Another writer changed the configuration between read and apply."""
    kind = ActionErrorKind.CONFLICT
    transient = True


class RejectedError(ActionError):
    """The database refused the configuration for a structural reason."""
    kind = ActionErrorKind.REJECTED


class InvalidActionError(ActionError):
    """Caller input does not match the current state of the replica set."""
    kind = ActionErrorKind.INVALID


class BusyError(ActionError):
    """Another action is already running."""
    kind = ActionErrorKind.BUSY


class ActionCancelledError(ActionError):
    """The caller cancelled the action."""
    kind = ActionErrorKind.CANCELLED

    def __init__(self, message: str = "action cancelled by caller", **kwargs: Any):
        super().__init__(message, **kwargs)


class ConflictExhaustedError(ActionError):
    """Retries were used up on repeated conflicts."""
    kind = ActionErrorKind.CONFLICT_EXHAUSTED


class UnsupportedActionError(ActionError):
    """The action kind is not handled in the configured deployment mode."""
    kind = ActionErrorKind.UNSUPPORTED


__all__ = [
    "ActionErrorKind",
    "ActionError",
    "UnreachableError",
    "NotInitializedError",
    "ConflictError",
    "RejectedError",
    "InvalidActionError",
    "BusyError",
    "ActionCancelledError",
    "ConflictExhaustedError",
    "UnsupportedActionError",
]
