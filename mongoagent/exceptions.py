"""
HTTP facing exceptions for the agent API.

Action outcomes are reported through the action record; these exceptions
cover requests the API itself refuses.
"""
from typing import Any, Dict, Optional

from fastapi import status

from mongoagent.core.exceptions import ActionError, ActionErrorKind


class AgentException(Exception):
    """
    Base exception for all agent API errors.

    All custom exceptions should inherit from this base class.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        kind: str = "Internal",
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.kind = kind
        super().__init__(self.message)

    @classmethod
    def from_action_error(cls, error: ActionError) -> "AgentException":
        """Wrap a submission-time action error (Busy, Unsupported)."""
        status_code = ACTION_ERROR_STATUS.get(error.kind, status.HTTP_400_BAD_REQUEST)
        return cls(
            message=error.message,
            status_code=status_code,
            details=error.details,
            kind=error.kind.value,
        )


class ActionNotFoundError(AgentException):
    """Raised when no record exists for the requested action."""

    def __init__(self, action_id: str):
        super().__init__(
            message=f"Action with ID '{action_id}' not found",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"action_id": action_id},
            kind="NotFound",
        )


class ActionNotCancellableError(AgentException):
    """Raised when cancelling an action that already reached a terminal state."""

    def __init__(self, action_id: str, state: str):
        super().__init__(
            message=f"Action '{action_id}' is {state} and can no longer be cancelled",
            status_code=status.HTTP_409_CONFLICT,
            details={"action_id": action_id, "state": state},
            kind="NotCancellable",
        )


class NodeInfoUnavailableError(AgentException):
    """Raised when node information cannot be gathered from MongoDB."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Node information unavailable: {message}",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            kind="Unavailable",
        )


ACTION_ERROR_STATUS = {
    ActionErrorKind.BUSY: status.HTTP_409_CONFLICT,
    ActionErrorKind.UNSUPPORTED: status.HTTP_400_BAD_REQUEST,
}


__all__ = [
    "AgentException",
    "ActionNotFoundError",
    "ActionNotCancellableError",
    "NodeInfoUnavailableError",
]
