"""
Single-flight guard for topology mutating actions.

This module implements the in-process slot that ensures at most one action
is running against the local database at any time.

Features:
- Non-blocking acquisition: a busy slot is reported immediately
- Ownership tracking for status and logging
- Scoped release that is safe on every exit path

Usage:
    >>> from mongoagent.core.single_flight import SingleFlight
    >>>
    >>> guard = SingleFlight()
    >>> handle = guard.try_acquire("act-123")
    >>> if handle is not None:
    ...     with handle:
    ...         # Perform the action
    ...         ...
"""

from datetime import datetime
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


class SlotHandle:
    """
    Ownership of the single-flight slot.

    Releasing is idempotent; using the handle as a context manager releases
    it when the block exits, whether normally or through an exception.
    """

    def __init__(self, guard: "SingleFlight", owner: str):
        self._guard = guard
        self.owner = owner
        self.acquired_at = datetime.utcnow()
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self._guard._release(self)

    def __enter__(self) -> "SlotHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class SingleFlight:
    """
    Guarded optional slot holding the running action.

    Acquisition and release never await, so on a single event loop the
    check-and-set is atomic with respect to other coroutines.
    """

    def __init__(self, name: str = "topology"):
        self.name = name
        self._holder: Optional[SlotHandle] = None

    def try_acquire(self, owner: str) -> Optional[SlotHandle]:
        """
        Acquire the slot for an owner.

        Args:
            owner: ID of the action acquiring the slot

        Returns:
            A handle if the slot was free, None if it is already held
        """
        if self._holder is not None:
            logger.warning(
                "single_flight_busy",
                guard=self.name,
                owner=owner,
                holder=self._holder.owner,
            )
            return None

        handle = SlotHandle(self, owner)
        self._holder = handle
        logger.info("single_flight_acquired", guard=self.name, owner=owner)
        return handle

    def _release(self, handle: SlotHandle) -> None:
        if self._holder is not handle:
            logger.error(
                "single_flight_release_wrong_owner",
                guard=self.name,
                owner=handle.owner,
                holder=self._holder.owner if self._holder else None,
            )
            return
        self._holder = None
        logger.info(
            "single_flight_released",
            guard=self.name,
            owner=handle.owner,
            held_seconds=(datetime.utcnow() - handle.acquired_at).total_seconds(),
        )

    @property
    def holder(self) -> Optional[str]:
        """ID of the action holding the slot, if any."""
        return self._holder.owner if self._holder else None

    def is_held(self) -> bool:
        return self._holder is not None

    def info(self) -> Optional[Dict[str, Any]]:
        """Information about the current holder, or None if free."""
        if self._holder is None:
            return None
        return {
            "owner": self._holder.owner,
            "acquired_at": self._holder.acquired_at.isoformat(),
        }
