"""
Action State Machine for the agent.

This module implements the strict lifecycle of a single topology action.
Terminal states are immutable once reached.

States:
- NEW: Action received, not yet holding the single-flight slot
- RUNNING: Read, plan and apply cycles in progress
- DONE: Requested topology is in place (no-op or applied)
- FAILED: Action ended with a classified error

Usage:
    >>> from mongoagent.core.state_machine import ActionState, ActionStateMachine
    >>>
    >>> ActionStateMachine.can_transition(ActionState.NEW, ActionState.RUNNING)
    True
    >>> ActionStateMachine.can_transition(ActionState.DONE, ActionState.RUNNING)
    False
"""

from enum import Enum
from typing import Dict, Optional, Set

import structlog

logger = structlog.get_logger(__name__)


class ActionState(str, Enum):
    """Action lifecycle states"""
    NEW = "New"
    RUNNING = "Running"
    DONE = "Done"
    FAILED = "Failed"


class InvalidTransitionError(ValueError):
    """Raised when an action is moved along a transition that does not exist."""


class ActionStateMachine:
    """
    State machine for action lifecycle management.

    Enforces strict state transitions so a terminal outcome can never be
    overwritten by a late retry or cancellation.
    """

    # Define allowed state transitions
    TRANSITIONS: Dict[ActionState, Set[ActionState]] = {
        ActionState.NEW: {
            ActionState.RUNNING,  # Single-flight slot acquired
        },
        ActionState.RUNNING: {
            ActionState.DONE,     # No-op or applied
            ActionState.FAILED,   # Classified failure
        },
        ActionState.DONE: set(),    # Terminal state, no transitions
        ActionState.FAILED: set(),  # Terminal state, no transitions
    }

    TERMINAL_STATES: Set[ActionState] = {ActionState.DONE, ActionState.FAILED}

    @classmethod
    def can_transition(
        cls,
        from_state: ActionState,
        to_state: ActionState
    ) -> bool:
        """
        Check if state transition is valid.

        Args:
            from_state: Current action state
            to_state: Target state

        Returns:
            True if transition is allowed, False otherwise
        """
        allowed_states = cls.TRANSITIONS.get(from_state, set())
        return to_state in allowed_states

    @classmethod
    def is_terminal(cls, state: ActionState) -> bool:
        return state in cls.TERMINAL_STATES

    @classmethod
    def validate_transition(
        cls,
        from_state: ActionState,
        to_state: ActionState,
        action_id: Optional[str] = None
    ) -> None:
        """
        Validate state transition and raise exception if invalid.

        Args:
            from_state: Current action state
            to_state: Target state
            action_id: Optional action ID for logging

        Raises:
            InvalidTransitionError: If transition is not allowed

        Example:
            >>> ActionStateMachine.validate_transition(
            ...     ActionState.DONE,
            ...     ActionState.FAILED
            ... )
            Traceback (most recent call last):
                ...
            InvalidTransitionError: Invalid state transition from Done to Failed
        """
        if not cls.can_transition(from_state, to_state):
            error_msg = (
                f"Invalid state transition from {from_state.value} "
                f"to {to_state.value}"
            )
            if action_id:
                error_msg += f" for action {action_id}"

            logger.error(
                "invalid_state_transition",
                action_id=action_id,
                from_state=from_state.value,
                to_state=to_state.value,
                allowed_states=[s.value for s in cls.TRANSITIONS.get(from_state, set())]
            )
            raise InvalidTransitionError(error_msg)

        logger.debug(
            "state_transition_validated",
            action_id=action_id,
            from_state=from_state.value,
            to_state=to_state.value
        )
