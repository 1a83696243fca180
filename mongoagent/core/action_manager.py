"""
Action Manager for the agent

This module drives topology actions through the action state machine while
holding the single-flight slot, so at most one configuration mutation is in
flight against the local database.

This is the main entry point for all topology actions from the API.

Features:
- Dispatches actions to the handler of the configured deployment mode
- Rejects submissions with Busy while another action is running
- Runs Read -> Plan -> Apply cycles with bounded exponential backoff
- Cooperative cancellation at retry boundaries
- Keeps recent records for status reporting (never for idempotence)

Usage:
    >>> manager = ActionManager(dispatcher, reader, applier, policy)
    >>>
    >>> record = await manager.submit(ActionRequest(
    ...     kind="cluster.add",
    ...     parameters={"host": "mongo-2:27017"},
    ...     correlation_id="orchestrator-42",
    ... ))
    >>> manager.get(record.id).state
    <ActionState.RUNNING: 'Running'>
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel

from mongoagent.core.exceptions import (
    ActionError,
    ActionCancelledError,
    BusyError,
    ConflictError,
    ConflictExhaustedError,
    InvalidActionError,
    RejectedError,
    UnreachableError,
)
from mongoagent.core.single_flight import SingleFlight, SlotHandle
from mongoagent.core.state_machine import ActionState, ActionStateMachine
from mongoagent.exceptions import ActionNotCancellableError, ActionNotFoundError
from mongoagent.models.action import ActionErrorInfo, ActionRecord, ActionRequest
from mongoagent.models.topology import Applied, Conflict, Invalid, NoOp, Rejected
from mongoagent.modes.dispatcher import ModeDispatcher
from mongoagent.replicaset.applier import ReconfigurationApplier
from mongoagent.replicaset.handlers import ActionHandler
from mongoagent.replicaset.planner import describe_plan
from mongoagent.replicaset.reader import TopologyReader
from mongoagent.services import metrics
from mongoagent.utils.retry import BackoffPolicy, wait_or_event

logger = structlog.get_logger(__name__)


class ActionManager:
    """
    Central manager for topology actions.

    Coordinates the mode dispatcher, topology reader, planner and applier
    under the single-flight guard.
    """

    def __init__(
        self,
        dispatcher: ModeDispatcher,
        reader: TopologyReader,
        applier: ReconfigurationApplier,
        policy: Optional[BackoffPolicy] = None,
        action_timeout: float = 300.0,
        history_limit: int = 100,
        guard: Optional[SingleFlight] = None,
    ):
        """Initialize action manager"""
        self.dispatcher = dispatcher
        self.reader = reader
        self.applier = applier
        self.policy = policy or BackoffPolicy()
        self.action_timeout = action_timeout
        self.history_limit = history_limit
        self.guard = guard or SingleFlight()
        self._records: Dict[str, ActionRecord] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancel_events: Dict[str, asyncio.Event] = {}

    async def submit(self, request: ActionRequest) -> ActionRecord:
        """
        Accept an action and start running it in the background.

        This method:
        1. Selects the handler for the action kind
        2. Acquires the single-flight slot (or rejects with Busy)
        3. Moves the action to Running and schedules its execution
        4. Returns the record for status tracking

        Raises:
            UnsupportedActionError: If the kind is unknown to the configured mode
            BusyError: If another action is already running
        """
        try:
            handler = self.dispatcher.dispatch(request.kind)
        except ActionError:
            metrics.action_rejected_total.labels(reason="unsupported").inc()
            raise

        record = ActionRecord(
            kind=handler.kind,
            parameters=request.parameters,
            correlation_id=request.correlation_id,
        )

        # No await between acquiring the slot and scheduling the task.
        handle = self.guard.try_acquire(record.id)
        if handle is None:
            metrics.action_rejected_total.labels(reason="busy").inc()
            logger.warning(
                "action_rejected_busy",
                kind=record.kind.value,
                correlation_id=record.correlation_id,
                running_action_id=self.guard.holder,
            )
            raise BusyError(
                f"action {self.guard.holder} is already running",
                details={"running_action_id": self.guard.holder},
            )

        self._transition(record, ActionState.RUNNING)
        record.started_at = datetime.utcnow()
        self._records[record.id] = record
        self._cancel_events[record.id] = asyncio.Event()
        self._tasks[record.id] = asyncio.create_task(
            self._run(record, handler, handle), name=f"action-{record.id}"
        )

        logger.info(
            "action_started",
            action_id=record.id,
            kind=record.kind.value,
            correlation_id=record.correlation_id,
        )
        return record

    def get(self, action_id: str) -> ActionRecord:
        """
        Get an action record.

        Raises:
            ActionNotFoundError: If no record exists for the action
        """
        record = self._records.get(action_id)
        if record is None:
            raise ActionNotFoundError(action_id)
        return record

    def list_actions(self) -> List[ActionRecord]:
        """Known action records, newest first."""
        return list(reversed(self._records.values()))

    @property
    def running(self) -> Optional[ActionRecord]:
        """The action holding the single-flight slot, if any."""
        holder = self.guard.holder
        return self._records.get(holder) if holder else None

    def cancel(self, action_id: str) -> ActionRecord:
        """
        Mark an action for cancellation.

        Cancellation is cooperative: it takes effect at the next retry
        boundary and never interrupts a configuration being applied.

        Raises:
            ActionNotFoundError: If no record exists for the action
            ActionNotCancellableError: If the action already reached a terminal state
        """
        record = self.get(action_id)
        if record.is_terminal():
            raise ActionNotCancellableError(action_id, record.state.value)

        record.cancel_requested = True
        self._cancel_events[action_id].set()
        logger.info("action_cancel_requested", action_id=action_id, kind=record.kind.value)
        return record

    async def wait(self, action_id: str) -> ActionRecord:
        """Wait for an action to reach a terminal state."""
        task = self._tasks.get(action_id)
        if task is not None:
            await asyncio.shield(task)
        return self.get(action_id)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Ask running actions to stop at their next boundary and wait for them."""
        tasks = list(self._tasks.values())
        if not tasks:
            return

        for event in self._cancel_events.values():
            event.set()
        logger.info("stopping_running_actions", count=len(tasks))

        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("running_actions_shutdown_timeout", cancelled=len(pending))

    async def _run(self, record: ActionRecord, handler: ActionHandler, handle: SlotHandle) -> None:
        with handle, structlog.contextvars.bound_contextvars(
            action_id=record.id, kind=record.kind.value
        ):
            metrics.action_running.set(1)
            try:
                reason = await self._execute(record, handler)
            except ActionError as e:
                self._finish(record, error=e)
            except asyncio.CancelledError:
                self._finish(record, error=ActionCancelledError("agent is shutting down"))
                raise
            except Exception as e:
                logger.error("action_unexpected_error", error=str(e), exc_info=True)
                self._finish(record, error=RejectedError(f"unexpected agent error: {e}"))
            else:
                self._finish(record, reason=reason)
            finally:
                metrics.action_running.set(0)
                self._tasks.pop(record.id, None)
                self._cancel_events.pop(record.id, None)
                self._collect_garbage()

    async def _execute(self, record: ActionRecord, handler: ActionHandler) -> str:
        """
        Run Read -> Plan -> Apply cycles until the action is done or fails.

        Only transient errors (Unreachable reads, ambiguous applies and
        conflicts) are retried; every retry starts again from a fresh read.
        """
        args = handler.parse_args(record.parameters)
        cancel = self._cancel_events[record.id]
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.action_timeout
        attempt = 0

        while True:
            if cancel.is_set():
                raise ActionCancelledError()
            if loop.time() >= deadline:
                raise UnreachableError(
                    f"action deadline exceeded after {self.action_timeout}s",
                    transient=False,
                )

            attempt += 1
            record.attempts = attempt
            try:
                return await self._attempt(handler, args, attempt)
            except ActionError as e:
                if not e.transient:
                    raise
                last_error = e

            if self.policy.exhausted(attempt):
                if isinstance(last_error, ConflictError):
                    raise ConflictExhaustedError(
                        f"gave up after {attempt} conflicting attempts: {last_error.message}",
                        details={"attempts": attempt},
                    )
                raise UnreachableError(
                    f"gave up after {attempt} attempts: {last_error.message}",
                    details={"attempts": attempt},
                    transient=False,
                )

            delay = self.policy.delay(attempt)
            metrics.action_retry_total.labels(
                kind=record.kind.value, reason=last_error.kind.value
            ).inc()
            logger.warning(
                "action_attempt_failed_retrying",
                attempt=attempt,
                max_attempts=self.policy.max_attempts,
                delay_seconds=delay,
                error_kind=last_error.kind.value,
                error=last_error.message,
            )
            if await wait_or_event(delay, cancel):
                raise ActionCancelledError()

    async def _attempt(self, handler: ActionHandler, args: BaseModel, attempt: int) -> str:
        current = await self.reader.read()
        plan = handler.plan(current, args)
        logger.info("action_planned", attempt=attempt, **describe_plan(plan))

        if isinstance(plan, NoOp):
            return plan.reason
        if isinstance(plan, Invalid):
            raise InvalidActionError(plan.reason)

        outcome = await self.applier.apply(plan)
        if isinstance(outcome, Applied):
            return f"applied replica set configuration version {outcome.version}"
        if isinstance(outcome, Conflict):
            raise ConflictError(outcome.reason, details={"code": outcome.code})
        if isinstance(outcome, Rejected):
            raise RejectedError(outcome.reason, details={"code": outcome.code})
        raise TypeError(f"unexpected apply outcome {outcome!r}")

    def _transition(self, record: ActionRecord, to_state: ActionState) -> None:
        ActionStateMachine.validate_transition(record.state, to_state, record.id)
        record.state = to_state

    def _finish(
        self,
        record: ActionRecord,
        reason: Optional[str] = None,
        error: Optional[ActionError] = None,
    ) -> None:
        if error is None:
            self._transition(record, ActionState.DONE)
        else:
            self._transition(record, ActionState.FAILED)
            record.error = ActionErrorInfo(**error.to_error())
        record.finished_at = datetime.utcnow()

        error_kind = error.kind.value if error else ""
        metrics.action_total.labels(
            kind=record.kind.value, state=record.state.value, error_kind=error_kind
        ).inc()
        metrics.action_duration_seconds.labels(
            kind=record.kind.value, state=record.state.value
        ).observe(record.get_duration_seconds() or 0.0)

        if error is None:
            logger.info(
                "action_done",
                attempts=record.attempts,
                reason=reason,
                duration_seconds=record.get_duration_seconds(),
            )
        else:
            logger.error(
                "action_failed",
                attempts=record.attempts,
                error_kind=error_kind,
                error=error.message,
                details=error.details,
                duration_seconds=record.get_duration_seconds(),
            )

    def _collect_garbage(self) -> None:
        """Forget the oldest terminal records beyond the history limit."""
        terminal = [r.id for r in self._records.values() if r.is_terminal()]
        excess = len(terminal) - self.history_limit
        for action_id in terminal[:max(excess, 0)]:
            del self._records[action_id]
        if excess > 0:
            logger.debug("action_records_collected", count=excess)
