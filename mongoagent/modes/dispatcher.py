"""
Mode Dispatcher.

Maps an action kind to the handler of the agent's deployment mode. Each mode
owns a fixed set of handlers selected by an explicit match on the action
kind; new modes add a handler set without touching the action manager.
"""
from abc import ABC, abstractmethod
from typing import Optional

from mongoagent.config.logging import get_logger
from mongoagent.config.settings import DeploymentMode
from mongoagent.core.exceptions import UnsupportedActionError
from mongoagent.models.action import ActionKind
from mongoagent.replicaset.handlers import ActionHandler, ClusterAddHandler, ClusterInitHandler
from mongoagent.replicaset.planner import TopologyPlanner

logger = get_logger(__name__)


class ModeHandlers(ABC):
    """Handler set of one deployment mode."""

    mode: DeploymentMode

    @abstractmethod
    def handler_for(self, kind: ActionKind) -> Optional[ActionHandler]:
        """Return the handler for a kind, or None if the mode does not support it."""


class ReplicaSetHandlers(ModeHandlers):
    """Actions available to nodes of a replica set."""

    mode = DeploymentMode.REPLICA_SET

    def __init__(self, planner: TopologyPlanner):
        self.init = ClusterInitHandler(planner)
        self.add = ClusterAddHandler(planner)

    def handler_for(self, kind: ActionKind) -> Optional[ActionHandler]:
        if kind == ActionKind.CLUSTER_INIT:
            return self.init
        if kind == ActionKind.CLUSTER_ADD:
            return self.add
        return None


def handlers_for_mode(mode: DeploymentMode, planner: TopologyPlanner) -> ModeHandlers:
    if mode == DeploymentMode.REPLICA_SET:
        return ReplicaSetHandlers(planner)
    raise ValueError(f"Unsupported deployment mode: {mode}")


class ModeDispatcher:
    """
    Select the handler for incoming actions.

    Example:
        >>> dispatcher = ModeDispatcher(DeploymentMode.REPLICA_SET, planner)
        >>> dispatcher.dispatch("cluster.add").kind
        <ActionKind.CLUSTER_ADD: 'cluster.add'>
    """

    def __init__(self, mode: DeploymentMode, planner: TopologyPlanner):
        self.mode = mode
        self.handlers = handlers_for_mode(mode, planner)

    def dispatch(self, kind: str) -> ActionHandler:
        """
        Find the handler for an action kind.

        Raises:
            UnsupportedActionError: If the kind is unknown to the configured mode
        """
        try:
            action_kind = ActionKind(kind)
        except ValueError:
            action_kind = None

        handler = self.handlers.handler_for(action_kind) if action_kind else None
        if handler is None:
            logger.warning("action_kind_unsupported", kind=kind, mode=self.mode.value)
            raise UnsupportedActionError(
                f"action kind '{kind}' is not supported in {self.mode.value} mode",
                details={
                    "kind": kind,
                    "mode": self.mode.value,
                    "supported": [k.value for k in ActionKind if self.handlers.handler_for(k)],
                },
            )
        return handler
