"""
Replica set action handlers.

A handler turns the opaque parameters of an action into typed arguments and
plans the change against the current topology. Reading and applying are
shared by all handlers and driven by the action manager.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict

from pydantic import BaseModel, ValidationError

from mongoagent.core.exceptions import InvalidActionError, NotInitializedError
from mongoagent.models.action import ActionKind, AddArgs, InitArgs
from mongoagent.models.topology import NotInitialized, Plan, Topology
from mongoagent.replicaset.planner import TopologyPlanner


class ActionHandler(ABC):
    """Parse and plan one kind of action."""

    kind: ActionKind
    args_model: type = BaseModel

    def __init__(self, planner: TopologyPlanner):
        self.planner = planner

    def parse_args(self, parameters: Dict[str, Any]) -> BaseModel:
        """
        Validate action parameters.

        Raises:
            InvalidActionError: If the parameters do not match the action arguments
        """
        try:
            return self.args_model.model_validate(parameters or {})
        except ValidationError as e:
            raise InvalidActionError(
                f"arguments provided to the {self.kind.value} action are not valid",
                details={
                    "errors": [
                        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
                        for err in e.errors()
                    ]
                },
            ) from e

    @abstractmethod
    def plan(self, current: Topology, args: BaseModel) -> Plan:
        """Plan the change against the current topology."""


class ClusterInitHandler(ActionHandler):
    """Initialise a one-member replica set made of the local node."""

    kind = ActionKind.CLUSTER_INIT
    args_model = InitArgs

    def plan(self, current: Topology, args: InitArgs) -> Plan:
        return self.planner.plan_init(current, args)


class ClusterAddHandler(ActionHandler):
    """Add a member to the replica set."""

    kind = ActionKind.CLUSTER_ADD
    args_model = AddArgs

    def plan(self, current: Topology, args: AddArgs) -> Plan:
        if isinstance(current, NotInitialized):
            raise NotInitializedError(
                f"cannot add {args.host}: replica set is not initialised, run cluster.init first"
            )
        return self.planner.plan_add(current, args)
