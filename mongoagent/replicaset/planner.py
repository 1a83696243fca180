"""
Topology Diff Planner.

Given the current topology and a requested change, decides whether the
change is already satisfied, impossible, or which configuration document
must be submitted next. Planning is pure: it never talks to the database.

Member identifiers are allocated smallest-unused-first and existing members
are never reordered, so the same inputs always produce the same document.
"""
from typing import Any, Dict, Optional

from mongoagent.config.logging import get_logger
from mongoagent.models.action import AddArgs, InitArgs
from mongoagent.models.topology import (
    Invalid,
    Mutate,
    NoOp,
    NotInitialized,
    Plan,
    ReplicaSetConfig,
    Topology,
)

logger = get_logger(__name__)

INITIAL_VERSION = 1
INITIAL_MEMBER_ID = 0


class TopologyPlanner:
    """
    Plans topology changes for the local node.

    Args:
        member_host: Host string of the local node inside the replica set
        default_settings: Replica set settings merged under the caller's on init
    """

    def __init__(self, member_host: str, default_settings: Optional[Dict[str, Any]] = None):
        self.member_host = member_host
        self.default_settings = dict(default_settings or {})

    def plan_init(self, current: Topology, args: InitArgs) -> Plan:
        """Plan a single-member replica set containing only this node."""
        if isinstance(current, NotInitialized):
            if not current.replica_set_name:
                return Invalid(
                    reason="no replica set name was provided in MongoDB configuration"
                )

            document: Dict[str, Any] = {
                "_id": current.replica_set_name,
                "version": INITIAL_VERSION,
                "members": [{"_id": INITIAL_MEMBER_ID, "host": self.member_host}],
            }
            merged = {**self.default_settings, **(args.settings or {})}
            if merged:
                document["settings"] = merged
            return Mutate(
                config=ReplicaSetConfig.from_document(document),
                initiate=True,
            )

        config = current.config
        if len(config.members) == 1 and config.find_host(self.member_host) is not None:
            return NoOp(reason="replica set already initialised with this node")
        return Invalid(reason="already initialized with different topology")

    def plan_add(self, current: Topology, args: AddArgs) -> Plan:
        """Plan appending a member for the requested host."""
        if isinstance(current, NotInitialized):
            return Invalid(reason="replica set is not initialised")

        config = current.config
        existing = config.find_host(args.host)
        if existing is not None:
            if existing.voting:
                return NoOp(reason=f"host {args.host} is already a voting member")
            return Invalid(
                reason=f"host {args.host} is already a non-voting member with id {existing.id}"
            )

        if not current.is_primary:
            return Invalid(
                reason=(
                    "replica set can only be reconfigured from the primary, "
                    f"local member is {current.local_state.name}"
                )
            )

        if args.id is not None:
            if args.id in config.member_ids():
                return Invalid(reason=f"member id {args.id} is already in use")
            member_id = args.id
        else:
            member_id = config.lowest_unused_id()

        document = config.to_document()
        document["members"].append({"_id": member_id, "host": args.host})
        document["version"] = config.version + 1

        logger.info(
            "member_addition_planned",
            host=args.host,
            member_id=member_id,
            observed_version=config.version,
            next_version=config.version + 1,
        )
        return Mutate(
            config=ReplicaSetConfig.from_document(document),
            observed_version=config.version,
        )


def describe_plan(plan: Plan) -> Dict[str, Any]:
    """Log friendly summary of a plan."""
    if isinstance(plan, Mutate):
        return {
            "plan": plan.kind,
            "initiate": plan.initiate,
            "version": plan.config.version,
            "members": [m.host for m in plan.config.members],
        }
    return {"plan": plan.kind, "reason": plan.reason}


__all__ = ["TopologyPlanner", "describe_plan"]
