"""
Node information for replica set members.

Reports the node status, the replica set as a shard and store wide attributes
based on replSetGetStatus and a couple of diagnostic commands.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from mongoagent.config.logging import get_logger
from mongoagent.exceptions import NodeInfoUnavailableError
from mongoagent.models.info import NodeInfo, ShardInfo, ShardsInfo, StoreInfo
from mongoagent.models.topology import MemberState, NodeStatus
from mongoagent.replicaset.version import StoreVersionDetector
from mongoagent.services.mongo_driver import DriverError, DriverErrorKind, MongoDriver

logger = get_logger(__name__)

ATTRIBUTE_PREFIX = "mongodb"
STORE_ID = "mongo.replica"

HEALTHY_STATES = {MemberState.PRIMARY, MemberState.SECONDARY}
UNHEALTHY_STATES = {MemberState.STARTUP, MemberState.RECOVERING, MemberState.ROLLBACK}


def status_for_state(state: MemberState) -> Tuple[NodeStatus, Optional[str]]:
    """Map the member state of the local node to a node status."""
    if state in HEALTHY_STATES:
        return NodeStatus.HEALTHY, None
    if state in UNHEALTHY_STATES:
        return NodeStatus.UNHEALTHY, None
    if state == MemberState.STARTUP2:
        return NodeStatus.JOINING_CLUSTER, None
    if state == MemberState.REMOVED:
        return NodeStatus.NOT_IN_CLUSTER, None
    return (
        NodeStatus.UNKNOWN,
        f"Unable to determine status of node with replica set state {state.name}",
    )


def status_for_error(error: DriverError) -> Tuple[NodeStatus, Optional[str]]:
    """Determine the node status from a failed replSetGetStatus command."""
    # Connection related errors suggest the store process is down.
    if error.kind in (DriverErrorKind.NETWORK, DriverErrorKind.AUTHENTICATION):
        return NodeStatus.UNAVAILABLE, error.message
    if error.not_initialized:
        return NodeStatus.NOT_IN_CLUSTER, None
    return NodeStatus.UNKNOWN, error.message


def _optime_ms(member: Dict[str, Any]) -> int:
    optime = member.get("optimeDate")
    if not isinstance(optime, datetime):
        raise NodeInfoUnavailableError(
            f"member {member.get('name')} in the output of the replica set status command has no optime"
        )
    return int(optime.timestamp() * 1000)


def shard_from_status(status: Dict[str, Any]) -> ShardInfo:
    """Model the replica set status into a shard."""
    members: List[Dict[str, Any]] = status.get("members") or []
    if not members:
        raise NodeInfoUnavailableError(
            "output of the replica set status command does not include a members list"
        )
    name = status.get("set")
    if not name:
        raise NodeInfoUnavailableError(
            "output of the replica set status command does not include a set name"
        )

    me = next((m for m in members if m.get("self")), None)
    if me is None:
        raise NodeInfoUnavailableError(
            "output of the replica set status command does not include the node itself"
        )
    primary = next(
        (
            m for m in members
            if MemberState.parse(m.get("state")) == MemberState.PRIMARY
            and m.get("_id") != me.get("_id")
        ),
        None,
    )

    optime = _optime_ms(me)
    lag = _optime_ms(primary) - optime if primary is not None else None
    return ShardInfo(
        shard_id=name,
        role=MemberState.parse(me.get("state")).name.lower(),
        commit_offset_ms=optime,
        lag_ms=lag,
    )


class NodeInformation:
    """Gather MongoDB node information."""

    def __init__(
        self,
        driver: MongoDriver,
        node_id: str,
        agent_version: str,
        mode: str,
        version_detector: Optional[StoreVersionDetector] = None,
    ):
        self.driver = driver
        self.node_id = node_id
        self.agent_version = agent_version
        self.mode = mode
        self.version_detector = version_detector or StoreVersionDetector(driver)

    async def node_info(self) -> NodeInfo:
        try:
            status = await self.driver.replica_set_status()
        except DriverError as e:
            logger.debug("replica_set_status_failed", error=e.message, code=e.code)
            node_status, message = status_for_error(e)
        else:
            node_status, message = status_for_state(MemberState.parse(status.get("myState")))

        return NodeInfo(
            agent_version=self.agent_version,
            node_id=self.node_id,
            node_status=node_status,
            node_status_message=message,
            store_id=STORE_ID,
            store_version=await self.version_detector.detect(),
            attributes={f"{ATTRIBUTE_PREFIX}/mode": self.mode},
        )

    async def shards(self) -> ShardsInfo:
        status = await self._status()
        return ShardsInfo(shards=[shard_from_status(status)])

    async def store_info(self) -> StoreInfo:
        status = await self._status()
        name = status.get("set")
        if not name:
            raise NodeInfoUnavailableError(
                "output of the replica set status command does not include a set name"
            )

        try:
            oplog_size = await self.driver.oplog_max_size()
            fcv = await self.driver.feature_compatibility_version()
        except DriverError as e:
            raise NodeInfoUnavailableError(e.message, details={"op": e.op}) from e

        return StoreInfo(
            cluster_id=name,
            attributes={
                f"{ATTRIBUTE_PREFIX}/oplog.size": oplog_size,
                f"{ATTRIBUTE_PREFIX}/feature-compatibility": fcv,
            },
        )

    async def _status(self) -> Dict[str, Any]:
        try:
            return await self.driver.replica_set_status()
        except DriverError as e:
            raise NodeInfoUnavailableError(
                "get replica set status command failed",
                details={"error": e.message, "code": e.code},
            ) from e
