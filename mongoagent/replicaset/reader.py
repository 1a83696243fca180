"""
Database Topology Reader.

Fetches the replica set configuration and the local member state from the
node. Purely observational: it never changes the database.
"""
import asyncio
from typing import Any, Dict, Optional

from pydantic import ValidationError

from mongoagent.config.logging import get_logger
from mongoagent.core.exceptions import InvalidActionError, UnreachableError
from mongoagent.models.topology import (
    CurrentTopology,
    MemberState,
    NotInitialized,
    ReplicaSetConfig,
    Topology,
)
from mongoagent.services.mongo_driver import DriverError, DriverErrorKind, MongoDriver

logger = get_logger(__name__)


def replica_set_name_from_options(options: Dict[str, Any]) -> Optional[str]:
    """Extract the configured replica set name from getCmdLineOpts output."""
    replication = (options.get("parsed") or {}).get("replication") or {}
    name = replication.get("replSetName") or replication.get("replSet")
    return name or None


def unreachable_from(error: DriverError) -> UnreachableError:
    """Map a driver failure during a read to an Unreachable error."""
    return UnreachableError(
        f"unable to read replica set topology ({error.op}): {error.message}",
        details={"op": error.op, "driver_error": error.kind.value, "code": error.code},
        # Only network failures are expected to go away on their own.
        transient=error.kind == DriverErrorKind.NETWORK,
    )


class TopologyReader:
    """Read the current topology of the local replica set member."""

    def __init__(self, driver: MongoDriver, timeout: float = 5.0):
        self.driver = driver
        self.timeout = timeout

    async def read(self) -> Topology:
        """
        Read the current topology.

        Returns:
            CurrentTopology, or NotInitialized when the node has no replica set yet

        Raises:
            UnreachableError: If the node cannot be reached, times out or fails the read
            InvalidActionError: If the node returned a malformed configuration
        """
        try:
            return await asyncio.wait_for(self._read(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("topology_read_timeout", timeout_seconds=self.timeout)
            raise UnreachableError(
                f"topology read timed out after {self.timeout}s",
                details={"timeout_seconds": self.timeout},
            )

    async def _read(self) -> Topology:
        try:
            status = await self.driver.replica_set_status()
        except DriverError as e:
            if not e.not_initialized:
                raise unreachable_from(e) from e
            name = await self._replica_set_name()
            logger.info("topology_not_initialized", replica_set_name=name)
            return NotInitialized(replica_set_name=name)

        try:
            document = await self.driver.read_replica_set_config()
        except DriverError as e:
            raise unreachable_from(e) from e

        try:
            config = ReplicaSetConfig.from_document(document)
        except ValidationError as e:
            raise InvalidActionError(
                "invalid replica set configuration returned by the server",
                details={
                    "errors": [
                        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
                        for err in e.errors()
                    ]
                },
            ) from e

        topology = CurrentTopology(
            config=config,
            local_state=MemberState.parse(status.get("myState")),
        )
        logger.debug(
            "topology_read",
            replica_set=config.name,
            version=config.version,
            members=len(config.members),
            local_state=topology.local_state.name,
        )
        return topology

    async def _replica_set_name(self) -> Optional[str]:
        try:
            options = await self.driver.command_line_options()
        except DriverError as e:
            raise unreachable_from(e) from e
        return replica_set_name_from_options(options)
