"""
Database driver capability used by the topology engine.

Wraps the admin commands the agent issues against the local node and
classifies every failure as a network, authentication or command error so
that no pymongo exception leaks into the reconciliation logic.
"""
from enum import Enum
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import (
    ConnectionFailure,
    NotPrimaryError,
    OperationFailure,
    PyMongoError,
)

from mongoagent.config.logging import get_logger
from mongoagent.services.metrics import observe_mongodb_op

logger = get_logger(__name__)

DB_ADMIN = "admin"
DB_LOCAL = "local"

CMD_BUILD_INFO = "buildInfo"
CMD_GET_CMD_LINE_OPTS = "getCmdLineOpts"
CMD_GET_PARAMETER = "getParameter"
CMD_COLL_STATS = "collStats"
CMD_PING = "ping"
CMD_REPL_SET_GET_CONFIG = "replSetGetConfig"
CMD_REPL_SET_GET_STATUS = "replSetGetStatus"
CMD_REPL_SET_INITIATE = "replSetInitiate"
CMD_REPL_SET_RECONFIG = "replSetReconfig"
FEATURE_COMPATIBILITY_VERSION = "featureCompatibilityVersion"

# Server error codes the agent cares about.
CODE_UNAUTHORIZED = 13
CODE_AUTHENTICATION_FAILED = 18
CODE_ALREADY_INITIALIZED = 23
CODE_NOT_YET_INITIALIZED = 94
CODE_NEW_CONFIG_INCOMPATIBLE = 103
CODE_CONFIGURATION_IN_PROGRESS = 109
CODE_CURRENT_CONFIG_NOT_COMMITTED_YET = 308

AUTHENTICATION_CODES = {CODE_UNAUTHORIZED, CODE_AUTHENTICATION_FAILED}


class DriverErrorKind(str, Enum):
    """Classification of driver failures."""
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    COMMAND = "command"


class DriverError(Exception):
    """A classified failure of a MongoDB command."""

    def __init__(
        self,
        kind: DriverErrorKind,
        message: str,
        op: str,
        code: Optional[int] = None,
        code_name: Optional[str] = None,
    ):
        self.kind = kind
        self.message = message
        self.op = op
        self.code = code
        self.code_name = code_name
        super().__init__(message)

    @property
    def not_initialized(self) -> bool:
        """True only if the server says the replica set is not initialised."""
        return self.kind == DriverErrorKind.COMMAND and self.code == CODE_NOT_YET_INITIALIZED

    @classmethod
    def from_pymongo(cls, op: str, error: PyMongoError) -> "DriverError":
        """Classify a pymongo exception."""
        # NotPrimaryError is a ConnectionFailure but the server did answer.
        if isinstance(error, NotPrimaryError):
            details = error.details if isinstance(error.details, dict) else {}
            return cls(
                DriverErrorKind.COMMAND,
                str(error),
                op,
                code=details.get("code"),
                code_name=details.get("codeName"),
            )
        if isinstance(error, ConnectionFailure):
            return cls(DriverErrorKind.NETWORK, str(error), op)
        if isinstance(error, OperationFailure):
            details = error.details or {}
            kind = (
                DriverErrorKind.AUTHENTICATION
                if error.code in AUTHENTICATION_CODES
                else DriverErrorKind.COMMAND
            )
            return cls(kind, str(error), op, code=error.code, code_name=details.get("codeName"))
        return cls(DriverErrorKind.COMMAND, str(error), op)


class MongoDriver:
    """
    Admin commands against the local MongoDB node.

    Example:
        >>> driver = MongoDriver(MongoConnection.connect())
        >>> config = await driver.read_replica_set_config()
        >>> config["version"]
        3
    """

    def __init__(self, client: AsyncIOMotorClient):
        self.client = client
        self.admin = client[DB_ADMIN]
        self.local = client[DB_LOCAL]

    async def _command(self, db, name: str, value: Any = 1, **kwargs: Any) -> Dict[str, Any]:
        with observe_mongodb_op(name):
            try:
                return await db.command(name, value, **kwargs)
            except PyMongoError as e:
                error = DriverError.from_pymongo(name, e)
                logger.debug(
                    "mongodb_command_failed",
                    op=name,
                    error_kind=error.kind.value,
                    code=error.code,
                    error=error.message,
                )
                raise error from e

    async def ping(self) -> bool:
        """Check database connectivity."""
        try:
            await self._command(self.admin, CMD_PING)
            return True
        except DriverError as e:
            logger.error("database_ping_failed", error=e.message)
            return False

    async def replica_set_status(self) -> Dict[str, Any]:
        """Run the replSetGetStatus command."""
        return await self._command(self.admin, CMD_REPL_SET_GET_STATUS)

    async def read_replica_set_config(self) -> Dict[str, Any]:
        """Return the current replica set configuration document."""
        reply = await self._command(self.admin, CMD_REPL_SET_GET_CONFIG)
        config = reply.get("config")
        if not isinstance(config, dict):
            raise DriverError(
                DriverErrorKind.COMMAND,
                "server did not return replica set configuration",
                CMD_REPL_SET_GET_CONFIG,
            )
        return config

    async def command_line_options(self) -> Dict[str, Any]:
        """Run the getCmdLineOpts command."""
        return await self._command(self.admin, CMD_GET_CMD_LINE_OPTS)

    async def replica_set_initiate(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Initialise the replica set with the given configuration."""
        return await self._command(self.admin, CMD_REPL_SET_INITIATE, config)

    async def replica_set_reconfigure(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the replica set configuration (never forced)."""
        return await self._command(self.admin, CMD_REPL_SET_RECONFIG, config)

    async def feature_compatibility_version(self) -> Optional[str]:
        """Lookup MongoDB current feature compatibility version (FCV)."""
        params = await self._command(
            self.admin, CMD_GET_PARAMETER, 1, **{FEATURE_COMPATIBILITY_VERSION: 1}
        )
        fcv = params.get(FEATURE_COMPATIBILITY_VERSION) or {}
        return fcv.get("version")

    async def oplog_max_size(self) -> Optional[int]:
        """Lookup oplog collection max size."""
        stats = await self._command(self.local, CMD_COLL_STATS, "oplog.rs")
        return stats.get("maxSize")

    async def build_info(self) -> Dict[str, Any]:
        """Run the buildInfo command."""
        return await self._command(self.admin, CMD_BUILD_INFO)
