"""
Reconfiguration Applier.

Submits a planned configuration to the database and interprets the result.
An apply that times out or loses the connection is ambiguous (the change may
have landed) and is never retried as-is: the caller must re-read first.
"""
import asyncio
from typing import Optional

from mongoagent.config.logging import get_logger
from mongoagent.core.exceptions import UnreachableError
from mongoagent.models.topology import Applied, ApplyOutcome, Conflict, Mutate, Rejected
from mongoagent.services.mongo_driver import (
    CODE_ALREADY_INITIALIZED,
    CODE_CONFIGURATION_IN_PROGRESS,
    CODE_CURRENT_CONFIG_NOT_COMMITTED_YET,
    CODE_NEW_CONFIG_INCOMPATIBLE,
    DriverError,
    DriverErrorKind,
    MongoDriver,
)

logger = get_logger(__name__)

# Server errors that clear up once the configuration in flight settles.
TRANSIENT_CODES = {
    CODE_ALREADY_INITIALIZED,
    CODE_CONFIGURATION_IN_PROGRESS,
    CODE_CURRENT_CONFIG_NOT_COMMITTED_YET,
}


class AmbiguousApplyError(UnreachableError):
    """The outcome of a submitted configuration is unknown."""


class ReconfigurationApplier:
    """Apply planned configurations to the local node."""

    def __init__(self, driver: MongoDriver, timeout: float = 30.0):
        self.driver = driver
        self.timeout = timeout

    async def apply(self, plan: Mutate) -> ApplyOutcome:
        """
        Submit the planned configuration.

        Returns:
            Applied with the accepted version, Conflict or Rejected

        Raises:
            AmbiguousApplyError: If the outcome is unknown (timeout or network failure)
        """
        document = plan.config.to_document()
        op = "initiate" if plan.initiate else "reconfigure"
        logger.info(
            "applying_replica_set_config",
            op=op,
            replica_set=plan.config.name,
            version=plan.config.version,
            observed_version=plan.observed_version,
        )

        submit = (
            self.driver.replica_set_initiate(document)
            if plan.initiate
            else self.driver.replica_set_reconfigure(document)
        )
        try:
            await asyncio.wait_for(submit, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("replica_set_apply_timeout", op=op, timeout_seconds=self.timeout)
            raise AmbiguousApplyError(
                f"replica set {op} timed out after {self.timeout}s",
                details={"op": op, "version": plan.config.version},
            )
        except DriverError as e:
            return await self._classify(op, plan, e)

        logger.info("replica_set_config_applied", op=op, version=plan.config.version)
        return Applied(version=plan.config.version)

    async def _classify(self, op: str, plan: Mutate, error: DriverError) -> ApplyOutcome:
        if error.kind == DriverErrorKind.NETWORK:
            logger.warning("replica_set_apply_ambiguous", op=op, error=error.message)
            raise AmbiguousApplyError(
                f"connection lost during replica set {op}: {error.message}",
                details={"op": op, "version": plan.config.version},
            ) from error

        if error.kind == DriverErrorKind.COMMAND:
            conflicting = error.code in TRANSIENT_CODES
            # An incompatible configuration only conflicts if someone else moved the version.
            if error.code == CODE_NEW_CONFIG_INCOMPATIBLE and not plan.initiate:
                current = await self._current_version(op)
                conflicting = current != plan.observed_version
            if conflicting:
                logger.warning(
                    "replica_set_apply_conflict",
                    op=op,
                    code=error.code,
                    code_name=error.code_name,
                    error=error.message,
                )
                return Conflict(reason=error.message, code=error.code)

        logger.error(
            "replica_set_apply_rejected",
            op=op,
            error_kind=error.kind.value,
            code=error.code,
            code_name=error.code_name,
            error=error.message,
        )
        return Rejected(reason=error.message, code=error.code)

    async def _current_version(self, op: str) -> Optional[int]:
        """Re-read the configuration version after a refused reconfiguration."""
        try:
            config = await asyncio.wait_for(
                self.driver.read_replica_set_config(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise UnreachableError(
                f"replica set configuration re-read timed out after replica set {op} was refused",
                details={"op": op},
            )
        except DriverError as e:
            raise UnreachableError(
                f"cannot re-read replica set configuration after replica set {op} was refused: {e.message}",
                details={"op": op, "code": e.code},
            ) from e
        return config.get("version")
