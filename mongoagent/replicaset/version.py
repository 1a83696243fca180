"""
Store version detection.

The version of the managed server is looked up with a chain of strategies:
the output of ``mongod --version``, an optional file holding that output and,
last, the ``buildInfo`` command of the running node.
"""
import asyncio
import json
import re
from typing import Any, Dict, Optional, Sequence

from mongoagent.config.logging import get_logger
from mongoagent.models.info import StoreVersion
from mongoagent.services.mongo_driver import DriverError, MongoDriver

logger = get_logger(__name__)

BUILD_INFO_EXTRACT = re.compile(r"Build Info: (\{.*\})", re.DOTALL)

# Reply fields of the buildInfo command that say nothing about the build.
REPLY_FIELDS = {"ok", "$clusterTime", "operationTime"}


class VersionNotInOutput(ValueError):
    """Unable to find version information."""


def version_from_build_info(build_info: Dict[str, Any]) -> StoreVersion:
    """Model MongoDB build information into a store version."""
    info = {k: v for k, v in build_info.items() if k not in REPLY_FIELDS}
    number = info.pop("version", None)
    checkout = info.pop("gitVersion", None)
    if not number:
        raise VersionNotInOutput("build information does not include a version")

    extra = json.dumps(info, separators=(",", ":"), default=str) if info else None
    return StoreVersion(number=number, checkout=checkout, extra=extra)


def decode_mongod_version(output: str) -> StoreVersion:
    """
    Decode the output of ``mongod --version``.

    Example:
        db version v4.4.13
        Build Info: {
            "version": "4.4.13",
            "gitVersion": "df25c71b8674a78e17468f48bcda5285decb9246",
            "allocator": "tcmalloc"
        }
    """
    match = BUILD_INFO_EXTRACT.search(output)
    if match is None:
        raise VersionNotInOutput("unable to find version information")
    return version_from_build_info(json.loads(match.group(1)))


class StoreVersionDetector:
    """Detect the version of the local mongod."""

    def __init__(
        self,
        driver: MongoDriver,
        command: Sequence[str] = ("mongod", "--version"),
        file: Optional[str] = None,
        timeout: float = 5.0,
    ):
        self.driver = driver
        self.command = list(command)
        self.file = file
        self.timeout = timeout

    async def detect(self) -> Optional[StoreVersion]:
        """Return the first version a strategy finds, None if all of them fail."""
        strategies = (
            ("command", self._from_command),
            ("file", self._from_file),
            ("build_info", self._from_server),
        )
        for name, strategy in strategies:
            try:
                version = await strategy()
            except (OSError, ValueError, DriverError, asyncio.TimeoutError) as e:
                logger.debug("store_version_strategy_failed", strategy=name, error=str(e))
                continue
            if version is not None:
                return version

        logger.warning("store_version_unknown", command=" ".join(self.command))
        return None

    async def _from_command(self) -> Optional[StoreVersion]:
        if not self.command:
            return None

        process = await asyncio.create_subprocess_exec(
            *self.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            error_msg = stderr.decode(errors="replace").strip() if stderr else "Unknown error"
            raise VersionNotInOutput(
                f"{self.command[0]} exited with code {process.returncode}: {error_msg}"
            )
        return decode_mongod_version(stdout.decode())

    async def _from_file(self) -> Optional[StoreVersion]:
        if not self.file:
            return None
        with open(self.file, encoding="utf-8") as f:
            return decode_mongod_version(f.read())

    async def _from_server(self) -> StoreVersion:
        return version_from_build_info(await self.driver.build_info())
