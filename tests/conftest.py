"""
Pytest configuration and fixtures.
"""
import asyncio
import copy
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from mongoagent.config.settings import Settings
from mongoagent.core.action_manager import ActionManager
from mongoagent.main import create_app
from mongoagent.models.topology import MemberState
from mongoagent.modes.dispatcher import ModeDispatcher
from mongoagent.replicaset.applier import ReconfigurationApplier
from mongoagent.replicaset.planner import TopologyPlanner
from mongoagent.replicaset.reader import TopologyReader
from mongoagent.services.mongo_driver import (
    CMD_BUILD_INFO,
    CMD_COLL_STATS,
    CMD_GET_CMD_LINE_OPTS,
    CMD_GET_PARAMETER,
    CMD_PING,
    CMD_REPL_SET_GET_CONFIG,
    CMD_REPL_SET_GET_STATUS,
    CMD_REPL_SET_INITIATE,
    CMD_REPL_SET_RECONFIG,
    CODE_ALREADY_INITIALIZED,
    CODE_CONFIGURATION_IN_PROGRESS,
    CODE_CURRENT_CONFIG_NOT_COMMITTED_YET,
    CODE_NEW_CONFIG_INCOMPATIBLE,
    CODE_NOT_YET_INITIALIZED,
    DriverError,
    DriverErrorKind,
)
from mongoagent.utils.retry import BackoffPolicy

LOCAL_HOST = "mongo-0:27017"
OTHER_HOST = "mongo-1:27017"


def network_error(op: str) -> DriverError:
    return DriverError(DriverErrorKind.NETWORK, "connection refused", op)


def command_error(op: str, code: int, code_name: str = "") -> DriverError:
    return DriverError(DriverErrorKind.COMMAND, f"{code_name or 'command'} failed", op, code, code_name)


def conflict_error(op: str = CMD_REPL_SET_RECONFIG) -> DriverError:
    return command_error(op, CODE_NEW_CONFIG_INCOMPATIBLE, "NewReplicaSetConfigurationIncompatible")


def in_progress_error(op: str = CMD_REPL_SET_RECONFIG) -> DriverError:
    return command_error(op, CODE_CONFIGURATION_IN_PROGRESS, "ConfigurationInProgress")


def not_committed_error(op: str = CMD_REPL_SET_RECONFIG) -> DriverError:
    return command_error(op, CODE_CURRENT_CONFIG_NOT_COMMITTED_YET, "CurrentConfigNotCommittedYet")


def replica_set_config(*hosts: str, version: int = 1, name: str = "rs0") -> Dict[str, Any]:
    return {
        "_id": name,
        "version": version,
        "members": [{"_id": i, "host": host} for i, host in enumerate(hosts)],
    }


class FakeDriver:
    """
    In-memory MongoDB node implementing the driver capability.

    The node is uninitialised until it receives a configuration. Failures,
    delays and gates are scripted per command name.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        set_name: Optional[str] = "rs0",
        my_state: MemberState = MemberState.PRIMARY,
        self_host: str = LOCAL_HOST,
    ):
        self.config = copy.deepcopy(config)
        self.set_name = set_name
        self.my_state = my_state
        self.self_host = self_host
        self.reachable = True
        self.fcv = "6.0"
        self.version = "6.0.5"
        self.oplog_size = 990 * 1024 * 1024
        self.optime = datetime(2024, 1, 1, 12, 0, 0)
        self.calls: List[str] = []
        self.failures: Dict[str, List[Exception]] = defaultdict(list)
        self.failures_after: Dict[str, List[Exception]] = defaultdict(list)
        self.delays: Dict[str, float] = {}
        self.gates: Dict[str, asyncio.Event] = {}

    def fail(self, op: str, *errors: Exception) -> None:
        """Raise the errors, in order, on the next calls of op."""
        self.failures[op].extend(errors)

    def fail_after_apply(self, op: str, *errors: Exception) -> None:
        """Accept the configuration, then raise as if the reply was lost."""
        self.failures_after[op].extend(errors)

    def block(self, op: str) -> asyncio.Event:
        """Hold calls of op until the returned event is set."""
        gate = asyncio.Event()
        self.gates[op] = gate
        return gate

    def count(self, op: str) -> int:
        return self.calls.count(op)

    async def _enter(self, op: str) -> None:
        self.calls.append(op)
        if op in self.gates:
            await self.gates[op].wait()
        if op in self.delays:
            await asyncio.sleep(self.delays[op])
        if not self.reachable:
            raise network_error(op)
        if self.failures[op]:
            raise self.failures[op].pop(0)

    def _exit(self, op: str) -> None:
        if self.failures_after[op]:
            raise self.failures_after[op].pop(0)

    async def ping(self) -> bool:
        try:
            await self._enter(CMD_PING)
        except DriverError:
            return False
        return True

    async def replica_set_status(self) -> Dict[str, Any]:
        await self._enter(CMD_REPL_SET_GET_STATUS)
        if self.config is None:
            raise command_error(
                CMD_REPL_SET_GET_STATUS, CODE_NOT_YET_INITIALIZED, "NotYetInitialized"
            )
        members = []
        for member in self.config["members"]:
            is_self = member["host"] == self.self_host
            members.append({
                "_id": member.get("_id"),
                "name": member["host"],
                "state": int(self.my_state if is_self else MemberState.SECONDARY),
                "self": is_self,
                "optimeDate": self.optime,
            })
        return {"set": self.config["_id"], "myState": int(self.my_state), "members": members}

    async def read_replica_set_config(self) -> Dict[str, Any]:
        await self._enter(CMD_REPL_SET_GET_CONFIG)
        return copy.deepcopy(self.config)

    async def command_line_options(self) -> Dict[str, Any]:
        await self._enter(CMD_GET_CMD_LINE_OPTS)
        if not self.set_name:
            return {"parsed": {"net": {"port": 27017}}}
        return {"parsed": {"replication": {"replSetName": self.set_name}}}

    async def replica_set_initiate(self, config: Dict[str, Any]) -> Dict[str, Any]:
        await self._enter(CMD_REPL_SET_INITIATE)
        if self.config is not None:
            raise command_error(CMD_REPL_SET_INITIATE, CODE_ALREADY_INITIALIZED, "AlreadyInitialized")
        self.config = copy.deepcopy(config)
        self.my_state = MemberState.PRIMARY
        self._exit(CMD_REPL_SET_INITIATE)
        return {"ok": 1.0}

    async def replica_set_reconfigure(self, config: Dict[str, Any]) -> Dict[str, Any]:
        await self._enter(CMD_REPL_SET_RECONFIG)
        if config["version"] != self.config["version"] + 1:
            raise conflict_error()
        self.config = copy.deepcopy(config)
        self._exit(CMD_REPL_SET_RECONFIG)
        return {"ok": 1.0}

    async def feature_compatibility_version(self) -> Optional[str]:
        await self._enter(CMD_GET_PARAMETER)
        return self.fcv

    async def oplog_max_size(self) -> Optional[int]:
        await self._enter(CMD_COLL_STATS)
        return self.oplog_size

    async def build_info(self) -> Dict[str, Any]:
        await self._enter(CMD_BUILD_INFO)
        return {
            "version": self.version,
            "gitVersion": "e61bf27c2f6a83fed36e5a13c008a32d563babe2",
            "allocator": "tcmalloc",
            "ok": 1.0,
        }

    def lag_behind(self, host: str, seconds: float) -> None:
        """Make a primary elsewhere run ahead of this node."""
        self.my_state = MemberState.SECONDARY
        primary_optime = self.optime + timedelta(seconds=seconds)
        original = self.replica_set_status

        async def status_with_primary() -> Dict[str, Any]:
            status = await original()
            for member in status["members"]:
                if member["name"] == host:
                    member["state"] = int(MemberState.PRIMARY)
                    member["optimeDate"] = primary_optime
            return status

        self.replica_set_status = status_with_primary


@pytest.fixture
def test_settings() -> Settings:
    """Settings for testing: no retry delays and no metrics endpoint."""
    return Settings(
        environment="testing",
        node_id="node-test",
        local_address=LOCAL_HOST,
        prometheus_enabled=False,
        action_max_attempts=3,
        action_backoff_initial=0.0,
        action_backoff_max=0.0,
        read_timeout=1.0,
        apply_timeout=1.0,
        action_timeout=30.0,
        version_command=[],
    )


@pytest.fixture
def driver() -> FakeDriver:
    """Primary of an initialised one-member replica set."""
    return FakeDriver(config=replica_set_config(LOCAL_HOST))


@pytest.fixture
def planner(test_settings: Settings) -> TopologyPlanner:
    return TopologyPlanner(test_settings.member_host, test_settings.replica_set_settings)


def build_manager(
    driver: FakeDriver,
    conf: Settings,
    policy: Optional[BackoffPolicy] = None,
    **kwargs: Any,
) -> ActionManager:
    planner = TopologyPlanner(conf.member_host, conf.replica_set_settings)
    return ActionManager(
        dispatcher=ModeDispatcher(conf.mode, planner),
        reader=TopologyReader(driver, timeout=conf.read_timeout),
        applier=ReconfigurationApplier(driver, timeout=conf.apply_timeout),
        policy=policy or BackoffPolicy.from_settings(conf),
        action_timeout=kwargs.pop("action_timeout", conf.action_timeout),
        **kwargs,
    )


@pytest.fixture
def manager(driver: FakeDriver, test_settings: Settings) -> ActionManager:
    return build_manager(driver, test_settings)


@pytest.fixture
def app(driver: FakeDriver, test_settings: Settings) -> FastAPI:
    return create_app(test_settings, driver=driver)


@pytest_asyncio.fixture
async def test_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    await app.state.manager.shutdown(timeout=1.0)
