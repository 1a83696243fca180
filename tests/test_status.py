"""
Tests for node information gathering.
"""
import asyncio
from datetime import datetime

import pytest

from mongoagent.exceptions import NodeInfoUnavailableError
from mongoagent.models.topology import MemberState, NodeStatus
from mongoagent.replicaset.status import NodeInformation, shard_from_status, status_for_state
from mongoagent.replicaset.version import (
    StoreVersionDetector,
    VersionNotInOutput,
    decode_mongod_version,
)
from mongoagent.services.mongo_driver import CMD_BUILD_INFO, CMD_COLL_STATS
from tests.conftest import LOCAL_HOST, OTHER_HOST, FakeDriver, network_error, replica_set_config


def node_information(driver: FakeDriver) -> NodeInformation:
    return NodeInformation(
        driver,
        node_id="node-test",
        agent_version="0.1.0",
        mode="replica-set",
        version_detector=StoreVersionDetector(driver, command=[]),
    )


@pytest.mark.parametrize("state,expected", [
    (MemberState.PRIMARY, NodeStatus.HEALTHY),
    (MemberState.SECONDARY, NodeStatus.HEALTHY),
    (MemberState.STARTUP, NodeStatus.UNHEALTHY),
    (MemberState.RECOVERING, NodeStatus.UNHEALTHY),
    (MemberState.ROLLBACK, NodeStatus.UNHEALTHY),
    (MemberState.STARTUP2, NodeStatus.JOINING_CLUSTER),
    (MemberState.REMOVED, NodeStatus.NOT_IN_CLUSTER),
])
def test_status_for_state(state, expected):
    assert status_for_state(state) == (expected, None)


def test_unexpected_state_is_unknown():
    status, message = status_for_state(MemberState.ARBITER)

    assert status == NodeStatus.UNKNOWN
    assert "ARBITER" in message


@pytest.mark.asyncio
async def test_node_info_healthy(driver: FakeDriver):
    info = await node_information(driver).node_info()

    assert info.node_status == NodeStatus.HEALTHY
    assert info.node_id == "node-test"
    assert info.store_id == "mongo.replica"
    assert info.attributes == {"mongodb/mode": "replica-set"}


@pytest.mark.asyncio
async def test_node_info_not_initialized():
    info = await node_information(FakeDriver(config=None)).node_info()
    assert info.node_status == NodeStatus.NOT_IN_CLUSTER


@pytest.mark.asyncio
async def test_node_info_unavailable(driver: FakeDriver):
    driver.reachable = False

    info = await node_information(driver).node_info()

    assert info.node_status == NodeStatus.UNAVAILABLE
    assert info.node_status_message


@pytest.mark.asyncio
async def test_shards_on_primary(driver: FakeDriver):
    shards = await node_information(driver).shards()

    assert len(shards.shards) == 1
    shard = shards.shards[0]
    assert shard.shard_id == "rs0"
    assert shard.role == "primary"
    assert shard.commit_offset_ms == int(driver.optime.timestamp() * 1000)
    assert shard.lag_ms is None


@pytest.mark.asyncio
async def test_shards_reports_lag_behind_primary():
    driver = FakeDriver(config=replica_set_config(LOCAL_HOST, OTHER_HOST, version=2))
    driver.lag_behind(OTHER_HOST, seconds=1.5)

    shard = (await node_information(driver).shards()).shards[0]

    assert shard.role == "secondary"
    assert shard.lag_ms == 1500


@pytest.mark.asyncio
async def test_shards_unavailable_when_not_initialized():
    with pytest.raises(NodeInfoUnavailableError) as exc_info:
        await node_information(FakeDriver(config=None)).shards()

    assert exc_info.value.status_code == 503


def test_shard_requires_self_member():
    status = {
        "set": "rs0",
        "members": [{"_id": 0, "state": 1, "optimeDate": datetime(2024, 1, 1)}],
    }

    with pytest.raises(NodeInfoUnavailableError):
        shard_from_status(status)


@pytest.mark.asyncio
async def test_store_info(driver: FakeDriver):
    store = await node_information(driver).store_info()

    assert store.cluster_id == "rs0"
    assert store.attributes == {
        "mongodb/oplog.size": driver.oplog_size,
        "mongodb/feature-compatibility": "6.0",
    }


@pytest.mark.asyncio
async def test_store_info_diagnostics_failure(driver: FakeDriver):
    driver.fail(CMD_COLL_STATS, network_error(CMD_COLL_STATS))

    with pytest.raises(NodeInfoUnavailableError):
        await node_information(driver).store_info()


MONGOD_VERSION_OUTPUT = """db version v4.4.13
Build Info: {
    "version": "4.4.13",
    "gitVersion": "df25c71b8674a78e17468f48bcda5285decb9246",
    "openSSLVersion": "OpenSSL 1.1.1f  31 Mar 2020",
    "modules": [],
    "allocator": "tcmalloc",
    "environment": {
        "distmod": "ubuntu2004",
        "distarch": "x86_64",
        "target_arch": "x86_64"
    }
}
"""


class FakeProcess:
    def __init__(self, stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode

    async def communicate(self):
        return self.stdout, self.stderr


def fake_exec(process=None, error=None, calls=None):
    async def create_subprocess_exec(*args, **kwargs):
        if calls is not None:
            calls.append(list(args))
        if error is not None:
            raise error
        return process

    return create_subprocess_exec


def test_decode_mongod_version():
    version = decode_mongod_version(MONGOD_VERSION_OUTPUT)

    assert version.number == "4.4.13"
    assert version.checkout == "df25c71b8674a78e17468f48bcda5285decb9246"
    assert version.extra == (
        '{"openSSLVersion":"OpenSSL 1.1.1f  31 Mar 2020","modules":[],"allocator":"tcmalloc",'
        '"environment":{"distmod":"ubuntu2004","distarch":"x86_64","target_arch":"x86_64"}}'
    )


def test_decode_mongod_version_without_build_info():
    with pytest.raises(VersionNotInOutput):
        decode_mongod_version("not build info {}")


@pytest.mark.asyncio
async def test_node_info_reports_store_version(driver: FakeDriver):
    info = await node_information(driver).node_info()

    assert info.store_version.number == "6.0.5"
    assert info.store_version.checkout == "e61bf27c2f6a83fed36e5a13c008a32d563babe2"
    assert info.store_version.extra == '{"allocator":"tcmalloc"}'


@pytest.mark.asyncio
async def test_store_version_from_mongod_command(driver: FakeDriver, monkeypatch):
    calls = []
    monkeypatch.setattr(
        asyncio,
        "create_subprocess_exec",
        fake_exec(FakeProcess(stdout=MONGOD_VERSION_OUTPUT.encode()), calls=calls),
    )

    version = await StoreVersionDetector(driver).detect()

    assert calls == [["mongod", "--version"]]
    assert version.number == "4.4.13"
    assert driver.count(CMD_BUILD_INFO) == 0


@pytest.mark.asyncio
async def test_store_version_falls_back_to_build_info(driver: FakeDriver, monkeypatch):
    monkeypatch.setattr(
        asyncio, "create_subprocess_exec", fake_exec(error=FileNotFoundError("mongod"))
    )

    version = await StoreVersionDetector(driver).detect()

    assert version.number == "6.0.5"
    assert driver.count(CMD_BUILD_INFO) == 1


@pytest.mark.asyncio
async def test_store_version_from_file_after_failed_command(
    driver: FakeDriver, monkeypatch, tmp_path
):
    version_file = tmp_path / "mongod.version"
    version_file.write_text(MONGOD_VERSION_OUTPUT)
    monkeypatch.setattr(
        asyncio,
        "create_subprocess_exec",
        fake_exec(FakeProcess(stderr=b"illegal instruction", returncode=132)),
    )

    version = await StoreVersionDetector(driver, file=str(version_file)).detect()

    assert version.number == "4.4.13"
    assert driver.count(CMD_BUILD_INFO) == 0


@pytest.mark.asyncio
async def test_store_version_unknown_when_node_is_down(driver: FakeDriver):
    driver.reachable = False

    info = await node_information(driver).node_info()

    assert info.node_status == NodeStatus.UNAVAILABLE
    assert info.store_version is None
