"""
Tests for agent settings.
"""
import pytest
from pydantic import ValidationError

from mongoagent.config.settings import DeploymentMode, Settings


def test_defaults():
    conf = Settings(environment="testing")

    assert conf.mode == DeploymentMode.REPLICA_SET
    assert conf.action_max_attempts == 5
    assert conf.action_backoff_initial == 0.5
    assert conf.action_backoff_max == 10.0
    assert conf.member_host == "localhost:27017"


def test_cluster_address_overrides_member_host():
    conf = Settings(environment="testing", cluster_address="mongo-0.mongo:27017")
    assert conf.member_host == "mongo-0.mongo:27017"


def test_environment_variables(monkeypatch):
    monkeypatch.setenv("MONGOAGENT_LOCAL_ADDRESS", "127.0.0.1:27018")
    monkeypatch.setenv("MONGOAGENT_ACTION_MAX_ATTEMPTS", "7")

    conf = Settings(environment="testing")

    assert conf.local_address == "127.0.0.1:27018"
    assert conf.action_max_attempts == 7


def test_yaml_config_file(tmp_path, monkeypatch):
    config_file = tmp_path / "agent.yaml"
    config_file.write_text(
        "node_id: node-7\n"
        "replica_set_settings:\n"
        "  electionTimeoutMillis: 5000\n"
    )
    monkeypatch.setenv("MONGOAGENT_CONFIG_FILE", str(config_file))

    conf = Settings(environment="testing")

    assert conf.node_id == "node-7"
    assert conf.replica_set_settings == {"electionTimeoutMillis": 5000}


def test_log_level_is_normalised():
    assert Settings(environment="testing", log_level="debug").log_level == "DEBUG"


@pytest.mark.parametrize("overrides", [
    {"log_level": "verbose"},
    {"environment": "qa"},
    {"mode": "sharded"},
    {"read_timeout": 10, "action_timeout": 5},
])
def test_invalid_settings(overrides):
    with pytest.raises(ValidationError):
        Settings(**{"environment": "testing", **overrides})


def test_settings_are_frozen():
    conf = Settings(environment="testing")
    with pytest.raises(ValidationError):
        conf.node_id = "other"
