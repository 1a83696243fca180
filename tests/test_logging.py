"""
Tests for structured logging configuration.
"""
import logging

import pytest
import structlog

from mongoagent.config.logging import _app_context, _renderer, configure_logging
from mongoagent.config.settings import Settings


@pytest.fixture
def reset_structlog():
    yield
    structlog.reset_defaults()


def test_events_carry_agent_identity(test_settings: Settings):
    event = _app_context(test_settings)(None, "info", {"event": "action_done"})

    assert event["node_id"] == "node-test"
    assert event["environment"] == "testing"
    assert event["app"] == test_settings.app_name
    assert "severity" not in event


def test_production_renders_json():
    conf = Settings(environment="production", local_address="mongo-0:27017")

    assert isinstance(_renderer(conf), structlog.processors.JSONRenderer)


def test_development_renders_for_terminal(test_settings: Settings):
    assert isinstance(_renderer(test_settings), structlog.dev.ConsoleRenderer)


def test_configure_logging_quiets_driver(test_settings: Settings, reset_structlog):
    configure_logging(test_settings)

    assert logging.getLogger("pymongo").level == logging.WARNING
    assert structlog.is_configured()
