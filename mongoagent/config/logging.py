"""
Structured logging for the agent.

Every event carries the agent identity and the action context bound by the
action manager. Production renders JSON lines, anything else renders for a
terminal.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from mongoagent.config.settings import Settings, settings as default_settings

# Libraries that are too chatty at the agent log level.
LIBRARY_LOG_LEVELS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "fastapi": logging.INFO,
    "pymongo": logging.WARNING,
}


def _app_context(conf: Settings) -> Processor:
    def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        """Add agent context to log events."""
        event_dict["app"] = conf.app_name
        event_dict["version"] = conf.app_version
        event_dict["environment"] = conf.environment
        event_dict["node_id"] = conf.node_id
        return event_dict

    return add_app_context


def _renderer(conf: Settings) -> Processor:
    if conf.is_production:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(conf: Optional[Settings] = None) -> None:
    """Configure structlog and the standard library root logger."""
    conf = conf or default_settings

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _app_context(conf),
        structlog.processors.format_exc_info,
        _renderer(conf),
    ]

    structlog.configure(
        processors=processors,  # type: ignore
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, conf.log_level),
    )
    for name, level in LIBRARY_LOG_LEVELS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger named after the calling module."""
    return structlog.get_logger(name)
