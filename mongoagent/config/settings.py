"""
Agent configuration using Pydantic Settings.

Configuration is loaded once at process start from (highest priority first)
environment variables, a ``.env`` file and the optional YAML configuration
file, then frozen for the lifetime of the process.
"""
import os
import socket
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

CONFIG_FILE_ENV = "MONGOAGENT_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "mongoagent.yaml"


class DeploymentMode(str, Enum):
    """Deployment modes the agent knows how to manage."""
    REPLICA_SET = "replica-set"


class Settings(BaseSettings):
    """Main agent settings with environment variable and YAML loading."""

    model_config = SettingsConfigDict(
        env_prefix="MONGOAGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Application
    app_name: str = Field(default="MongoDB Replica Set Agent", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: str = Field(default="development", description="Environment (development/staging/production)")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    reload: bool = Field(default=False, description="Auto-reload on code changes")

    # Agent identity
    mode: DeploymentMode = Field(default=DeploymentMode.REPLICA_SET, description="Deployment mode of the node")
    node_id: str = Field(default_factory=socket.gethostname, description="Platform assigned node identifier")
    cluster_address: Optional[str] = Field(
        default=None, description="Member host string other members use to reach this node"
    )

    # MongoDB client (direct connection to the local node only)
    local_address: str = Field(default="localhost:27017", description="Address of the local mongod process")
    mongodb_app_name: str = Field(default="repliagent-mongo", description="Client name reported to the server")
    connection_timeout: Optional[int] = Field(default=None, ge=1, description="Connection timeout in seconds")
    server_selection_timeout_ms: int = Field(default=500, ge=1, description="Server selection timeout")
    heartbeat_frequency: Optional[int] = Field(default=None, ge=1, description="Heartbeat frequency in seconds")
    max_idle_time: Optional[int] = Field(default=None, ge=1, description="Close idle connections after seconds")
    mongodb_username: Optional[str] = Field(default=None, description="Username to connect with")
    mongodb_password: Optional[str] = Field(default=None, description="Password to connect with")
    mongodb_auth_source: str = Field(default="admin", description="Authentication database")
    tls_enabled: bool = Field(default=False, description="Connect to MongoDB over TLS")
    tls_ca_file: Optional[str] = Field(default=None, description="CA bundle to verify the server with")
    tls_certificate_key_file: Optional[str] = Field(default=None, description="Client certificate and key")
    tls_allow_invalid_certificates: bool = Field(default=False, description="Skip server certificate checks")
    tls_allow_invalid_hostnames: bool = Field(default=False, description="Skip server hostname checks")

    # Reconciliation
    action_max_attempts: int = Field(default=5, ge=1, le=50, description="Read/plan/apply attempts per action")
    action_backoff_initial: float = Field(default=0.5, ge=0.0, description="First retry delay in seconds")
    action_backoff_max: float = Field(default=10.0, ge=0.0, description="Maximum retry delay in seconds")
    action_backoff_base: float = Field(default=2.0, ge=1.0, description="Exponential backoff base")
    read_timeout: float = Field(default=5.0, gt=0.0, description="Timeout of a topology read in seconds")
    apply_timeout: float = Field(default=30.0, gt=0.0, description="Timeout of a reconfiguration in seconds")
    action_timeout: float = Field(default=300.0, gt=0.0, description="Overall action deadline in seconds")
    action_history_limit: int = Field(default=100, ge=1, description="Terminal actions kept for reporting")
    replica_set_settings: Dict[str, Any] = Field(
        default_factory=dict, description="Default replica set settings for cluster.init"
    )

    # Store version detection
    version_command: List[str] = Field(
        default_factory=lambda: ["mongod", "--version"],
        description="Command printing the mongod build information",
    )
    version_file: Optional[str] = Field(
        default=None, description="File with saved mongod --version output, tried after the command"
    )

    # Telemetry
    prometheus_enabled: bool = Field(default=True, description="Enable Prometheus metrics")
    sentry_dsn: Optional[str] = Field(default=None, description="Sentry DSN for error tracking")
    sentry_traces_sample_rate: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Sentry traces sample rate"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Add the YAML configuration file below environment variables."""
        config_file = os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=config_file),
            file_secret_settings,
        )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment."""
        valid_envs = ["development", "testing", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}")
        return v.lower()

    @model_validator(mode="after")
    def validate_timeouts(self) -> "Settings":
        """Per-operation timeouts must fit inside the action deadline."""
        if self.action_timeout <= max(self.read_timeout, self.apply_timeout):
            raise ValueError("action_timeout must be longer than read_timeout and apply_timeout")
        return self

    @property
    def member_host(self) -> str:
        """Host string this node is registered with in the replica set."""
        return self.cluster_address or self.local_address

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == "development"


# Global settings instance
settings = Settings()
