"""
MongoDB client connection for the local node using Motor.

The agent only ever talks to the mongod process it runs beside: the client
is configured for a direct connection with a short server selection timeout.
"""
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from mongoagent.config.logging import get_logger
from mongoagent.config.settings import Settings, settings as default_settings

logger = get_logger(__name__)


class MongoConnection:
    """MongoDB connection manager."""

    client: Optional[AsyncIOMotorClient] = None

    @staticmethod
    def client_options(conf: Settings) -> Dict[str, Any]:
        """Translate agent settings into Motor client options."""
        options: Dict[str, Any] = {
            "host": f"mongodb://{conf.local_address}",
            "appname": conf.mongodb_app_name,
            # Ensure we connect directly and exclusively to our corresponding node.
            "directConnection": True,
            # Local connections only: long server selection timeouts hurt us.
            "serverSelectionTimeoutMS": conf.server_selection_timeout_ms,
        }
        if conf.connection_timeout is not None:
            options["connectTimeoutMS"] = conf.connection_timeout * 1000
        if conf.heartbeat_frequency is not None:
            options["heartbeatFrequencyMS"] = conf.heartbeat_frequency * 1000
        if conf.max_idle_time is not None:
            options["maxIdleTimeMS"] = conf.max_idle_time * 1000
        if conf.mongodb_username:
            options["username"] = conf.mongodb_username
            options["password"] = conf.mongodb_password
            options["authSource"] = conf.mongodb_auth_source
        if conf.tls_enabled:
            options["tls"] = True
            if conf.tls_ca_file:
                options["tlsCAFile"] = conf.tls_ca_file
            if conf.tls_certificate_key_file:
                options["tlsCertificateKeyFile"] = conf.tls_certificate_key_file
            if conf.tls_allow_invalid_certificates:
                options["tlsAllowInvalidCertificates"] = True
            if conf.tls_allow_invalid_hostnames:
                options["tlsAllowInvalidHostnames"] = True
        return options

    @classmethod
    def connect(cls, conf: Optional[Settings] = None) -> AsyncIOMotorClient:
        """
        Create the process wide MongoDB client.

        Creating the client does not wait for the server: the node may still
        be starting and reads report it as unreachable until it answers.

        Raises:
            RuntimeError: If a client has already been created
        """
        conf = conf or default_settings
        if cls.client is not None:
            raise RuntimeError("MongoDB client already initialised")

        logger.info(
            "connecting_to_mongodb",
            address=conf.local_address,
            tls=conf.tls_enabled,
            authenticated=bool(conf.mongodb_username),
        )
        cls.client = AsyncIOMotorClient(**cls.client_options(conf))
        return cls.client

    @classmethod
    def close(cls) -> None:
        """Close MongoDB connection."""
        if cls.client is not None:
            logger.info("closing_mongodb_connection")
            cls.client.close()
            cls.client = None
            logger.info("mongodb_connection_closed")
