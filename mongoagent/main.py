"""
Main FastAPI application entry point.
Node-local agent reconciling MongoDB replica set topology.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from mongoagent.api.v1 import actions, health, info
from mongoagent.config.database import MongoConnection
from mongoagent.config.logging import configure_logging, get_logger
from mongoagent.config.settings import Settings, settings as default_settings
from mongoagent.core.action_manager import ActionManager
from mongoagent.exceptions import AgentException
from mongoagent.modes.dispatcher import ModeDispatcher
from mongoagent.replicaset.applier import ReconfigurationApplier
from mongoagent.replicaset.planner import TopologyPlanner
from mongoagent.replicaset.reader import TopologyReader
from mongoagent.replicaset.status import NodeInformation
from mongoagent.replicaset.version import StoreVersionDetector
from mongoagent.services.mongo_driver import MongoDriver
from mongoagent.utils.retry import BackoffPolicy

logger = get_logger(__name__)


def build_agent(app: FastAPI, driver: MongoDriver, conf: Settings) -> None:
    """Wire the topology engine around a driver and attach it to the app."""
    planner = TopologyPlanner(conf.member_host, conf.replica_set_settings)
    manager = ActionManager(
        dispatcher=ModeDispatcher(conf.mode, planner),
        reader=TopologyReader(driver, timeout=conf.read_timeout),
        applier=ReconfigurationApplier(driver, timeout=conf.apply_timeout),
        policy=BackoffPolicy.from_settings(conf),
        action_timeout=conf.action_timeout,
        history_limit=conf.action_history_limit,
    )

    app.state.driver = driver
    app.state.manager = manager
    app.state.node_information = NodeInformation(
        driver,
        node_id=conf.node_id,
        agent_version=conf.app_version,
        mode=conf.mode.value,
        version_detector=StoreVersionDetector(
            driver,
            command=conf.version_command,
            file=conf.version_file,
            timeout=conf.read_timeout,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    conf: Settings = app.state.settings
    logger.info(
        "application_starting",
        version=conf.app_version,
        environment=conf.environment,
        mode=conf.mode.value,
        local_address=conf.local_address,
    )

    owns_connection = getattr(app.state, "driver", None) is None
    if owns_connection:
        try:
            client = MongoConnection.connect(conf)
        except Exception as e:
            logger.error("application_startup_failed", error=str(e))
            raise
        build_agent(app, MongoDriver(client), conf)

    logger.info("application_started", member_host=conf.member_host)

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await app.state.manager.shutdown()

    if owns_connection:
        MongoConnection.close()

    logger.info("application_shutdown_complete")


def _sanitize_errors(errors):
    """Sanitize Pydantic validation errors to be JSON serializable."""
    sanitized = []
    for error in errors:
        sanitized_error = {}
        for key, value in error.items():
            if key == "ctx" and isinstance(value, dict):
                sanitized_error[key] = {k: str(v) for k, v in value.items()}
            elif isinstance(value, (str, int, float, bool, type(None))):
                sanitized_error[key] = value
            elif isinstance(value, (list, tuple)):
                sanitized_error[key] = list(value)
            else:
                sanitized_error[key] = str(value)
        sanitized.append(sanitized_error)
    return sanitized


def register_exception_handlers(app: FastAPI, conf: Settings) -> None:
    @app.exception_handler(AgentException)
    async def agent_exception_handler(request: Request, exc: AgentException) -> JSONResponse:
        """Handle errors raised by the agent API."""
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "agent_exception",
            path=request.url.path,
            method=request.method,
            kind=exc.kind,
            error=exc.message,
            status_code=exc.status_code,
            details=exc.details,
        )

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "kind": exc.kind,
                    "message": exc.message,
                    "details": exc.details,
                    "status_code": exc.status_code,
                }
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors."""
        errors = _sanitize_errors(exc.errors())

        logger.warning(
            "validation_error",
            path=request.url.path,
            method=request.method,
            errors=errors,
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "kind": "ValidationError",
                    "message": "Validation error",
                    "details": errors,
                    "status_code": 422,
                }
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle all other exceptions."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "kind": "Internal",
                    "message": "Internal server error",
                    "details": {} if conf.is_production else {"error": str(exc)},
                    "status_code": 500,
                }
            },
        )


def create_app(conf: Optional[Settings] = None, driver: Optional[MongoDriver] = None) -> FastAPI:
    """
    Create the agent application.

    Args:
        conf: Agent settings (defaults to the process settings)
        driver: Driver to run the agent with; when omitted the lifespan
            connects to the local node
    """
    conf = conf or default_settings

    app = FastAPI(
        title=conf.app_name,
        version=conf.app_version,
        description="Node-local agent reconciling MongoDB replica set topology",
        docs_url="/docs" if not conf.is_production else None,
        redoc_url="/redoc" if not conf.is_production else None,
        openapi_url="/openapi.json" if not conf.is_production else None,
        lifespan=lifespan,
    )
    app.state.settings = conf
    if driver is not None:
        build_agent(app, driver, conf)

    register_exception_handlers(app, conf)

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests."""
        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        response = await call_next(request)

        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )

        return response

    # Initialize Prometheus metrics
    if conf.prometheus_enabled:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    # Include routers
    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(actions.router, prefix="/api/v1/actions", tags=["Actions"])
    app.include_router(info.router, prefix="/api/v1/info", tags=["Info"])

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint."""
        return {
            "name": conf.app_name,
            "version": conf.app_version,
            "environment": conf.environment,
            "mode": conf.mode.value,
            "node_id": conf.node_id,
            "status": "running",
        }

    return app


def init_sentry(conf: Settings) -> None:
    """Initialize Sentry for error tracking (production)."""
    if conf.sentry_dsn and conf.is_production:
        sentry_sdk.init(
            dsn=conf.sentry_dsn,
            traces_sample_rate=conf.sentry_traces_sample_rate,
            environment=conf.environment,
            release=conf.app_version,
        )


def main() -> None:
    """Run the agent with uvicorn."""
    import uvicorn

    configure_logging(default_settings)
    init_sentry(default_settings)

    try:
        uvicorn.run(
            "mongoagent.main:create_app",
            factory=True,
            host=default_settings.host,
            port=default_settings.port,
            reload=default_settings.reload,
            log_level=default_settings.log_level.lower(),
        )
    except KeyboardInterrupt:
        logger.info("application_stopped")
    except SystemExit as e:
        # uvicorn exits non-zero when the lifespan startup fails.
        if e.code not in (0, None):
            logger.error("application_exited", exit_code=e.code)
        raise


if __name__ == "__main__":
    main()
