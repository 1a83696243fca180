"""
Health check endpoints for monitoring and orchestration.
Provides liveness, readiness, and startup probes.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from mongoagent.api.dependencies import get_action_manager, get_driver
from mongoagent.core.action_manager import ActionManager
from mongoagent.services.mongo_driver import MongoDriver

router = APIRouter()


@router.get("/")
async def health_check(request: Request):
    """
    Basic health check endpoint.
    Returns current status and version.
    """
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "mode": settings.mode.value,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/live")
async def liveness():
    """
    Liveness probe.
    Indicates whether the agent should be restarted.
    """
    return {"status": "alive", "timestamp": datetime.utcnow().isoformat()}


@router.get("/ready")
async def readiness(
    driver: MongoDriver = Depends(get_driver),
    manager: ActionManager = Depends(get_action_manager),
):
    """
    Readiness probe.
    Indicates whether the agent can reach its local MongoDB node.
    """
    db_healthy = await driver.ping()
    running = manager.running

    content = {
        "status": "ready" if db_healthy else "not_ready",
        "mongodb": "healthy" if db_healthy else "unhealthy",
        "running_action": running.id if running else None,
        "timestamp": datetime.utcnow().isoformat(),
    }
    if not db_healthy:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=content)
    return content


@router.get("/startup")
async def startup(driver: MongoDriver = Depends(get_driver)):
    """
    Startup probe.
    Indicates whether the agent has started successfully.
    """
    db_healthy = await driver.ping()

    return {
        "status": "started" if db_healthy else "starting",
        "database": "connected" if db_healthy else "connecting",
        "timestamp": datetime.utcnow().isoformat(),
    }
