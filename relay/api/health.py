"""Health endpoints: liveness and readiness."""
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])
logger = logging.getLogger("relay.health")


@router.get("/health/live")
async def liveness():
    """Liveness: process is running. No dependencies checked."""
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness(request: Request):
    """Readiness: relay is constructed and the reaper sweep is running."""
    errors = []
    relay = getattr(request.app.state, "relay", None)
    reaper = getattr(request.app.state, "reaper", None)
    if relay is None:
        logger.warning("readiness check failed: relay not initialized")
        errors.append("relay")
    if reaper is None or not reaper.running:
        logger.warning("readiness check failed: reaper not running")
        errors.append("reaper")

    if errors:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "errors": errors},
        )
    return {"status": "ok", "reaper": reaper.stats}
