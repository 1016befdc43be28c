import time
from datetime import datetime, timezone

import redis
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from database import get_redis, is_redis_healthy

router = APIRouter(prefix="/health", tags=["health"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
def health(request: Request, client: redis.Redis = Depends(get_redis)):
    settings = request.app.state.settings
    health_check = {
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "message": "OK",
        "timestamp": _timestamp(),
        "service": settings.service_name,
        "version": settings.version,
    }

    if is_redis_healthy(client):
        health_check["database"] = "connected"
        return JSONResponse(status_code=200, content=health_check)

    health_check["database"] = "disconnected"
    return JSONResponse(status_code=503, content=health_check)


@router.get("/ready")
def readiness(client: redis.Redis = Depends(get_redis)):
    if is_redis_healthy(client):
        return JSONResponse(status_code=200, content={"status": "ready", "timestamp": _timestamp()})

    return JSONResponse(
        status_code=503,
        content={"status": "not ready", "reason": "Database not connected", "timestamp": _timestamp()},
    )


@router.get("/live")
def liveness():
    return {"status": "alive", "timestamp": _timestamp()}
