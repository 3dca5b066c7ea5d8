"""Health check endpoints"""
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from handshake_guard import __version__
from handshake_guard.api.deps import get_lifecycle, get_settings

router = APIRouter(prefix="/health", tags=["health"])

# Track startup time
STARTUP_TIME = time.time()


@router.get("")
def health_check():
    """
    Basic health check endpoint

    Returns 200 if service is running
    """
    return {
        "status": "healthy",
        "service": "HandshakeGuard",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/ready")
def readiness_check(request: Request) -> Dict[str, Any]:
    """
    Readiness check - verifies the session store backing the tokens is reachable

    Returns 200 if ready to serve traffic, 503 if not ready
    """
    settings = get_settings(request)
    checks = {
        "session_store": False,
        "session_store_backend": settings.SESSION_BACKEND,
        "session_store_latency_ms": None,
        "handshake_enabled": settings.HANDSHAKE_ENABLED,
    }

    start = time.time()
    reachable = get_lifecycle(request).store.sessions.ping()
    latency_ms = (time.time() - start) * 1000

    checks["session_store"] = reachable
    checks["session_store_latency_ms"] = round(latency_ms, 2)

    if not reachable:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "checks": checks,
                "message": "Session store is unreachable"
            },
        )

    # Check if the store is too slow
    if latency_ms > 1000:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "degraded",
                "checks": checks,
                "message": "Session store latency is high"
            },
        )

    return {
        "status": "ready",
        "checks": checks,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/live")
def liveness_check():
    """
    Liveness check - verifies service is alive

    Returns 200 if process is alive
    """
    return {
        "status": "alive",
        "uptime_seconds": round(time.time() - STARTUP_TIME, 2),
        "timestamp": datetime.utcnow().isoformat()
    }
