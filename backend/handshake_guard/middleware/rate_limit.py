"""Rate limiting for the handshake endpoints"""
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from handshake_guard.config import Settings
from handshake_guard.utils.logger import logger
from handshake_guard.utils.network import client_ip


def get_identifier(request: Request) -> str:
    """Rate-limit key: the client IP address"""
    trust_proxy_headers = request.app.state.settings.TRUST_PROXY_HEADERS
    return client_ip(request, trust_proxy_headers) or "unknown"


def build_limiter(settings: Settings) -> Limiter:
    """Limiter with its own counters, configured from one application's settings."""
    return Limiter(
        key_func=get_identifier,
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        strategy=settings.RATE_LIMIT_STRATEGY,
        headers_enabled=True,
        enabled=settings.RATE_LIMIT_ENABLED,
    )


def retry_after_seconds(request: Request, exc: RateLimitExceeded) -> int:
    """Seconds until the exhausted window frees a slot."""
    current = getattr(request.state, "view_rate_limit", None)
    if current is not None:
        limiter: Limiter = request.app.state.limiter
        reset_at, _remaining = limiter.limiter.get_window_stats(current[0], *current[1])
        return max(1, int(reset_at - time.time()) + 1)
    return exc.limit.limit.get_expiry()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Fail fast with 429 and a retry hint instead of queueing the request"""
    retry_after = retry_after_seconds(request, exc)
    logger.warning(
        "Rate limit exceeded",
        extra={
            "path": request.url.path,
            "method": request.method,
            "ip": get_identifier(request),
        },
    )
    if request.url.path.endswith("/renew"):
        error = "Too many renewal attempts."
    else:
        error = "Too many handshake attempts. Please try again later."

    response = JSONResponse(
        status_code=429,
        content={"ok": False, "error": error, "retry_after": retry_after},
    )
    response.headers["Retry-After"] = str(retry_after)
    return response
