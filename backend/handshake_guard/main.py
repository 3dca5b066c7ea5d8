"""FastAPI application entry point"""
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from starlette.middleware.sessions import SessionMiddleware

from handshake_guard import __version__
from handshake_guard.api import handshake, health, pages
from handshake_guard.config import Settings, settings as default_settings
from handshake_guard.middleware.gate import HandshakeGateMiddleware
from handshake_guard.middleware.rate_limit import build_limiter, rate_limit_exceeded_handler
from handshake_guard.security import (
    GateConfig,
    RequestGate,
    TokenCodec,
    TokenLifecycle,
    TokenPolicy,
    TokenStore,
    build_session_store,
)
from handshake_guard.utils.anti_forgery import AntiForgeryTokens
from handshake_guard.utils.keys import derive_key, load_master_secret
from handshake_guard.utils.logger import logger, setup_logging

STATIC_DIR = Path(__file__).resolve().parent / "static"


def build_lifecycle(settings: Settings, master_secret: bytes, clock: Callable[[], float] = time.time) -> TokenLifecycle:
    """Wire codec, token store and policy for one application instance"""
    return TokenLifecycle(
        codec=TokenCodec(derive_key(master_secret, "token")),
        store=TokenStore(build_session_store(settings, clock=clock)),
        policy=TokenPolicy.from_settings(settings),
        clock=clock,
    )


def create_app(settings: Optional[Settings] = None, clock: Callable[[], float] = time.time) -> FastAPI:
    """Build the HandshakeGuard application.

    ``clock`` is the time source shared by the token lifecycle, the session
    store and the anti-forgery tokens; tests inject a fake one.
    """
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler"""
        logger.info("HandshakeGuard starting up", extra={
            "version": __version__,
            "handshake_enabled": settings.HANDSHAKE_ENABLED,
            "session_backend": settings.SESSION_BACKEND,
            "log_level": settings.LOG_LEVEL,
            "rate_limiting": settings.RATE_LIMIT_ENABLED,
            "monitoring": settings.METRICS_ENABLED
        })
        yield
        logger.info("HandshakeGuard shutting down")

    app = FastAPI(
        title="HandshakeGuard",
        description="Session-bound handshake tokens gating access to a web application",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # ===== Security components =====

    master_secret = load_master_secret(settings)
    lifecycle = build_lifecycle(settings, master_secret, clock)
    gate = RequestGate(GateConfig.from_settings(settings), lifecycle)

    app.state.settings = settings
    app.state.lifecycle = lifecycle
    app.state.gate = gate
    app.state.anti_forgery = AntiForgeryTokens(
        derive_key(master_secret, "anti-forgery"),
        ttl_seconds=settings.ANTI_FORGERY_TTL,
        algorithm=settings.ANTI_FORGERY_ALGORITHM,
        clock=clock,
    )

    # ===== Middleware Setup =====
    # Added innermost first: CORS > monitoring > session > gate > routes

    app.add_middleware(
        HandshakeGateMiddleware,
        gate=gate,
        trust_proxy_headers=settings.TRUST_PROXY_HEADERS,
    )

    app.add_middleware(
        SessionMiddleware,
        secret_key=derive_key(master_secret, "session").hex(),
        session_cookie=settings.SESSION_COOKIE,
        max_age=settings.SESSION_LIFETIME_MINUTES * 60,
        same_site=settings.COOKIE_SAME_SITE.lower(),
        https_only=settings.COOKIE_SECURE,
    )

    # Monitoring middleware
    if settings.METRICS_ENABLED:
        from prometheus_fastapi_instrumentator import Instrumentator

        from handshake_guard.middleware.monitoring import MonitoringMiddleware
        app.add_middleware(MonitoringMiddleware)

        # Prometheus metrics
        instrumentator = Instrumentator(
            should_group_status_codes=True,
            should_ignore_untemplated=True,
            should_respect_env_var=True,
            should_instrument_requests_inprogress=True,
            excluded_handlers=[settings.METRICS_PATH, "/health", "/health/ready", "/health/live"],
            inprogress_name="handshake_guard_requests_inprogress",
            inprogress_labels=True
        )
        instrumentator.instrument(app)
        instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting
    limiter = build_limiter(settings)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # ===== Route Setup =====

    app.mount("/_security/assets", StaticFiles(directory=str(STATIC_DIR)), name="handshake-assets")
    app.include_router(health.router)
    app.include_router(handshake.build_router(limiter, settings))
    app.include_router(pages.router)

    @app.get("/")
    def root():
        """Root endpoint (behind the gate)"""
        return {
            "service": "HandshakeGuard",
            "version": __version__,
            "status": "operational",
            "health": "/health",
            "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None
        }

    # ===== Error Handlers =====

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for uncaught errors"""
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method
            },
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please contact support."
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.HOST, port=default_settings.PORT)
