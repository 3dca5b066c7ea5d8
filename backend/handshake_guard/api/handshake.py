"""Handshake endpoints: verify, renew, status and revoke"""
from typing import Optional

from fastapi import APIRouter, Header, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter

from handshake_guard.api.deps import (
    get_anti_forgery,
    get_gate,
    get_lifecycle,
    get_request_context,
    get_settings,
)
from handshake_guard.config import Settings
from handshake_guard.middleware.monitoring import record_handshake_event
from handshake_guard.schemas.handshake import (
    ErrorResponse,
    RenewResponse,
    RevokeResponse,
    StatusResponse,
    TokenMetadata,
    VerifyResponse,
)
from handshake_guard.security import StoreUnavailable
from handshake_guard.utils.logger import logger
from handshake_guard.utils.network import clear_token_cookie, no_store, set_token_cookie

HANDSHAKE_PREFIX = "/_security/handshake"

_error_responses = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _error(status_code: int, error: str, action: Optional[str] = None) -> JSONResponse:
    return no_store(JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, action=action).body(),
    ))


# ---------------------------------------------------------------------------
# POST /_security/handshake/verify
# ---------------------------------------------------------------------------

def verify_handshake(
    request: Request,
    x_csrf_token: Optional[str] = Header(None),
):
    """Complete the handshake and set the token cookie.

    The browser calls this after its integrity check passes. It must echo the
    anti-forgery token from the loader page in ``X-CSRF-Token``.
    """
    settings = get_settings(request)
    ctx = get_request_context(request, create=True)

    if not get_anti_forgery(request).verify(x_csrf_token, ctx.session_id):
        record_handshake_event("failed")
        logger.warning(
            "Security handshake rejected - invalid anti-forgery token",
            extra={"ip": ctx.ip, "user_agent": ctx.user_agent, "reason": "anti_forgery"},
        )
        return _error(status.HTTP_403_FORBIDDEN, "Invalid or missing anti-forgery token.")

    lifecycle = get_lifecycle(request)
    try:
        issued = lifecycle.issue(ctx)
    except StoreUnavailable as e:
        record_handshake_event("failed")
        logger.error(
            "Security handshake failed",
            extra={"ip": ctx.ip, "user_agent": ctx.user_agent, "error": str(e)},
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Handshake failed. Please try again.")

    record_handshake_event("issued")
    if settings.LOG_HANDSHAKES:
        logger.info(
            "Security handshake successful",
            extra={"ip": ctx.ip, "user_agent": ctx.user_agent, "expires_at": issued.expires_at},
        )

    body = VerifyResponse(
        expires_at=issued.expires_at,
        expires_in=issued.expires_at - lifecycle.now(),
    )
    response = JSONResponse(content=body.model_dump())
    set_token_cookie(response, issued, get_gate(request).config.cookie)
    return no_store(response)


# ---------------------------------------------------------------------------
# POST /_security/handshake/renew
# ---------------------------------------------------------------------------

def renew_handshake(request: Request):
    """Rotate a still-valid token before it expires."""
    settings = get_settings(request)
    cookie_settings = get_gate(request).config.cookie
    lifecycle = get_lifecycle(request)
    ctx = get_request_context(request)
    cookie = request.cookies.get(cookie_settings.name)

    try:
        if not cookie or not lifecycle.verify(cookie, ctx):
            record_handshake_event("failed")
            return _error(
                status.HTTP_401_UNAUTHORIZED,
                "Invalid or expired token. Please reload the page.",
                action="reload",
            )
        issued = lifecycle.renew(ctx)
    except StoreUnavailable as e:
        record_handshake_event("failed")
        logger.error("Token renewal failed", extra={"ip": ctx.ip, "error": str(e)})
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Renewal failed. Please reload the page.",
            action="reload",
        )

    record_handshake_event("renewed")
    if settings.LOG_RENEWALS:
        logger.info("Security token renewed", extra={"ip": ctx.ip, "expires_at": issued.expires_at})

    body = RenewResponse(
        expires_at=issued.expires_at,
        expires_in=issued.expires_at - lifecycle.now(),
    )
    response = JSONResponse(content=body.model_dump())
    set_token_cookie(response, issued, cookie_settings)
    return no_store(response)


# ---------------------------------------------------------------------------
# GET /_security/handshake/status
# ---------------------------------------------------------------------------

def handshake_status(request: Request):
    """Read-only diagnostic for the current token (debugging/monitoring)."""
    lifecycle = get_lifecycle(request)
    ctx = get_request_context(request)
    cookie = request.cookies.get(get_gate(request).config.cookie.name)

    if not cookie:
        body = StatusResponse(valid=False, message="No token present")
        return no_store(JSONResponse(content=body.model_dump(exclude_none=True)))

    try:
        valid = lifecycle.verify(cookie, ctx)
        metadata = lifecycle.metadata(ctx.session_id)
    except StoreUnavailable as e:
        logger.error("Token status check failed", extra={"ip": ctx.ip, "error": str(e)})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Status unavailable.")

    body = StatusResponse(
        valid=valid,
        is_expiring=lifecycle.is_expiring(cookie),
        metadata=TokenMetadata(**metadata),
        message="Token is valid" if valid else "Token is invalid or expired",
    )
    return no_store(JSONResponse(content=body.model_dump()))


# ---------------------------------------------------------------------------
# POST /_security/handshake/revoke
# ---------------------------------------------------------------------------

def revoke_handshake(request: Request):
    """Drop the session's token and expire the cookie (logout/invalidate)."""
    settings = get_settings(request)
    ctx = get_request_context(request)

    if ctx.session_id:
        try:
            get_lifecycle(request).revoke(ctx.session_id)
        except StoreUnavailable as e:
            logger.error("Token revocation failed", extra={"ip": ctx.ip, "error": str(e)})
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Revocation failed")

    record_handshake_event("revoked")
    if settings.LOG_REVOCATIONS:
        logger.info("Security token revoked", extra={"ip": ctx.ip})

    response = JSONResponse(content=RevokeResponse().model_dump())
    clear_token_cookie(response, get_gate(request).config.cookie)
    return no_store(response)


def build_router(limiter: Limiter, settings: Settings) -> APIRouter:
    """Handshake routes with verify/renew budgets taken from ``settings``.

    Built per application so that each app counts attempts with its own
    limiter and limits.
    """
    router = APIRouter(prefix=HANDSHAKE_PREFIX, tags=["handshake"])
    router.add_api_route(
        "/verify",
        limiter.limit(settings.RATE_LIMIT_VERIFY)(verify_handshake),
        methods=["POST"],
        response_model=VerifyResponse,
        responses=_error_responses,
    )
    router.add_api_route(
        "/renew",
        limiter.limit(settings.RATE_LIMIT_RENEW)(renew_handshake),
        methods=["POST"],
        response_model=RenewResponse,
        responses=_error_responses,
    )
    router.add_api_route(
        "/status",
        handshake_status,
        methods=["GET"],
        response_model=StatusResponse,
        responses={500: {"model": ErrorResponse}},
    )
    router.add_api_route(
        "/revoke",
        revoke_handshake,
        methods=["POST"],
        response_model=RevokeResponse,
        responses={500: {"model": ErrorResponse}},
    )
    return router
