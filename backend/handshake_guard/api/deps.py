"""API dependencies: host session id, request context and app-scoped services.

The host session cookie (Starlette ``SessionMiddleware``) carries only a
random ``sid``; every value bound to it lives in the server-side
:class:`~handshake_guard.security.sessions.SessionStore`.
"""
import secrets
from typing import Optional

from fastapi import Request

from handshake_guard.config import Settings
from handshake_guard.security import RequestContext, RequestGate, TokenLifecycle
from handshake_guard.utils.anti_forgery import AntiForgeryTokens
from handshake_guard.utils.network import client_ip

SESSION_ID_KEY = "sid"


def current_session_id(request: Request) -> Optional[str]:
    """Session id from the signed host-session cookie, if any."""
    return request.session.get(SESSION_ID_KEY)


def ensure_session_id(request: Request) -> str:
    """Return the session id, starting a new host session when there is none."""
    session_id = request.session.get(SESSION_ID_KEY)
    if not session_id:
        session_id = secrets.token_urlsafe(32)
        request.session[SESSION_ID_KEY] = session_id
    return session_id


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_lifecycle(request: Request) -> TokenLifecycle:
    return request.app.state.lifecycle


def get_gate(request: Request) -> RequestGate:
    return request.app.state.gate


def get_anti_forgery(request: Request) -> AntiForgeryTokens:
    return request.app.state.anti_forgery


def get_request_context(request: Request, create: bool = False) -> RequestContext:
    """Build the :class:`RequestContext` the token lifecycle binds tokens to.

    With ``create`` a host session is started for first-time visitors,
    which the verify endpoint needs before it can issue a token.
    """
    settings = get_settings(request)
    session_id = ensure_session_id(request) if create else current_session_id(request)
    return RequestContext(
        session_id=session_id,
        user_agent=request.headers.get("user-agent"),
        ip=client_ip(request, settings.TRUST_PROXY_HEADERS),
    )
