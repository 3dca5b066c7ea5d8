"""Loader and blocked pages"""
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from handshake_guard.api.deps import ensure_session_id, get_anti_forgery, get_settings
from handshake_guard.utils.network import no_store

router = APIRouter(tags=["pages"])

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

HANDSHAKE_PREFIX = "/_security/handshake"
ASSETS_PREFIX = "/_security/assets"


def safe_return_path(target: Optional[str]) -> str:
    """Only same-site relative paths are followed after verification."""
    if not target or not target.startswith("/") or target.startswith("//") or "\\" in target:
        return "/"
    return target


def client_config(request: Request) -> dict:
    """Values the browser script reads from the loader page"""
    settings = get_settings(request)
    return {
        "handshakeUrl": HANDSHAKE_PREFIX,
        "blockedUrl": "/blocked",
        "loaderUrl": "/loader",
        "sizeThreshold": settings.DETECTION_SIZE_THRESHOLD,
        "timingThreshold": settings.DETECTION_TIMING_THRESHOLD,
        "loopIterations": settings.DETECTION_LOOP_ITERATIONS,
        "pollInterval": settings.DETECTION_POLL_INTERVAL_MS,
        "renewalInterval": min(settings.RENEWAL_CHECK_INTERVAL, settings.TOKEN_ROTATION_INTERVAL) * 1000,
        "maxAttempts": settings.HANDSHAKE_MAX_ATTEMPTS,
        "consoleTampering": settings.DETECTION_CONSOLE_TAMPERING,
        "networkMonitoring": settings.DETECTION_NETWORK_MONITORING,
        "networkRequestLimit": settings.DETECTION_NETWORK_REQUEST_LIMIT,
    }


def render_loader(request: Request, return_to: Optional[str]) -> HTMLResponse:
    """Neutral challenge page that runs the handshake and then returns to ``return_to``.

    Carries a fresh anti-forgery token bound to the host session, both in the
    page and in the ``X-CSRF-Token`` header.
    """
    session_id = ensure_session_id(request)
    csrf_token = get_anti_forgery(request).create(session_id)

    response = templates.TemplateResponse(
        request,
        "loader.html",
        {
            "csrf_token": csrf_token,
            "return_url": safe_return_path(return_to),
            "script_url": f"{ASSETS_PREFIX}/handshake.js",
            "config": client_config(request),
        },
    )
    response.headers["X-Handshake-Challenge"] = "loader"
    response.headers["X-CSRF-Token"] = csrf_token
    return no_store(response)


@router.get("/loader", response_class=HTMLResponse)
def loader_page(request: Request, return_to: Optional[str] = Query(None, alias="return")):
    """Loader page (normally served by the gate in place of the requested page)"""
    return render_loader(request, return_to)


@router.get("/blocked", response_class=HTMLResponse)
def blocked_page(request: Request):
    """Shown while developer tools are detected"""
    response = templates.TemplateResponse(
        request,
        "blocked.html",
        {
            "script_url": f"{ASSETS_PREFIX}/handshake.js",
            "config": client_config(request),
        },
    )
    return no_store(response)
