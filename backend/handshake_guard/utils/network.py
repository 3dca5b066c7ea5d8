"""Request helpers shared by the gate, the rate limiter and the API"""
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from handshake_guard.security.gate import CookieSettings
from handshake_guard.security.tokens import IssuedToken


def client_ip(request: Request, trust_proxy_headers: bool = False) -> Optional[str]:
    """Client address, honouring X-Forwarded-For only behind a trusted proxy."""
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    return request.client.host if request.client else None


def set_token_cookie(response: Response, issued: IssuedToken, cookie: CookieSettings) -> None:
    """Attach the handshake cookie for a newly issued token."""
    response.set_cookie(
        key=cookie.name,
        value=issued.cookie,
        max_age=cookie.max_age,
        path=cookie.path,
        secure=cookie.secure,
        httponly=cookie.http_only,
        samesite=cookie.same_site,
    )


def clear_token_cookie(response: Response, cookie: CookieSettings) -> None:
    """Expire the handshake cookie in the browser."""
    response.delete_cookie(
        key=cookie.name,
        path=cookie.path,
        secure=cookie.secure,
        httponly=cookie.http_only,
        samesite=cookie.same_site,
    )


def no_store(response: Response) -> Response:
    """Mark a response as never cacheable."""
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "Sat, 01 Jan 2000 00:00:00 GMT"
    return response
