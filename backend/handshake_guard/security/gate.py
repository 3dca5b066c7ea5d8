"""Per-request decision procedure in front of the protected app.

The gate is framework-free: it receives a :class:`GateRequest`, returns a
:class:`GateDecision`, and leaves rendering the loader page or attaching a
rotated cookie to the web adapter (``handshake_guard.middleware.gate``).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Tuple

from handshake_guard.config import Settings
from handshake_guard.security.errors import StoreUnavailable
from handshake_guard.security.lifecycle import TokenLifecycle
from handshake_guard.security.matching import (
    ip_matches_any,
    path_matches_any,
    user_agent_matches_any,
)
from handshake_guard.security.tokens import IssuedToken, RequestContext
from handshake_guard.utils.logger import logger


class GateOutcome(str, Enum):
    PASS_THROUGH = "pass_through"
    CHALLENGE_REQUIRED = "challenge_required"
    PASS_THROUGH_WITH_ROTATED_COOKIE = "pass_through_with_rotated_cookie"


@dataclass(frozen=True)
class GateDecision:
    outcome: GateOutcome
    reason: str
    rotated: Optional[IssuedToken] = None

    @property
    def passes(self) -> bool:
        return self.outcome is not GateOutcome.CHALLENGE_REQUIRED


@dataclass(frozen=True)
class CookieSettings:
    """Attributes of the handshake cookie. HttpOnly is not configurable."""

    name: str = "af_handshake"
    lifetime_minutes: int = 5
    secure: bool = True
    same_site: str = "lax"
    path: str = "/"
    http_only: bool = field(default=True, init=False)

    @property
    def max_age(self) -> int:
        return self.lifetime_minutes * 60

    @classmethod
    def from_settings(cls, settings: Settings) -> "CookieSettings":
        return cls(
            name=settings.COOKIE_NAME,
            lifetime_minutes=settings.COOKIE_LIFETIME,
            secure=settings.COOKIE_SECURE,
            same_site=settings.COOKIE_SAME_SITE.lower(),
        )


@dataclass(frozen=True)
class GateConfig:
    """Everything the gate reads from configuration, assembled once."""

    enabled: bool = True
    excluded_paths: Tuple[str, ...] = ()
    whitelist_ips: Tuple[str, ...] = ()
    whitelist_user_agents: Tuple[str, ...] = ()
    cookie: CookieSettings = CookieSettings()
    log_blocked: bool = True
    log_renewals: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "GateConfig":
        return cls(
            enabled=settings.HANDSHAKE_ENABLED,
            excluded_paths=tuple(settings.EXCLUDED_PATHS),
            whitelist_ips=tuple(settings.whitelist_ips_list),
            whitelist_user_agents=tuple(settings.WHITELIST_USER_AGENTS),
            cookie=CookieSettings.from_settings(settings),
            log_blocked=settings.LOG_BLOCKED,
            log_renewals=settings.LOG_RENEWALS,
        )


@dataclass(frozen=True)
class GateRequest:
    """The parts of an HTTP request the gate looks at.

    ``headers`` keys are expected in lower case.
    """

    path: str
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    cookie: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def context(self) -> RequestContext:
        return RequestContext(session_id=self.session_id, user_agent=self.user_agent, ip=self.client_ip)


def is_view_source_request(request: GateRequest) -> bool:
    """Detect requests made by a browser's view-source renderer.

    These never run the client script, so a cached cookie must not let them
    through.
    """
    for header in ("purpose", "sec-purpose"):
        if request.headers.get(header, "").strip().lower() == "prefetch":
            return True

    if request.user_agent and "view-source" in request.user_agent.lower():
        return True

    return request.headers.get("referer", "").startswith("view-source:")


class RequestGate:
    """Classifies each request as pass-through, challenge or rotate-and-pass."""

    def __init__(self, config: GateConfig, lifecycle: TokenLifecycle):
        self.config = config
        self.lifecycle = lifecycle

    def decide(self, request: GateRequest) -> GateDecision:
        config = self.config

        if not config.enabled:
            return GateDecision(GateOutcome.PASS_THROUGH, "disabled")

        if is_view_source_request(request):
            return GateDecision(GateOutcome.CHALLENGE_REQUIRED, "view_source")

        if path_matches_any(request.path, config.excluded_paths):
            return GateDecision(GateOutcome.PASS_THROUGH, "excluded_path")

        if ip_matches_any(request.client_ip, config.whitelist_ips):
            return GateDecision(GateOutcome.PASS_THROUGH, "whitelisted_ip")

        if user_agent_matches_any(request.user_agent, config.whitelist_user_agents):
            return GateDecision(GateOutcome.PASS_THROUGH, "whitelisted_user_agent")

        if not request.cookie:
            return GateDecision(GateOutcome.CHALLENGE_REQUIRED, "missing_token")

        try:
            result = self.lifecycle.validate_and_renew(request.cookie, request.context)
        except StoreUnavailable as exc:
            logger.error(
                "Handshake gate could not reach the session store",
                extra={"ip": request.client_ip, "path": request.path, "error": str(exc)},
            )
            return GateDecision(GateOutcome.CHALLENGE_REQUIRED, "store_unavailable")

        if not result.valid:
            if config.log_blocked:
                logger.warning(
                    "Handshake gate blocked request - invalid token",
                    extra={
                        "ip": request.client_ip,
                        "path": request.path,
                        "user_agent": request.user_agent,
                        "reason": "invalid_token",
                    },
                )
            return GateDecision(GateOutcome.CHALLENGE_REQUIRED, "invalid_token")

        if result.renewed:
            if config.log_renewals:
                logger.info(
                    "Handshake gate auto-renewed token",
                    extra={"ip": request.client_ip, "path": request.path},
                )
            return GateDecision(
                GateOutcome.PASS_THROUGH_WITH_ROTATED_COOKIE,
                "rotated",
                rotated=result.issued,
            )

        return GateDecision(GateOutcome.PASS_THROUGH, "valid_token")
