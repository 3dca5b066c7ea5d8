"""Handshake token lifecycle: issue, verify, renew, rotate, revoke.

Per session the token moves through::

    NoToken -> Issued/Valid -> Expiring -> Expired | Revoked

``verify`` runs its checks in a fixed order and never partially succeeds.
A store failure is not a verification result: it surfaces as
:class:`StoreUnavailable` so that callers can decide how to fail closed.
"""
import hmac
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from handshake_guard.config import Settings
from handshake_guard.security.codec import TokenCodec
from handshake_guard.security.errors import (
    DecodeError,
    ExpiredError,
    SessionMismatchError,
    SupersededError,
    TokenRejected,
)
from handshake_guard.security.store import TokenStore
from handshake_guard.security.tokens import (
    IssuedToken,
    RenewalResult,
    RequestContext,
    Token,
    TokenEnvelope,
)
from handshake_guard.utils.logger import logger


def _same(left: str, right: str) -> bool:
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


@dataclass(frozen=True)
class TokenPolicy:
    """Immutable lifecycle timing and fingerprint settings."""

    lifetime: int = 300
    grace_period: int = 60
    renewal_threshold: int = 60
    rotation_interval: int = 240
    fingerprint_validation: bool = True
    strict_ip_check: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenPolicy":
        return cls(
            lifetime=settings.TOKEN_LIFETIME,
            grace_period=settings.TOKEN_GRACE_PERIOD,
            renewal_threshold=settings.TOKEN_RENEWAL_THRESHOLD,
            rotation_interval=settings.TOKEN_ROTATION_INTERVAL,
            fingerprint_validation=settings.TOKEN_FINGERPRINT_VALIDATION,
            strict_ip_check=settings.TOKEN_STRICT_IP_CHECK,
        )


class TokenLifecycle:
    """Issues and validates handshake tokens for server-side sessions."""

    def __init__(
        self,
        codec: TokenCodec,
        store: TokenStore,
        policy: Optional[TokenPolicy] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.codec = codec
        self.store = store
        self.policy = policy or TokenPolicy()
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue(self, ctx: RequestContext) -> IssuedToken:
        """Create a token for the session, record it and return its cookie value."""
        if not ctx.session_id:
            raise ValueError("cannot issue a handshake token without a session")

        issued_at = self.now()
        token = Token(
            id=str(uuid.uuid4()),
            session_id=ctx.session_id,
            issued_at=issued_at,
            expires_at=issued_at + self.policy.lifetime,
            user_agent=ctx.user_agent,
            ip=ctx.ip,
        )
        self.store.put(ctx.session_id, token)
        return IssuedToken(token=token, cookie=self.codec.encode(token))

    def renew(self, ctx: RequestContext) -> IssuedToken:
        """Atomically replace the session's token with a new one.

        Concurrent renewals for one session serialize on the store lock and
        the last writer wins; envelopes returned to earlier callers fail
        their next :meth:`verify` with :class:`SupersededError`.
        """
        if not ctx.session_id:
            raise ValueError("cannot renew a handshake token without a session")

        with self.store.lock(ctx.session_id):
            self.store.clear(ctx.session_id)
            return self.issue(ctx)

    def revoke(self, session_id: str) -> None:
        """Drop the session's token. Safe to call repeatedly."""
        self.store.clear(session_id)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def check(self, cookie: str, ctx: RequestContext) -> TokenEnvelope:
        """Return the decoded envelope if the cookie is acceptable.

        Raises:
            DecodeError:          malformed or tampered envelope.
            ExpiredError:         past ``expires_at + grace_period``.
            SessionMismatchError: other session, user agent or (strict) IP.
            SupersededError:      rotated away or revoked.
            StoreUnavailable:     backing store failure.
        """
        envelope = self.codec.decode(cookie)

        if self._clock() > envelope.expires_at + self.policy.grace_period:
            raise ExpiredError("token expired beyond grace period")

        if not ctx.session_id or not _same(envelope.session_id, ctx.session_id):
            raise SessionMismatchError("token bound to another session")

        current = self.store.get(ctx.session_id)
        if current is None or not _same(current.id, envelope.token_id):
            raise SupersededError("token is not the current token for the session")

        if self.policy.fingerprint_validation:
            if envelope.user_agent is not None and envelope.user_agent != ctx.user_agent:
                raise SessionMismatchError("user agent changed since issuance")
            if self.policy.strict_ip_check and envelope.ip is not None and envelope.ip != ctx.ip:
                raise SessionMismatchError("client IP changed since issuance")

        return envelope

    def verify(self, cookie: str, ctx: RequestContext) -> bool:
        """True only if every check passes; StoreUnavailable propagates."""
        try:
            self.check(cookie, ctx)
        except TokenRejected as exc:
            logger.debug(
                f"Handshake token rejected: {exc}",
                extra={"reason": exc.reason, "ip": ctx.ip},
            )
            return False
        return True

    def is_expiring(self, cookie: Optional[str] = None, session_id: Optional[str] = None) -> bool:
        """True once the remaining lifetime is within the renewal threshold.

        Checks the cookie if given, otherwise the session's stored token.
        An undecodable cookie or a missing token counts as expiring.
        """
        if cookie is not None:
            try:
                expires_at = self.codec.decode(cookie).expires_at
            except DecodeError:
                return True
        elif session_id is not None:
            token = self.store.get(session_id)
            if token is None:
                return True
            expires_at = token.expires_at
        else:
            return True

        return expires_at - self._clock() <= self.policy.renewal_threshold

    def needs_rotation(self, session_id: str) -> bool:
        """True when the current token is older than the rotation interval."""
        token = self.store.get(session_id)
        if token is None:
            return True
        return self._clock() - token.issued_at >= self.policy.rotation_interval

    def validate_and_renew(self, cookie: str, ctx: RequestContext) -> RenewalResult:
        """Verify the cookie, rotating it when expiring or due for rotation."""
        if not self.verify(cookie, ctx):
            return RenewalResult(valid=False)

        if self.is_expiring(cookie) or self.needs_rotation(ctx.session_id):
            return RenewalResult(valid=True, renewed=True, issued=self.renew(ctx))

        return RenewalResult(valid=True)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def remaining_time(self, session_id: str) -> int:
        """Seconds until the session's token expires (0 when absent or past)."""
        token = self.store.get(session_id)
        if token is None:
            return 0
        return max(0, token.expires_at - self.now())

    def metadata(self, session_id: Optional[str]) -> Dict[str, Any]:
        """Describe the session's current token for the status endpoint."""
        token = self.store.get(session_id) if session_id else None
        if token is None:
            return {
                "token_id": None,
                "created_at": None,
                "expires_at": None,
                "age_seconds": None,
                "remaining_seconds": 0,
                "is_expiring": True,
            }

        now = self.now()
        return {
            "token_id": token.id,
            "created_at": token.issued_at,
            "expires_at": token.expires_at,
            "age_seconds": now - token.issued_at,
            "remaining_seconds": max(0, token.expires_at - now),
            "is_expiring": token.expires_at - now <= self.policy.renewal_threshold,
        }
