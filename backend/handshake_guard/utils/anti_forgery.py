"""Anti-forgery tokens for the handshake verify call (session-bound JWTs)"""
import time
import uuid
from typing import Any, Callable, Dict, Optional

from jose import JWTError, jwt

from handshake_guard.utils.logger import logger

TOKEN_TYPE = "anti_forgery"


class AntiForgeryTokens:
    """Issues and checks short-lived HS256 JWTs bound to a session id.

    The loader page embeds one of these; ``POST /_security/handshake/verify``
    must echo it back in the ``X-CSRF-Token`` header from the same session.
    """

    def __init__(
        self,
        key: bytes,
        ttl_seconds: int = 600,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ):
        self._key = key
        self._ttl = ttl_seconds
        self._algorithm = algorithm
        self._clock = clock

    def create(self, session_id: str) -> str:
        """Sign and return an anti-forgery token for ``session_id``."""
        now = int(self._clock())
        payload: Dict[str, Any] = {
            "sub": session_id,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + self._ttl,
            "type": TOKEN_TYPE,
        }
        return jwt.encode(payload, self._key, algorithm=self._algorithm)

    def verify(self, token: Optional[str], session_id: Optional[str]) -> bool:
        """Check signature, expiry, type and session binding.

        Expiry is checked against the injected clock rather than by jose so
        that it follows the same time source as the handshake tokens.
        """
        if not token or not session_id:
            return False

        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.debug(f"Anti-forgery token decode failed: {exc}")
            return False

        if payload.get("type") != TOKEN_TYPE:
            return False
        exp = payload.get("exp")
        if not isinstance(exp, int) or self._clock() > exp:
            return False
        return payload.get("sub") == session_id
