"""TokenStore: the server-side source of truth for the current token per session"""
import threading
import zlib
from contextlib import contextmanager
from typing import Iterator, Optional

from handshake_guard.security.errors import StoreUnavailable
from handshake_guard.security.sessions import SessionStore
from handshake_guard.security.tokens import Token

TOKEN_KEY = "_handshake_token"
LOCK_STRIPES = 64


class TokenStore:
    """Keeps at most one authoritative token per session.

    The whole token is written as one session value, so ``put`` is a single
    replace. Writers for the same session are additionally serialized by a
    re-entrant lock striped by session id, which :meth:`lock` exposes so callers can
    make a read-modify-write sequence (revoke then issue) atomic.
    """

    def __init__(self, sessions: SessionStore):
        self._sessions = sessions
        self._locks = [threading.RLock() for _ in range(LOCK_STRIPES)]

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    def _session_lock(self, session_id: str):
        return self._locks[zlib.crc32(session_id.encode("utf-8")) % LOCK_STRIPES]

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """Hold the write lock for ``session_id``."""
        lock = self._session_lock(session_id)
        with lock:
            yield

    def put(self, session_id: str, token: Token) -> None:
        if token.session_id != session_id:
            raise ValueError("token is bound to a different session")
        with self.lock(session_id):
            self._sessions.put(session_id, TOKEN_KEY, token.to_dict())

    def get(self, session_id: str) -> Optional[Token]:
        record = self._sessions.get(session_id, TOKEN_KEY)
        if record is None:
            return None
        try:
            return Token.from_dict(record)
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreUnavailable(f"corrupt token record for session: {exc}") from exc

    def clear(self, session_id: str) -> None:
        with self.lock(session_id):
            self._sessions.forget(session_id, TOKEN_KEY)
