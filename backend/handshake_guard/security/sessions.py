"""Server-side session storage.

The host session mechanism is injected into the token layer through the
:class:`SessionStore` protocol: a key/value map per session id. The browser
only ever holds the (signed) session id; the values live here.
"""
import json
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from handshake_guard.config import Settings
from handshake_guard.security.errors import StoreUnavailable
from handshake_guard.utils.logger import logger

Clock = Callable[[], float]

PURGE_INTERVAL = 60  # seconds between sweeps of expired entries


class SessionStore(Protocol):
    """Key/value storage scoped to a server-side session."""

    def get(self, session_id: str, key: str) -> Optional[Dict[str, Any]]:
        ...

    def put(self, session_id: str, key: str, value: Dict[str, Any]) -> None:
        ...

    def forget(self, session_id: str, key: str) -> None:
        ...

    def purge_expired(self) -> int:
        ...

    def ping(self) -> bool:
        ...


class MemorySessionStore:
    """Process-local session store with a sliding TTL per entry.

    Expired entries are dropped when read and swept from ``put`` at most once
    per ``purge_interval`` seconds.
    """

    def __init__(self, lifetime_seconds: int, clock: Clock = time.time, purge_interval: float = PURGE_INTERVAL):
        self._lifetime = lifetime_seconds
        self._clock = clock
        self._purge_interval = purge_interval
        self._next_purge = clock() + purge_interval
        self._lock = threading.Lock()
        self._data: Dict[Tuple[str, str], Tuple[Dict[str, Any], float]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def get(self, session_id: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._data.get((session_id, key))
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._data[(session_id, key)]
                return None
            return dict(value)

    def put(self, session_id: str, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            now = self._clock()
            if now >= self._next_purge:
                self._purge(now)
            self._data[(session_id, key)] = (dict(value), now + self._lifetime)

    def forget(self, session_id: str, key: str) -> None:
        with self._lock:
            self._data.pop((session_id, key), None)

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            return self._purge(self._clock())

    def _purge(self, now: float) -> int:
        expired = [entry_key for entry_key, (_, expires_at) in self._data.items() if now >= expires_at]
        for entry_key in expired:
            del self._data[entry_key]
        self._next_purge = now + self._purge_interval
        return len(expired)

    def ping(self) -> bool:
        return True


def _naive_utc(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)


class DatabaseSessionStore:
    """SQLAlchemy-backed session store (one row per session id and key).

    Expired rows are deleted from ``put`` at most once per ``purge_interval``
    seconds.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        lifetime_seconds: int,
        clock: Clock = time.time,
        purge_interval: float = PURGE_INTERVAL,
    ):
        self._session_factory = session_factory
        self._lifetime = lifetime_seconds
        self._clock = clock
        self._purge_interval = purge_interval
        self._next_purge = clock() + purge_interval
        self._purge_lock = threading.Lock()

    def get(self, session_id: str, key: str) -> Optional[Dict[str, Any]]:
        from handshake_guard.models.session_record import SessionRecord

        try:
            with self._session_factory() as db:
                record = db.query(SessionRecord).filter(
                    SessionRecord.session_id == session_id,
                    SessionRecord.key == key,
                ).first()
                if record is None or record.expires_at <= _naive_utc(self._clock()):
                    return None
                payload = record.payload
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"session store read failed: {exc}") from exc

        try:
            return json.loads(payload)
        except ValueError as exc:
            raise StoreUnavailable(f"corrupt session record for key {key!r}") from exc

    def put(self, session_id: str, key: str, value: Dict[str, Any]) -> None:
        from handshake_guard.models.session_record import SessionRecord

        now = self._clock()
        payload = json.dumps(value)
        expires_at = _naive_utc(now + self._lifetime)
        try:
            with self._session_factory() as db:
                try:
                    self._upsert(db, session_id, key, payload, expires_at)
                    db.commit()
                except IntegrityError:
                    # Another writer inserted the row first; overwrite it
                    db.rollback()
                    db.query(SessionRecord).filter(
                        SessionRecord.session_id == session_id,
                        SessionRecord.key == key,
                    ).update({"payload": payload, "expires_at": expires_at})
                    db.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"session store write failed: {exc}") from exc

        # One sweeper at a time; other writers skip rather than wait
        if now >= self._next_purge and self._purge_lock.acquire(blocking=False):
            try:
                self._purge(now)
            finally:
                self._purge_lock.release()

    @staticmethod
    def _upsert(db, session_id: str, key: str, payload: str, expires_at: datetime) -> None:
        from handshake_guard.models.session_record import SessionRecord

        record = db.query(SessionRecord).filter(
            SessionRecord.session_id == session_id,
            SessionRecord.key == key,
        ).with_for_update().first()
        if record is None:
            db.add(SessionRecord(session_id=session_id, key=key, payload=payload, expires_at=expires_at))
        else:
            record.payload = payload
            record.expires_at = expires_at
        db.flush()

    def forget(self, session_id: str, key: str) -> None:
        from handshake_guard.models.session_record import SessionRecord

        try:
            with self._session_factory() as db:
                db.query(SessionRecord).filter(
                    SessionRecord.session_id == session_id,
                    SessionRecord.key == key,
                ).delete()
                db.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"session store delete failed: {exc}") from exc

    def purge_expired(self) -> int:
        """Delete every expired row; returns how many were removed."""
        with self._purge_lock:
            return self._purge(self._clock())

    def _purge(self, now: float) -> int:
        from handshake_guard.models.session_record import SessionRecord

        try:
            with self._session_factory() as db:
                removed = db.query(SessionRecord).filter(
                    SessionRecord.expires_at <= _naive_utc(now),
                ).delete(synchronize_session=False)
                db.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"session store purge failed: {exc}") from exc
        self._next_purge = now + self._purge_interval
        if removed:
            logger.debug("Purged expired session records", extra={"removed": removed})
        return removed

    def ping(self) -> bool:
        try:
            with self._session_factory() as db:
                db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.warning("Session store ping failed", extra={"error": str(exc)})
            return False


def build_session_store(settings: Settings, clock: Clock = time.time) -> SessionStore:
    """Build the session store selected by SESSION_BACKEND."""
    lifetime = settings.SESSION_LIFETIME_MINUTES * 60
    backend = settings.SESSION_BACKEND.lower()

    if backend == "memory":
        return MemorySessionStore(lifetime, clock=clock)

    if backend == "database":
        from handshake_guard.database import build_session_factory

        return DatabaseSessionStore(build_session_factory(settings), lifetime, clock=clock)

    raise ValueError(f"Unknown SESSION_BACKEND {settings.SESSION_BACKEND!r} (expected 'memory' or 'database')")
