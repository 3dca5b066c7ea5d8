"""SessionRecord model: server-side session key/value storage"""
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from handshake_guard.database import Base


class SessionRecord(Base):
    """One value stored under ``key`` for a server-side session.

    The handshake token for a session lives in a single row so that
    replacing it is one UPDATE. expires_at is refreshed on every write and
    rows past it are treated as absent (session expiry).
    """

    __tablename__ = "handshake_session_data"
    __table_args__ = (UniqueConstraint("session_id", "key", name="uq_session_key"),)

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(128), nullable=False, index=True)
    key = Column(String(64), nullable=False)
    payload = Column(Text, nullable=False)  # JSON document
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
