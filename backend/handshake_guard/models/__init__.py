"""Database models"""
from handshake_guard.models.session_record import SessionRecord

__all__ = ["SessionRecord"]
