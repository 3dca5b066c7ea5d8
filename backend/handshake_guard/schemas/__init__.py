"""Pydantic schemas for request/response validation"""
from handshake_guard.schemas.handshake import (
    ErrorResponse,
    RenewResponse,
    RevokeResponse,
    StatusResponse,
    TokenMetadata,
    VerifyResponse,
)

__all__ = [
    "VerifyResponse",
    "RenewResponse",
    "StatusResponse",
    "TokenMetadata",
    "RevokeResponse",
    "ErrorResponse",
]
