"""Handshake endpoint schemas"""
from typing import Optional

from pydantic import BaseModel, Field


class VerifyResponse(BaseModel):
    """Successful handshake: the token cookie is set on this response"""

    ok: bool = True
    expires_at: int = Field(..., description="Unix timestamp of nominal token expiry")
    expires_in: int = Field(..., description="Seconds until nominal expiry")
    message: str = "Handshake successful"


class RenewResponse(BaseModel):
    """Successful renewal: a rotated token cookie is set on this response"""

    ok: bool = True
    renewed: bool = True
    expires_at: int
    expires_in: int
    message: str = "Token renewed successfully"


class TokenMetadata(BaseModel):
    token_id: Optional[str] = None
    created_at: Optional[int] = None
    expires_at: Optional[int] = None
    age_seconds: Optional[int] = None
    remaining_seconds: int = 0
    is_expiring: bool = True


class StatusResponse(BaseModel):
    """Read-only diagnostic view of the session's token"""

    valid: bool
    is_expiring: Optional[bool] = None
    metadata: Optional[TokenMetadata] = None
    message: str


class RevokeResponse(BaseModel):
    ok: bool = True
    message: str = "Token revoked successfully"


class ErrorResponse(BaseModel):
    """Failure body shared by the handshake endpoints"""

    ok: bool = False
    error: str
    action: Optional[str] = Field(None, description="'reload' when the page must restart the handshake")
    retry_after: Optional[int] = Field(None, description="Seconds to wait before retrying (HTTP 429)")

    def body(self) -> dict:
        return self.model_dump(exclude_none=True)
