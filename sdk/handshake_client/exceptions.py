"""HandshakeGuard client exceptions"""
from typing import Optional


class HandshakeClientError(Exception):
    """Base class for client-side handshake failures"""


class DevToolsDetected(HandshakeClientError):
    """The integrity check concluded developer tools are active"""


class HandshakeFailed(HandshakeClientError):
    """Verification did not succeed within the attempt cap"""


class ReloadRequired(HandshakeClientError):
    """The server no longer accepts the token; start a new handshake"""


class RateLimited(HandshakeClientError):
    """The server answered HTTP 429"""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after
