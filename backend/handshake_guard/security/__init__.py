"""Handshake token lifecycle and request gating"""
from handshake_guard.security.codec import TokenCodec
from handshake_guard.security.errors import (
    DecodeError,
    DecryptionFailed,
    ExpiredError,
    HandshakeError,
    MalformedToken,
    SessionMismatchError,
    StoreUnavailable,
    SupersededError,
    TokenRejected,
)
from handshake_guard.security.gate import (
    CookieSettings,
    GateConfig,
    GateDecision,
    GateOutcome,
    GateRequest,
    RequestGate,
)
from handshake_guard.security.lifecycle import TokenLifecycle, TokenPolicy
from handshake_guard.security.sessions import (
    DatabaseSessionStore,
    MemorySessionStore,
    SessionStore,
    build_session_store,
)
from handshake_guard.security.store import TokenStore
from handshake_guard.security.tokens import (
    IssuedToken,
    RenewalResult,
    RequestContext,
    Token,
    TokenEnvelope,
)

__all__ = [
    "CookieSettings",
    "DatabaseSessionStore",
    "DecodeError",
    "DecryptionFailed",
    "ExpiredError",
    "GateConfig",
    "GateDecision",
    "GateOutcome",
    "GateRequest",
    "HandshakeError",
    "IssuedToken",
    "MalformedToken",
    "MemorySessionStore",
    "RenewalResult",
    "RequestContext",
    "RequestGate",
    "SessionMismatchError",
    "SessionStore",
    "StoreUnavailable",
    "SupersededError",
    "Token",
    "TokenCodec",
    "TokenEnvelope",
    "TokenLifecycle",
    "TokenPolicy",
    "TokenRejected",
    "TokenStore",
    "build_session_store",
]
