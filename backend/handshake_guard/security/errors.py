"""Handshake token error taxonomy.

Every subclass of :class:`TokenRejected` means "this cookie does not prove a
passed handshake" and is collapsed by the gate into a challenge.
:class:`StoreUnavailable` is not a rejection: it propagates out of
verification and callers handle it explicitly.

Rate limiting is signalled with ``slowapi.errors.RateLimitExceeded`` and is
handled at the HTTP layer (429), outside this hierarchy.
"""


class HandshakeError(Exception):
    """Base class for handshake token failures."""

    reason = "handshake_error"


class TokenRejected(HandshakeError):
    """The presented token is not acceptable."""

    reason = "rejected"


class DecodeError(TokenRejected):
    """The envelope could not be decoded."""

    reason = "decode_error"


class MalformedToken(DecodeError):
    """Not a well-formed envelope (encoding, length, version or payload shape)."""

    reason = "malformed"


class DecryptionFailed(DecodeError):
    """Authentication tag did not verify: tampered, truncated or foreign key."""

    reason = "decryption_failed"


class ExpiredError(TokenRejected):
    """Past ``expires_at + grace_period``."""

    reason = "expired"


class SessionMismatchError(TokenRejected):
    """Session id or client fingerprint differs from the one bound at issuance."""

    reason = "session_mismatch"


class SupersededError(TokenRejected):
    """The stored token for the session is missing or has a different id."""

    reason = "superseded"


class StoreUnavailable(HandshakeError):
    """The backing session store failed or returned a corrupt record."""

    reason = "store_unavailable"
