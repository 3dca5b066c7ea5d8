"""Authenticated encryption of handshake tokens for cookie transport.

Wire format (before base64url, no padding)::

    version (1 byte) | nonce (12 bytes) | AES-256-GCM ciphertext + tag

The version byte is bound as associated data. Decoding is strict: anything
that is not the canonical base64url encoding of a well-formed, authentic
envelope raises a :class:`~handshake_guard.security.errors.DecodeError`.
"""
import base64
import binascii
import json
import os
import re
from typing import Any, Dict, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from handshake_guard.security.errors import DecryptionFailed, MalformedToken
from handshake_guard.security.tokens import Token, TokenEnvelope

VERSION = b"\x01"
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32

_B64URL = re.compile(r"[A-Za-z0-9_-]+")
_MIN_RAW_SIZE = len(VERSION) + NONCE_SIZE + TAG_SIZE


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode_strict(text: str) -> bytes:
    if not _B64URL.fullmatch(text):
        raise MalformedToken("envelope is not base64url")
    try:
        raw = base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    except (binascii.Error, ValueError) as exc:
        raise MalformedToken("envelope is not base64url") from exc
    # Reject encodings that differ only in unused trailing bits
    if _b64encode(raw) != text:
        raise MalformedToken("envelope is not canonical base64url")
    return raw


class TokenCodec:
    """Encrypts token envelopes into cookie values and back."""

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise ValueError(f"TokenCodec key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    def encode(self, token: Union[Token, TokenEnvelope]) -> str:
        """Serialize and encrypt a token into a cookie-safe string."""
        envelope = TokenEnvelope.from_token(token) if isinstance(token, Token) else token
        payload = json.dumps(
            {
                "token_id": envelope.token_id,
                "expires_at": envelope.expires_at,
                "issued_at": envelope.issued_at,
                "session_id": envelope.session_id,
                "user_agent": envelope.user_agent,
                "ip": envelope.ip,
            },
            separators=(",", ":"),
        ).encode("utf-8")

        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, payload, VERSION)
        return _b64encode(VERSION + nonce + ciphertext)

    def decode(self, value: Union[str, bytes]) -> TokenEnvelope:
        """Decrypt and validate a cookie value.

        Raises:
            MalformedToken:   bad encoding, size, version or payload shape.
            DecryptionFailed: authentication failed (tampered or foreign key).
        """
        if isinstance(value, bytes):
            try:
                value = value.decode("ascii")
            except UnicodeDecodeError as exc:
                raise MalformedToken("envelope is not ASCII") from exc
        if not isinstance(value, str) or not value:
            raise MalformedToken("empty envelope")

        raw = _b64decode_strict(value)
        if len(raw) < _MIN_RAW_SIZE:
            raise MalformedToken("envelope too short")
        if raw[:1] != VERSION:
            raise MalformedToken("unsupported envelope version")

        nonce = raw[1:1 + NONCE_SIZE]
        ciphertext = raw[1 + NONCE_SIZE:]
        try:
            payload = self._aead.decrypt(nonce, ciphertext, VERSION)
        except InvalidTag as exc:
            raise DecryptionFailed("envelope failed authentication") from exc

        return _parse_payload(payload)


def _parse_payload(payload: bytes) -> TokenEnvelope:
    try:
        data: Dict[str, Any] = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedToken("envelope payload is not JSON") from exc

    if not isinstance(data, dict):
        raise MalformedToken("envelope payload is not an object")

    token_id = data.get("token_id")
    session_id = data.get("session_id")
    issued_at = data.get("issued_at")
    expires_at = data.get("expires_at")
    user_agent = data.get("user_agent")
    ip = data.get("ip")

    if not isinstance(token_id, str) or not token_id:
        raise MalformedToken("envelope is missing token_id")
    if not isinstance(session_id, str) or not session_id:
        raise MalformedToken("envelope is missing session_id")
    for name, stamp in (("issued_at", issued_at), ("expires_at", expires_at)):
        if isinstance(stamp, bool) or not isinstance(stamp, int):
            raise MalformedToken(f"envelope {name} is not an integer timestamp")
    for name, text in (("user_agent", user_agent), ("ip", ip)):
        if text is not None and not isinstance(text, str):
            raise MalformedToken(f"envelope {name} is not a string")

    return TokenEnvelope(
        token_id=token_id,
        session_id=session_id,
        issued_at=issued_at,
        expires_at=expires_at,
        user_agent=user_agent,
        ip=ip,
    )
