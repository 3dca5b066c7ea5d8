"""Tests for the token codec"""
import base64
import string

import pytest

from handshake_guard.security import (
    DecodeError,
    DecryptionFailed,
    MalformedToken,
    Token,
    TokenCodec,
    TokenEnvelope,
)

ALPHABET = string.ascii_letters + string.digits + "-_"


@pytest.fixture
def token() -> Token:
    return Token(
        id="6f1c1f38-8f1e-4c38-9a55-1f0c1b0e6d11",
        session_id="session-1",
        issued_at=1_700_000_000,
        expires_at=1_700_000_300,
        user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) ünïcode",
        ip="2001:db8::1",
    )


def test_round_trip_preserves_every_field(codec: TokenCodec, token: Token):
    """Test decode(encode(T)) reproduces the token"""
    envelope = codec.decode(codec.encode(token))

    assert envelope == TokenEnvelope.from_token(token)
    assert envelope.to_token() == token


def test_round_trip_without_fingerprint(codec: TokenCodec):
    """Test tokens issued without user agent or IP"""
    token = Token(id="t", session_id="s", issued_at=1, expires_at=301)
    envelope = codec.decode(codec.encode(token))

    assert envelope.user_agent is None
    assert envelope.ip is None


def test_encoded_form_is_cookie_safe(codec: TokenCodec, token: Token):
    """Test the envelope only uses base64url characters and no padding"""
    encoded = codec.encode(token)

    assert set(encoded) <= set(ALPHABET)
    assert "=" not in encoded


def test_encryption_is_randomized(codec: TokenCodec, token: Token):
    """Test two encodings of one token differ (fresh nonce)"""
    assert codec.encode(token) != codec.encode(token)


def test_bytes_input_is_accepted(codec: TokenCodec, token: Token):
    encoded = codec.encode(token)
    assert codec.decode(encoded.encode("ascii")).token_id == token.id


def test_any_single_character_mutation_fails(codec: TokenCodec, token: Token):
    """Test tamper sensitivity over every position of the encoded form"""
    encoded = codec.encode(token)

    for position, original in enumerate(encoded):
        replacement = "A" if original != "A" else "B"
        mutated = encoded[:position] + replacement + encoded[position + 1:]
        with pytest.raises(DecodeError):
            codec.decode(mutated)


def test_foreign_key_fails_authentication(token: Token):
    """Test an envelope from another key raises DecryptionFailed"""
    encoded = TokenCodec(b"a" * 32).encode(token)

    with pytest.raises(DecryptionFailed):
        TokenCodec(b"b" * 32).decode(encoded)


def test_truncated_envelope_fails(codec: TokenCodec, token: Token):
    encoded = codec.encode(token)

    with pytest.raises(DecodeError):
        codec.decode(encoded[:-4])
    with pytest.raises(MalformedToken):
        codec.decode(encoded[:20])


@pytest.mark.parametrize(
    "value",
    ["", "not base64!", "abc=", "YWJj\n", b"\xff\xfe", "A" * 3],
)
def test_malformed_input_raises_malformed_token(codec: TokenCodec, value):
    """Test garbage never raises anything but a DecodeError"""
    with pytest.raises(MalformedToken):
        codec.decode(value)


def test_padding_and_trailing_newline_are_rejected(codec: TokenCodec, token: Token):
    encoded = codec.encode(token)

    with pytest.raises(MalformedToken):
        codec.decode(encoded + "\n")
    with pytest.raises(MalformedToken):
        codec.decode(encoded + "==")


def test_unsupported_version_is_rejected(codec: TokenCodec, token: Token):
    """Test a different leading version byte"""
    encoded = codec.encode(token)
    raw = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
    forged = base64.urlsafe_b64encode(b"\x02" + raw[1:]).rstrip(b"=").decode("ascii")

    with pytest.raises(MalformedToken):
        codec.decode(forged)


def test_key_must_be_32_bytes():
    with pytest.raises(ValueError):
        TokenCodec(b"short")
