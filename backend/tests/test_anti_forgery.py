"""Tests for anti-forgery tokens"""
from jose import jwt

from handshake_guard.utils.anti_forgery import AntiForgeryTokens
from handshake_guard.utils.keys import derive_key

KEY = derive_key(b"master-secret", "anti-forgery")


def test_token_verifies_for_its_session(clock):
    tokens = AntiForgeryTokens(KEY, ttl_seconds=600, clock=clock)
    token = tokens.create("session-1")

    assert tokens.verify(token, "session-1") is True
    assert tokens.verify(token, "session-2") is False


def test_token_expires(clock):
    tokens = AntiForgeryTokens(KEY, ttl_seconds=600, clock=clock)
    token = tokens.create("session-1")

    clock.advance(600)
    assert tokens.verify(token, "session-1") is True

    clock.advance(1)
    assert tokens.verify(token, "session-1") is False


def test_missing_or_foreign_tokens_fail(clock):
    tokens = AntiForgeryTokens(KEY, clock=clock)
    other = AntiForgeryTokens(derive_key(b"other-secret", "anti-forgery"), clock=clock)

    assert tokens.verify(None, "session-1") is False
    assert tokens.verify(tokens.create("session-1"), None) is False
    assert tokens.verify("not-a-jwt", "session-1") is False
    assert tokens.verify(other.create("session-1"), "session-1") is False


def test_wrong_token_type_fails(clock):
    """Test a JWT signed with the right key but another purpose"""
    tokens = AntiForgeryTokens(KEY, clock=clock)
    now = int(clock())
    forged = jwt.encode({"sub": "session-1", "exp": now + 60, "type": "access"}, KEY, algorithm="HS256")

    assert tokens.verify(forged, "session-1") is False


def test_derived_keys_are_independent():
    assert derive_key(b"master", "token") != derive_key(b"master", "anti-forgery")
    assert derive_key(b"master", "token") == derive_key(b"master", "token")
    assert len(derive_key(b"master", "token")) == 32
