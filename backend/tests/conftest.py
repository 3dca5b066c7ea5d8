"""Pytest configuration and fixtures"""
from typing import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from handshake_guard.config import Settings
from handshake_guard.main import create_app
from handshake_guard.security import (
    MemorySessionStore,
    RequestContext,
    TokenCodec,
    TokenLifecycle,
    TokenPolicy,
    TokenStore,
)

START_TIME = 1_700_000_000


class FakeClock:
    """Controllable time source shared by lifecycle, session store and anti-forgery tokens"""

    def __init__(self, start: float = START_TIME):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings for tests: plain-HTTP cookies, no metrics, fixed secret"""
    return Settings(
        HANDSHAKE_SECRET="test-handshake-secret-not-for-production",
        COOKIE_SECURE=False,
        METRICS_ENABLED=False,
        RATE_LIMIT_ENABLED=True,
        SESSION_BACKEND="memory",
        DATABASE_URL=f"sqlite:///{tmp_path / 'handshake_guard_test.db'}",
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def app(test_settings: Settings, clock: FakeClock) -> FastAPI:
    """Application with a protected /dashboard page"""
    app = create_app(test_settings, clock=clock)

    @app.get("/dashboard")
    def dashboard():
        return {"page": "dashboard"}

    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def protected_client(client: TestClient) -> TestClient:
    """Client that has already completed the handshake"""
    loader = client.get("/dashboard")
    response = client.post(
        "/_security/handshake/verify",
        headers={"X-CSRF-Token": loader.headers["X-CSRF-Token"]},
    )
    assert response.status_code == 200
    return client


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(b"k" * 32)


@pytest.fixture
def sessions(clock: FakeClock) -> MemorySessionStore:
    return MemorySessionStore(7200, clock=clock)


@pytest.fixture
def store(sessions: MemorySessionStore) -> TokenStore:
    return TokenStore(sessions)


@pytest.fixture
def lifecycle(codec: TokenCodec, store: TokenStore, clock: FakeClock) -> TokenLifecycle:
    return TokenLifecycle(codec, store, TokenPolicy(), clock=clock)


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(session_id="session-1", user_agent="Mozilla/5.0 (X11; Linux x86_64)", ip="203.0.113.7")
