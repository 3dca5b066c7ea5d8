"""Tests for the handshake_client SDK"""
import threading
import time

import pytest
from fastapi.testclient import TestClient

from handshake_client import (
    ClientState,
    DetectionSignals,
    DevToolsDetected,
    HandshakeClient,
    HandshakeFailed,
    ProtectionMonitor,
    RateLimited,
    ReloadRequired,
)
from handshake_client.detection import detect_devtools, measure_busy_loop, size_signal, timing_signal

CLEAN = DetectionSignals(size=False, console=False, timing=False)


class StubResponse:
    def __init__(self, status_code=200, data=None, headers=None):
        self.status_code = status_code
        self._data = data
        self.headers = headers or {}

    def json(self):
        if self._data is None:
            raise ValueError("no body")
        return self._data


class StubSession:
    """Serves a loader for every GET and a fixed answer for every POST"""

    def __init__(self, post_response):
        self.post_response = post_response
        self.posts = []

    def get(self, url):
        return StubResponse(headers={"X-Handshake-Challenge": "loader", "X-CSRF-Token": "csrf"})

    def post(self, url, headers=None):
        self.posts.append((url, headers))
        return self.post_response


def wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


# ---------------------------------------------------------------------------
# Detection heuristics
# ---------------------------------------------------------------------------

def test_scenario_d_console_signal_is_definitive():
    assert detect_devtools(DetectionSignals(size=False, console=True, timing=False)) is True


def test_scenario_e_single_signal_is_not_enough():
    assert detect_devtools(DetectionSignals(size=True, console=False, timing=False)) is False


def test_two_of_three_signals_detect():
    assert detect_devtools(DetectionSignals(size=True, console=False, timing=True)) is True
    assert detect_devtools(CLEAN) is False


def test_size_signal():
    assert size_signal(1920, 1900, 1080, 1000) is False
    assert size_signal(1920, 1500, 1080, 1000) is True
    assert size_signal(1920, 1900, 1080, 700) is True
    assert size_signal(1920, 1760, 1080, 1080) is False


def test_timing_signal():
    assert timing_signal(120) is False
    assert timing_signal(121) is True
    assert timing_signal(50, threshold=40) is True


def test_measure_busy_loop_uses_timer():
    ticks = iter([10.0, 10.25])
    assert measure_busy_loop(iterations=10, timer=lambda: next(ticks)) == pytest.approx(250.0)


# ---------------------------------------------------------------------------
# HandshakeClient against the real application
# ---------------------------------------------------------------------------

def test_handshake_against_app(client: TestClient):
    sdk = HandshakeClient(session=client, probe=lambda: CLEAN, sleep=lambda _: None)

    page = sdk.handshake("/dashboard")

    assert page.json() == {"page": "dashboard"}
    assert sdk.state is ClientState.PROTECTED
    assert sdk.expires_at is not None
    assert sdk.status()["valid"] is True


def test_handshake_passes_through_unchallenged_paths(client: TestClient):
    sdk = HandshakeClient(session=client, probe=lambda: CLEAN)

    response = sdk.handshake("/health")

    assert response.json()["status"] == "healthy"
    assert sdk.state is ClientState.INIT


def test_renew_and_revoke_against_app(client: TestClient):
    sdk = HandshakeClient(session=client, probe=lambda: CLEAN, sleep=lambda _: None)
    sdk.handshake("/dashboard")

    assert sdk.renew()["renewed"] is True

    assert sdk.revoke()["ok"] is True
    assert sdk.state is ClientState.INIT
    with pytest.raises(ReloadRequired):
        sdk.renew()


def test_renew_without_handshake_requires_reload(client: TestClient):
    sdk = HandshakeClient(session=client)

    with pytest.raises(ReloadRequired):
        sdk.renew()


def test_devtools_block_verification(client: TestClient):
    """Test nothing is sent to verify when the heuristics trip"""
    sdk = HandshakeClient(session=client, probe=lambda: DetectionSignals(False, True, False))

    with pytest.raises(DevToolsDetected):
        sdk.handshake("/dashboard")

    assert sdk.state is ClientState.BLOCKED
    assert client.get("/_security/handshake/status").json()["valid"] is False


def test_verify_recovers_from_stale_anti_forgery_token(client: TestClient):
    """Test a 403 fetches a fresh loader token and the next attempt succeeds"""
    delays = []
    sdk = HandshakeClient(session=client, probe=lambda: CLEAN, sleep=delays.append)
    sdk.fetch("/dashboard")
    sdk.csrf_token = "stale"

    data = sdk.verify()

    assert data["ok"] is True
    assert delays == [2.0]


# ---------------------------------------------------------------------------
# Retry and error handling
# ---------------------------------------------------------------------------

def test_verify_backoff_schedule():
    """Test waits of base*2, base*4 between three failing attempts"""
    session = StubSession(StubResponse(500, {"ok": False, "error": "Handshake failed. Please try again."}))
    delays = []
    sdk = HandshakeClient(session=session, max_attempts=3, base_delay=1.0, sleep=delays.append)

    with pytest.raises(HandshakeFailed):
        sdk.verify()

    assert delays == [2.0, 4.0]
    assert len(session.posts) == 3
    assert session.posts[0][1]["X-CSRF-Token"] == "csrf"
    assert sdk.state is ClientState.ERROR


def test_verify_rate_limited_keeps_retry_hint():
    session = StubSession(StubResponse(429, {"ok": False, "error": "Too many", "retry_after": 42}))
    sdk = HandshakeClient(session=session, max_attempts=2, sleep=lambda _: None)

    with pytest.raises(HandshakeFailed) as excinfo:
        sdk.verify()

    assert isinstance(excinfo.value.__cause__, RateLimited)
    assert excinfo.value.__cause__.retry_after == 42


def test_renew_rate_limited():
    sdk = HandshakeClient(session=StubSession(StubResponse(429, {"ok": False, "error": "Too many renewal attempts.", "retry_after": 7})))

    with pytest.raises(RateLimited) as excinfo:
        sdk.renew()

    assert excinfo.value.retry_after == 7


def test_renew_server_error():
    sdk = HandshakeClient(session=StubSession(StubResponse(500)))

    with pytest.raises(HandshakeFailed):
        sdk.renew()


# ---------------------------------------------------------------------------
# ProtectionMonitor
# ---------------------------------------------------------------------------

class StubClient:
    def __init__(self, signals=CLEAN, renew_error=None):
        self.signals = signals
        self.renew_error = renew_error
        self.renew_calls = 0
        self.state = ClientState.PROTECTED

    def probe(self):
        return self.signals

    def renew(self):
        self.renew_calls += 1
        if self.renew_error:
            raise self.renew_error
        return {"ok": True, "renewed": True}


def test_monitor_renewal_interval_capped_by_rotation():
    monitor = ProtectionMonitor(StubClient(), renewal_interval=30, rotation_interval=20)
    assert monitor.renewal_interval == 20

    monitor = ProtectionMonitor(StubClient(), renewal_interval=30, rotation_interval=240)
    assert monitor.renewal_interval == 30


def test_monitor_renews_on_schedule():
    client = StubClient()

    with ProtectionMonitor(client, poll_interval=0.01, renewal_interval=0.01) as monitor:
        assert wait_for(lambda: monitor.renewals >= 2)

    assert monitor.running is False


def test_monitor_stops_on_detection():
    detected = threading.Event()
    client = StubClient(signals=DetectionSignals(size=True, console=False, timing=True))

    monitor = ProtectionMonitor(client, poll_interval=0.01, renewal_interval=60, on_detected=detected.set)
    monitor.start()

    assert detected.wait(2.0)
    assert wait_for(lambda: not monitor.running)
    assert client.state is ClientState.BLOCKED
    assert client.renew_calls == 0


def test_monitor_stops_when_reload_required():
    reloaded = threading.Event()
    client = StubClient(renew_error=ReloadRequired("Invalid or expired token. Please reload the page."))

    monitor = ProtectionMonitor(client, poll_interval=60, renewal_interval=0.01, on_reload=reloaded.set)
    monitor.start()

    assert reloaded.wait(2.0)
    assert wait_for(lambda: not monitor.running)
    assert client.renew_calls == 1


def test_monitor_keeps_renewing_after_transient_failure():
    client = StubClient(renew_error=HandshakeFailed("renew failed with HTTP 500"))

    with ProtectionMonitor(client, poll_interval=60, renewal_interval=0.01) as monitor:
        assert wait_for(lambda: client.renew_calls >= 2)

    assert monitor.renewals == 0
    assert monitor.running is False
