"""Tests for the loader/blocked pages and static assets"""
import pytest
from fastapi.testclient import TestClient

from handshake_guard.api.pages import safe_return_path
from handshake_guard.config import Settings
from handshake_guard.main import create_app


@pytest.mark.parametrize(
    "target,expected",
    [
        ("/dashboard", "/dashboard"),
        ("/reports?year=2024", "/reports?year=2024"),
        (None, "/"),
        ("", "/"),
        ("https://evil.example.com/", "/"),
        ("//evil.example.com/", "/"),
        ("/\\evil.example.com", "/"),
        ("dashboard", "/"),
    ],
)
def test_safe_return_path(target, expected):
    assert safe_return_path(target) == expected


def test_loader_page_keeps_relative_return(client: TestClient):
    response = client.get("/loader", params={"return": "/dashboard"})

    assert response.status_code == 200
    assert response.headers["X-Handshake-Challenge"] == "loader"
    assert '"/dashboard"' in response.text


@pytest.mark.parametrize("target", ["https://evil.example.com/", "//evil.example.com/"])
def test_loader_page_drops_external_return(client: TestClient, target):
    response = client.get("/loader", params={"return": target})

    assert "evil.example.com" not in response.text


def test_loader_page_is_not_cached(client: TestClient):
    response = client.get("/loader")

    assert "no-store" in response.headers["Cache-Control"]
    assert response.headers["Pragma"] == "no-cache"


def test_loader_page_embeds_anti_forgery_token(client: TestClient):
    response = client.get("/loader")
    token = response.headers["X-CSRF-Token"]

    assert f'content="{token}"' in response.text
    assert "/_security/assets/handshake.js" in response.text
    assert "<noscript>" in response.text


def test_loader_page_starts_a_session(client: TestClient):
    client.get("/loader")
    assert client.cookies.get("hg_session")


def test_blocked_page(client: TestClient):
    response = client.get("/blocked")

    assert response.status_code == 200
    assert "Access Restricted" in response.text
    assert "no-store" in response.headers["Cache-Control"]
    assert "X-Handshake-Challenge" not in response.headers


def test_handshake_script_is_served(client: TestClient):
    response = client.get("/_security/assets/handshake.js")

    assert response.status_code == 200
    assert "javascript" in response.headers["content-type"]
    assert "HandshakeGuard" in response.text


def test_loader_page_forwards_advisory_settings(client: TestClient):
    response = client.get("/loader")

    assert '"loaderUrl": "/loader"' in response.text
    assert '"consoleTampering": true' in response.text
    assert '"networkMonitoring": true' in response.text
    assert '"networkRequestLimit": 50' in response.text


def test_advisory_checks_can_be_switched_off(test_settings: Settings, clock):
    settings = test_settings.model_copy(
        update={
            "DETECTION_CONSOLE_TAMPERING": False,
            "DETECTION_NETWORK_MONITORING": False,
            "DETECTION_NETWORK_REQUEST_LIMIT": 200,
        }
    )
    with TestClient(create_app(settings, clock=clock)) as client:
        response = client.get("/loader")

    assert '"consoleTampering": false' in response.text
    assert '"networkMonitoring": false' in response.text
    assert '"networkRequestLimit": 200' in response.text


def test_handshake_script_reports_advisories(client: TestClient):
    """Test the script ships the console, network and prototype advisories"""
    script = client.get("/_security/assets/handshake.js").text

    assert "handshakeguard:advisory" in script
    for kind in ("console_tampering", "network_activity", "prototype_pollution"):
        assert f"'{kind}'" in script


def test_stale_anti_forgery_token_is_replaced_from_loader(client: TestClient):
    """Test the recovery path the script takes after a 403: fetch /loader, retry"""
    client.get("/loader")
    response = client.post("/_security/handshake/verify", headers={"X-CSRF-Token": "stale"})
    assert response.status_code == 403

    fresh = client.get("/loader").headers["X-CSRF-Token"]
    response = client.post("/_security/handshake/verify", headers={"X-CSRF-Token": fresh})
    assert response.status_code == 200

    script = client.get("/_security/assets/handshake.js").text
    assert "refreshCsrfToken" in script
    assert "X-CSRF-Token" in script
