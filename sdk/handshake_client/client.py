"""HandshakeGuard client implementation"""
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

import requests

from handshake_client.detection import DetectionSignals, default_probe, detect_devtools
from handshake_client.exceptions import (
    DevToolsDetected,
    HandshakeFailed,
    RateLimited,
    ReloadRequired,
)

logger = logging.getLogger("handshake_client")

HANDSHAKE_PREFIX = "/_security/handshake"
LOADER_PATH = "/loader"
CHALLENGE_HEADER = "X-Handshake-Challenge"
CSRF_HEADER = "X-CSRF-Token"


class ClientState(str, Enum):
    INIT = "init"
    HEURISTIC_CHECK = "heuristic_check"
    BLOCKED = "blocked"
    VERIFYING = "verifying"
    PROTECTED = "protected"
    ERROR = "error"


def _json(response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class HandshakeClient:
    """Drives the browser-side handshake exchange from Python.

    Mirrors what the loader page does: run the integrity heuristics, call the
    verify endpoint with the loader's anti-forgery token, retry with
    exponential backoff, then keep using the session's cookies.

    Example::

        client = HandshakeClient("https://app.example.com")
        page = client.handshake("/dashboard")
        client.renew()
    """

    def __init__(
        self,
        base_url: str = "",
        session: Optional[Any] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        probe: Callable[[], DetectionSignals] = default_probe,
    ):
        """
        Initialize the client.

        Args:
            base_url:     Base URL of the protected application. May be empty
                          when ``session`` already resolves relative URLs.
            session:      ``requests.Session`` (default) or any client with the
                          same ``get``/``post`` interface, e.g. a test client.
            max_attempts: Verify attempts before giving up.
            base_delay:   Backoff base in seconds; waits ``base_delay * 2**attempt``.
            sleep:        Sleep function used between attempts.
            probe:        Returns the current :class:`DetectionSignals`.
        """
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.probe = probe
        self._sleep = sleep

        self.state = ClientState.INIT
        self.csrf_token: Optional[str] = None
        self.expires_at: Optional[int] = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    # ---------------------------------------------------------------------------
    # Challenge and heuristics
    # ---------------------------------------------------------------------------

    def fetch(self, path: str = "/"):
        """GET ``path``; remembers the anti-forgery token if the gate answered with the loader."""
        response = self.session.get(self._url(path))
        if response.headers.get(CHALLENGE_HEADER) == "loader":
            self.csrf_token = response.headers.get(CSRF_HEADER)
        return response

    def refresh_challenge(self) -> str:
        """Load the loader page to obtain a fresh anti-forgery token."""
        response = self.fetch(LOADER_PATH)
        if not self.csrf_token:
            raise HandshakeFailed(f"loader page returned no anti-forgery token (HTTP {response.status_code})")
        return self.csrf_token

    def check_integrity(self) -> DetectionSignals:
        """Run the heuristics once.

        Raises:
            DevToolsDetected: if the consensus rule concludes tools are open.
        """
        self.state = ClientState.HEURISTIC_CHECK
        signals = self.probe()
        if detect_devtools(signals):
            self.state = ClientState.BLOCKED
            raise DevToolsDetected(f"developer tools detected: {signals._asdict()}")
        return signals

    # ---------------------------------------------------------------------------
    # Handshake endpoints
    # ---------------------------------------------------------------------------

    def handshake(self, path: str = "/"):
        """Fetch ``path``, completing the handshake first if the gate challenges.

        Returns:
            The response for ``path`` once the session is protected.

        Raises:
            DevToolsDetected: heuristics failed; nothing was sent to verify.
            HandshakeFailed:  verify kept failing after ``max_attempts``.
        """
        self.state = ClientState.INIT
        response = self.fetch(path)
        if response.headers.get(CHALLENGE_HEADER) != "loader":
            return response

        self.check_integrity()
        self.verify()
        return self.session.get(self._url(path))

    def verify(self) -> Dict[str, Any]:
        """Call the verify endpoint, retrying with exponential backoff.

        A rejected anti-forgery token (HTTP 403) triggers a fresh loader fetch
        before the next attempt.
        """
        self.state = ClientState.VERIFYING
        if not self.csrf_token:
            self.refresh_challenge()

        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self.session.post(
                    self._url(f"{HANDSHAKE_PREFIX}/verify"),
                    headers={CSRF_HEADER: self.csrf_token or "", "X-Requested-With": "XMLHttpRequest"},
                )
            except requests.RequestException as e:
                last_error = e
            else:
                data = _json(response)
                if response.status_code == 200 and data.get("ok"):
                    self.state = ClientState.PROTECTED
                    self.expires_at = data.get("expires_at")
                    return data

                if response.status_code == 429:
                    last_error = RateLimited(data.get("error", "rate limited"), data.get("retry_after"))
                else:
                    last_error = HandshakeFailed(
                        f"verify failed with HTTP {response.status_code}: {data.get('error', '')}"
                    )
                    if response.status_code == 403:
                        self.csrf_token = None

            logger.warning(f"Handshake attempt {attempt}/{self.max_attempts} failed: {last_error}")
            if attempt < self.max_attempts:
                self._sleep(self.base_delay * 2 ** attempt)
                if not self.csrf_token:
                    self.refresh_challenge()

        self.state = ClientState.ERROR
        raise HandshakeFailed(
            f"handshake did not succeed after {self.max_attempts} attempts"
        ) from last_error

    def renew(self) -> Dict[str, Any]:
        """Rotate the token before it expires.

        Raises:
            ReloadRequired: the server rejected the current token (HTTP 401).
            RateLimited:    too many renewals (HTTP 429).
            HandshakeFailed: any other failure.
        """
        response = self.session.post(self._url(f"{HANDSHAKE_PREFIX}/renew"))
        data = _json(response)

        if response.status_code == 401:
            self.state = ClientState.INIT
            raise ReloadRequired(data.get("error", "token no longer valid"))
        if response.status_code == 429:
            raise RateLimited(data.get("error", "rate limited"), data.get("retry_after"))
        if response.status_code != 200 or not data.get("renewed"):
            raise HandshakeFailed(f"renew failed with HTTP {response.status_code}: {data.get('error', '')}")

        self.expires_at = data.get("expires_at")
        return data

    def status(self) -> Dict[str, Any]:
        """Read-only token diagnostics."""
        response = self.session.get(self._url(f"{HANDSHAKE_PREFIX}/status"))
        return _json(response)

    def revoke(self) -> Dict[str, Any]:
        """Drop the session's token; the next protected request is challenged again."""
        response = self.session.post(self._url(f"{HANDSHAKE_PREFIX}/revoke"))
        self.state = ClientState.INIT
        self.csrf_token = None
        self.expires_at = None
        return _json(response)
