"""Background detection polling and token renewal for a protected client"""
import logging
import threading
from typing import Callable, Optional

import requests

from handshake_client.client import ClientState, HandshakeClient
from handshake_client.detection import detect_devtools
from handshake_client.exceptions import HandshakeFailed, RateLimited, ReloadRequired

logger = logging.getLogger("handshake_client")


class ProtectionMonitor:
    """Runs the detection poll and the renewal loop on independent timers.

    The renewal interval is capped at the server's rotation interval so the
    cookie never outlives a rotation unnoticed. Call :meth:`stop` (or use the
    monitor as a context manager) to tear both timers down.
    """

    def __init__(
        self,
        client: HandshakeClient,
        poll_interval: float = 0.5,
        renewal_interval: float = 30.0,
        rotation_interval: Optional[float] = None,
        on_detected: Optional[Callable[[], None]] = None,
        on_reload: Optional[Callable[[], None]] = None,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.renewal_interval = (
            min(renewal_interval, rotation_interval) if rotation_interval else renewal_interval
        )
        self.on_detected = on_detected
        self.on_reload = on_reload

        self.renewals = 0
        self._stop = threading.Event()
        self._threads = []

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> "ProtectionMonitor":
        if self.running:
            return self
        self._stop.clear()
        self._threads = [
            threading.Thread(target=self._detection_loop, name="handshake-detection", daemon=True),
            threading.Thread(target=self._renewal_loop, name="handshake-renewal", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join(timeout)

    def __enter__(self) -> "ProtectionMonitor":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def _detection_loop(self) -> None:
        while not self._stop.wait(self.poll_interval):
            if detect_devtools(self.client.probe()):
                logger.warning("Developer tools detected - stopping protection")
                self.client.state = ClientState.BLOCKED
                self._stop.set()
                if self.on_detected:
                    self.on_detected()
                return

    def _renewal_loop(self) -> None:
        while not self._stop.wait(self.renewal_interval):
            try:
                self.client.renew()
                self.renewals += 1
            except ReloadRequired:
                logger.warning("Token rejected on renewal - reload required")
                self._stop.set()
                if self.on_reload:
                    self.on_reload()
                return
            except (HandshakeFailed, RateLimited, requests.RequestException) as e:
                logger.warning(f"Token renewal failed: {e}")
