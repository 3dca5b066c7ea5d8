"""Python client for HandshakeGuard-protected applications"""
from handshake_client.client import ClientState, HandshakeClient
from handshake_client.detection import (
    DetectionSignals,
    detect_devtools,
    measure_busy_loop,
    size_signal,
    timing_signal,
)
from handshake_client.exceptions import (
    DevToolsDetected,
    HandshakeClientError,
    HandshakeFailed,
    RateLimited,
    ReloadRequired,
)
from handshake_client.monitor import ProtectionMonitor

__version__ = "1.0.0"

__all__ = [
    "ClientState",
    "DetectionSignals",
    "DevToolsDetected",
    "HandshakeClient",
    "HandshakeClientError",
    "HandshakeFailed",
    "ProtectionMonitor",
    "RateLimited",
    "ReloadRequired",
    "detect_devtools",
    "measure_busy_loop",
    "size_signal",
    "timing_signal",
]
