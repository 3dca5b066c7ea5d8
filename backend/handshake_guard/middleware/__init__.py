"""Middleware modules: handshake gate, rate limiting and monitoring"""
from handshake_guard.middleware.gate import HandshakeGateMiddleware
from handshake_guard.middleware.monitoring import (
    MonitoringMiddleware,
    record_gate_decision,
    record_handshake_event,
)
from handshake_guard.middleware.rate_limit import build_limiter, rate_limit_exceeded_handler

__all__ = [
    "HandshakeGateMiddleware",
    "MonitoringMiddleware",
    "record_gate_decision",
    "record_handshake_event",
    "build_limiter",
    "rate_limit_exceeded_handler",
]
