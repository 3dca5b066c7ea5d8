"""HandshakeGuard: session-bound handshake tokens gating a web application"""

__version__ = "1.0.0"
