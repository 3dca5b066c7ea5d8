"""Server secret management and per-purpose key derivation"""
import secrets

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from handshake_guard.config import Settings
from handshake_guard.utils.logger import logger


def load_master_secret(settings: Settings) -> bytes:
    """Return the master secret from HANDSHAKE_SECRET.

    If absent, generates a random 32-byte secret for this process and warns:
    every handshake cookie and session will be invalidated on restart, and
    multiple workers will not accept each other's cookies.
    """
    if settings.HANDSHAKE_SECRET:
        return settings.HANDSHAKE_SECRET.encode("utf-8")

    logger.warning(
        "HANDSHAKE_SECRET not set, generated a random secret for this process. "
        "All handshake tokens will be invalidated on restart. "
        "Set HANDSHAKE_SECRET in .env (e.g. the output of "
        "`python -c \"import secrets; print(secrets.token_urlsafe(32))\"`) to persist it."
    )
    return secrets.token_bytes(32)


def derive_key(master: bytes, purpose: str, length: int = 32) -> bytes:
    """Derive an independent key for ``purpose`` (HKDF-SHA256)."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=None,
        info=f"handshake-guard:{purpose}".encode("utf-8"),
    )
    return hkdf.derive(master)
