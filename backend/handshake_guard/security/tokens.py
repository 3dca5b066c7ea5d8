"""Handshake token value types"""
from dataclasses import asdict, dataclass
from typing import Any, Dict, NamedTuple, Optional


class RequestContext(NamedTuple):
    """Facts about the current request that a token is bound to."""
    session_id: Optional[str]   # None when the browser has no server session yet
    user_agent: Optional[str]
    ip: Optional[str]


@dataclass(frozen=True)
class Token:
    """The authoritative credential, one per session in the TokenStore."""

    id: str
    session_id: str
    issued_at: int
    expires_at: int
    user_agent: Optional[str] = None
    ip: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            id=str(data["id"]),
            session_id=str(data["session_id"]),
            issued_at=int(data["issued_at"]),
            expires_at=int(data["expires_at"]),
            user_agent=data.get("user_agent"),
            ip=data.get("ip"),
        )


@dataclass(frozen=True)
class TokenEnvelope:
    """Decoded form of the encrypted cookie value."""

    token_id: str
    session_id: str
    issued_at: int
    expires_at: int
    user_agent: Optional[str] = None
    ip: Optional[str] = None

    @classmethod
    def from_token(cls, token: Token) -> "TokenEnvelope":
        return cls(
            token_id=token.id,
            session_id=token.session_id,
            issued_at=token.issued_at,
            expires_at=token.expires_at,
            user_agent=token.user_agent,
            ip=token.ip,
        )

    def to_token(self) -> Token:
        return Token(
            id=self.token_id,
            session_id=self.session_id,
            issued_at=self.issued_at,
            expires_at=self.expires_at,
            user_agent=self.user_agent,
            ip=self.ip,
        )


@dataclass(frozen=True)
class IssuedToken:
    """A freshly issued token together with its cookie value."""

    token: Token
    cookie: str

    @property
    def expires_at(self) -> int:
        return self.token.expires_at


@dataclass(frozen=True)
class RenewalResult:
    """Outcome of :meth:`TokenLifecycle.validate_and_renew`."""

    valid: bool
    renewed: bool = False
    issued: Optional[IssuedToken] = None
