"""Path, IP and user-agent matching used by the request gate"""
import ipaddress
import re
from functools import lru_cache
from typing import Iterable, Optional


def normalize_path(path: str) -> str:
    """Request path without surrounding slashes; the root is ``/``."""
    trimmed = path.strip("/")
    return trimmed or "/"


@lru_cache(maxsize=256)
def _glob_regex(pattern: str) -> "re.Pattern[str]":
    # Only '*' is special and it may span '/' (``api/*`` covers ``api/v1/users``)
    parts = [re.escape(part) for part in normalize_path(pattern).split("*")]
    return re.compile(".*".join(parts), re.DOTALL)


def path_matches(path: str, pattern: str) -> bool:
    """Glob match of a request path against an exclusion pattern."""
    return _glob_regex(pattern).fullmatch(normalize_path(path)) is not None


def path_matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(path_matches(path, pattern) for pattern in patterns)


def ip_matches(client_ip: Optional[str], pattern: str) -> bool:
    """Match a client IP against an exact address, a CIDR block or a wildcard.

    Wildcards replace whole IPv4 octets: ``192.168.*.*``.
    """
    if not client_ip:
        return False
    pattern = pattern.strip()

    if client_ip == pattern:
        return True

    if "/" in pattern:
        try:
            network = ipaddress.ip_network(pattern, strict=False)
            address = ipaddress.ip_address(client_ip)
        except ValueError:
            return False
        return address.version == network.version and address in network

    if "*" in pattern:
        regex = re.escape(pattern).replace(r"\*", r"\d+")
        return re.fullmatch(regex, client_ip) is not None

    return False


def ip_matches_any(client_ip: Optional[str], patterns: Iterable[str]) -> bool:
    return any(ip_matches(client_ip, pattern) for pattern in patterns)


def user_agent_matches_any(user_agent: Optional[str], needles: Iterable[str]) -> bool:
    """Case-insensitive substring match against whitelisted agents."""
    if not user_agent:
        return False
    haystack = user_agent.lower()
    return any(needle and needle.lower() in haystack for needle in needles)
