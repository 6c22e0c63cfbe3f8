"""
Rate limiting via slowapi (Starlette-compatible Limits wrapper).

Strategy:
  - Tracker endpoints are anonymous, so limits are keyed by client address
  - X-Forwarded-For / X-Real-IP count only when the peer is a trusted proxy;
    anyone else is keyed by the socket address whatever headers they send
  - Ingestion (page loads / exits) gets a generous limit; dashboard reads a tighter one
  - Redis backend recommended for multi-instance deployments

Usage in routes:
    @router.post("/events")
    @limiter.limit(get_ingest_limit)
    async def track_event(request: Request, ...):
        ...
"""

from ipaddress import ip_address, ip_network

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings


def _parse_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        return str(ip_address(value.strip()))
    except ValueError:
        return None


def _first_forwarded_hop(value: str) -> str | None:
    for part in value.split(","):
        parsed = _parse_ip(part)
        if parsed:
            return parsed
    return None


def _peer_is_trusted(peer: str | None) -> bool:
    if not peer:
        return False
    try:
        peer_ip = ip_address(peer)
    except ValueError:
        return False
    for entry in settings.TRUSTED_PROXY_IPS:
        try:
            if peer_ip in ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def get_client_key(request: Request) -> str:
    """
    Rate limit key: the socket peer address, or the forwarded client address when
    the peer is one of TRUSTED_PROXY_IPS and TRUST_PROXY_HEADERS is on.
    """
    peer = get_remote_address(request)
    if not settings.TRUST_PROXY_HEADERS or not _peer_is_trusted(peer):
        return peer

    for header in settings.TRUSTED_IP_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        if header.lower() == "x-forwarded-for":
            candidate = _first_forwarded_hop(value)
        else:
            candidate = _parse_ip(value)
        if candidate:
            return candidate
    return peer


def get_ingest_limit() -> str:
    return settings.RATE_LIMIT_INGEST


def get_query_limit() -> str:
    return settings.RATE_LIMIT_QUERY


# Shared limiter instance, imported by every router
limiter = Limiter(
    key_func=get_client_key,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
    # For Redis in production:
    # storage_uri="redis://redis:6379",
)
