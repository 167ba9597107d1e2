"""Per-client rate limiting for the gateway routes."""

from __future__ import annotations

import logging
import time
from ipaddress import IPv4Address, IPv6Address, ip_address, ip_network

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

GATEWAY_PREFIX = "/api/gateway/"

_TRUSTED_PROXY_NETWORKS = (
    ip_network("127.0.0.0/8"),
    ip_network("10.0.0.0/8"),
    ip_network("172.16.0.0/12"),
    ip_network("192.168.0.0/16"),
    ip_network("::1/128"),
    ip_network("fc00::/7"),
)

# Processor callbacks must never be throttled.
_EXEMPT_PATHS = {
    "/api/gateway/payment/webhook",
}

_RATE_LIMITED_BODY = '{"detail":"Rate limit exceeded"}'


def _parse_ip(value: str) -> IPv4Address | IPv6Address | None:
    try:
        return ip_address(value.strip())
    except ValueError:
        return None


def _is_trusted_proxy_host(host: str) -> bool:
    # Starlette's TestClient reports this pseudo host.
    if host == "testclient":
        return True
    addr = _parse_ip(host) if host else None
    return addr is not None and any(addr in net for net in _TRUSTED_PROXY_NETWORKS)


def _extract_forwarded_client_ip(x_forwarded_for: str) -> str | None:
    """Right-most X-Forwarded-For hop that is not one of our proxies.

    Left-most entries are client controlled. When every hop is a proxy the
    right-most valid address is used.
    """
    hops = [str(addr) for addr in map(_parse_ip, reversed(x_forwarded_for.split(","))) if addr]
    for hop in hops:
        if not _is_trusted_proxy_host(hop):
            return hop
    return hops[0] if hops else None


def resolve_client_ip(request: Request) -> str:
    remote_host = request.client.host if request.client else "unknown"
    if not _is_trusted_proxy_host(remote_host):
        return remote_host
    return _extract_forwarded_client_ip(request.headers.get("x-forwarded-for", "")) or remote_host


def _window_key(client_ip: str, window: int) -> str:
    return f"ratelimit:gateway:{client_ip}:{int(time.time() // window)}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def _get_redis_client(self, request: Request):
        redis_client = getattr(request.app.state, "_rate_limit_redis", None)
        if redis_client is None:
            import redis.asyncio as aioredis

            redis_client = aioredis.from_url(request.app.state.settings.redis_url)
            request.app.state._rate_limit_redis = redis_client
        return redis_client

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith(GATEWAY_PREFIX) or path in _EXEMPT_PATHS:
            return await call_next(request)

        settings = request.app.state.settings
        limit = settings.gateway_rate_limit
        window = settings.gateway_rate_window_seconds
        if limit <= 0 or window <= 0:
            return await call_next(request)

        client_ip = resolve_client_ip(request)
        try:
            r = await self._get_redis_client(request)
            key = _window_key(client_ip, window)
            count = await r.incr(key)
            if count == 1:
                await r.expire(key, window)
        except Exception as e:
            logger.warning("Rate limit check failed: %s", e)
            return await call_next(request)

        if count > limit:
            logger.info("Gateway rate limit exceeded for %s on %s", client_ip, path)
            return Response(content=_RATE_LIMITED_BODY, status_code=429, media_type="application/json")
        return await call_next(request)
