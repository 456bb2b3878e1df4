"""
Shared Redis client used for durable key-value state (the alert throttle ledger).

Best-effort like the rest of the ambient stack: when REDIS_URL is empty or the
server does not answer a ping, callers get ``None`` and fall back to process memory.
"""

from __future__ import annotations

import redis.asyncio as redis
import structlog

from vitalview.core.config import settings

logger = structlog.get_logger(__name__)

_redis_client: redis.Redis | None = None


async def init_redis(url: str | None = None) -> redis.Redis | None:
    """Create the singleton client; return None when disabled or unreachable."""
    global _redis_client

    url = url if url is not None else settings.REDIS_URL
    if not url:
        return None

    client = redis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    except Exception as exc:
        logger.warning("redis_ping_failed", error=str(exc), url=url)
        await client.aclose()
        return None

    _redis_client = client
    return client


async def close_redis() -> None:
    """Close the Redis client on shutdown."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
