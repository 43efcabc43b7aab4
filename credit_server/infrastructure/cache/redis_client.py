"""Redis client construction."""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis

from credit_server.core.config import RedisSettings


def build_redis_client(settings: RedisSettings) -> Optional[aioredis.Redis]:
    """Return a pooled async client, or ``None`` when caching is disabled."""
    if not settings.url:
        return None
    return aioredis.from_url(
        settings.url,
        decode_responses=True,
        socket_timeout=settings.socket_timeout,
        socket_connect_timeout=settings.socket_timeout,
    )
