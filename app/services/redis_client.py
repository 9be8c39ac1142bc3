from __future__ import annotations

import logging

import redis

from app.core.config import settings

_LOG = logging.getLogger("app.redis")


def connect_redis() -> redis.Redis | None:
    """Return a pinged client, or None when Redis is unreachable."""
    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=0.4,
            socket_connect_timeout=0.4,
        )
        client.ping()
        return client
    except redis.RedisError:
        _LOG.warning("Redis unavailable at startup")
        return None
