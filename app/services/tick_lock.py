from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Protocol
from uuid import uuid4

import redis

from app.services.redis_client import connect_redis

_LOG = logging.getLogger("app.tick_lock")

RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class TickLock(Protocol):
    def acquire(self, key: str, *, ttl_seconds: int) -> str | None:
        ...

    def release(self, key: str, token: str) -> None:
        ...


class InMemoryTickLock:
    def __init__(self):
        self._held: dict[str, tuple[str, datetime]] = {}
        self._lock = Lock()

    def acquire(self, key: str, *, ttl_seconds: int) -> str | None:
        now = datetime.now(timezone.utc)
        with self._lock:
            current = self._held.get(key)
            if current is not None and current[1] > now:
                return None
            token = uuid4().hex
            self._held[key] = (token, now + timedelta(seconds=max(int(ttl_seconds), 1)))
            return token

    def release(self, key: str, token: str) -> None:
        with self._lock:
            current = self._held.get(key)
            if current is not None and current[0] == token:
                del self._held[key]


class RedisTickLock:
    """SET NX EX lock; the TTL frees the key if a worker dies mid-tick."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def acquire(self, key: str, *, ttl_seconds: int) -> str | None:
        token = uuid4().hex
        acquired = self.client.set(key, token, nx=True, ex=int(max(ttl_seconds, 1)))
        return token if acquired else None

    def release(self, key: str, token: str) -> None:
        self.client.eval(RELEASE_SCRIPT, 1, key, token)


_cached_lock: RedisTickLock | None = None
_memory_lock = InMemoryTickLock()


def get_tick_lock() -> TickLock:
    """Redis lock once reachable; until then the per-process in-memory lock.

    The fallback is never cached, so every tick retries Redis.
    """
    global _cached_lock
    if _cached_lock is None:
        client = connect_redis()
        if client is None:
            _LOG.warning("Redis tick lock unavailable; fallback to in-memory lock")
            return _memory_lock
        _cached_lock = RedisTickLock(client)
    return _cached_lock


def reset_tick_lock_for_tests() -> None:
    global _cached_lock, _memory_lock
    _cached_lock = None
    _memory_lock = InMemoryTickLock()
