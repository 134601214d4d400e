"""Redis connection and the boat-state snapshot cache.

Snapshots are a convenience for dashboards reading Redis directly.  Every
cache call is wrapped in try/except so a Redis outage never breaks ingestion.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pridesync.cache import keys

log = logging.getLogger(__name__)

_redis_client = None
_redis_checked = False


def get_redis():
    """Lazy singleton.  Returns ``redis.Redis`` or ``None`` if unavailable."""
    global _redis_client, _redis_checked
    if _redis_checked:
        return _redis_client
    _redis_checked = True
    try:
        from pridesync.config import settings

        if not settings.redis_url:
            log.info("Redis not configured, boat state snapshots disabled")
            return None
        import redis

        client = redis.Redis.from_url(
            settings.redis_url, decode_responses=True, socket_connect_timeout=3
        )
        client.ping()
        _redis_client = client
        log.info("Redis connected: %s", settings.redis_url)
    except Exception as exc:
        log.warning("Redis unavailable (%s), boat state snapshots disabled", exc)
        _redis_client = None
    return _redis_client


class RedisStateCache:
    """JSON snapshots with a TTL, keyed by :mod:`pridesync.cache.keys`.

    ``client`` defaults to the process-wide :func:`get_redis` connection.
    """

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        return self._client if self._client is not None else get_redis()

    @property
    def available(self) -> bool:
        return self.client is not None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            r = self.client
            if r is None:
                return
            r.set(key, json.dumps(value, default=str), ex=ttl_seconds)
        except Exception as exc:
            log.warning("Cache set failed for %s: %s", key, exc)

    def get(self, key: str) -> Optional[Any]:
        try:
            r = self.client
            if r is None:
                return None
            raw = r.get(key)
            return json.loads(raw) if raw is not None else None
        except Exception as exc:
            log.warning("Cache get failed for %s: %s", key, exc)
            return None

    def delete(self, key: str) -> None:
        try:
            r = self.client
            if r is None:
                return
            r.delete(key)
        except Exception as exc:
            log.warning("Cache delete failed for %s: %s", key, exc)

    def get_boat_state(self, boat_id: int) -> Optional[dict]:
        """Last cached snapshot of *boat_id*, as plain JSON."""
        return self.get(keys.boat_state(boat_id))
