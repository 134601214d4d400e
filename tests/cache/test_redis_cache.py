"""RedisStateCache: JSON snapshots, graceful fallback when Redis is absent or failing."""

from __future__ import annotations

import json

import pytest

from conftest import make_mapped
from pridesync.cache import keys
from pridesync.cache import redis_client as rc
from pridesync.core.models import BoatState
from pridesync.core.tracker import BoatStateTracker


class FakeRedis:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.store = {}
        self.expiry = {}

    def _check(self):
        if self.fail:
            raise ConnectionError("redis down")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        self.expiry[key] = ex

    def delete(self, key):
        self._check()
        self.store.pop(key, None)

    def ping(self):
        self._check()
        return True


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def no_redis(monkeypatch):
    monkeypatch.setattr(rc, "_redis_client", None)
    monkeypatch.setattr(rc, "_redis_checked", True)


def test_boat_state_key():
    assert keys.boat_state(7) == "pridesync:boat:7"


def test_set_then_get(fake_redis):
    cache = rc.RedisStateCache(fake_redis)
    cache.set("k", {"id": 1, "speed_kmh": 3.6}, 300)
    assert json.loads(fake_redis.store["k"]) == {"id": 1, "speed_kmh": 3.6}
    assert fake_redis.expiry["k"] == 300
    assert cache.get("k") == {"id": 1, "speed_kmh": 3.6}


def test_missing_key_is_none(fake_redis):
    assert rc.RedisStateCache(fake_redis).get("nope") is None


def test_delete(fake_redis):
    cache = rc.RedisStateCache(fake_redis)
    cache.set("k", [1], 10)
    cache.delete("k")
    assert "k" not in fake_redis.store


def test_failures_are_swallowed(fake_redis, caplog):
    fake_redis.fail = True
    cache = rc.RedisStateCache(fake_redis)
    with caplog.at_level("WARNING"):
        cache.set("k", {"a": 1}, 10)
        assert cache.get("k") is None
        cache.delete("k")
    assert "Cache set failed" in caplog.text
    assert "Cache get failed" in caplog.text
    assert "Cache delete failed" in caplog.text


def test_without_redis_everything_is_a_noop(no_redis):
    cache = rc.RedisStateCache()
    cache.set("k", {"a": 1}, 10)
    assert cache.get("k") is None
    cache.delete("k")
    assert cache.available is False


def test_shared_connection_is_used_by_default(monkeypatch, fake_redis):
    monkeypatch.setattr(rc, "_redis_client", fake_redis)
    monkeypatch.setattr(rc, "_redis_checked", True)
    cache = rc.RedisStateCache()
    assert cache.available is True
    cache.set("k", 1, 10)
    assert fake_redis.store["k"] == "1"


def test_get_redis_disabled_when_unconfigured(monkeypatch):
    from pridesync.config import settings

    monkeypatch.setattr(rc, "_redis_client", None)
    monkeypatch.setattr(rc, "_redis_checked", False)
    monkeypatch.setattr(settings, "redis_url", "")
    assert rc.get_redis() is None


def test_tracker_snapshot_round_trips_through_cache(fake_redis):
    cache = rc.RedisStateCache(fake_redis)
    tracker = BoatStateTracker(cache=cache)
    tracker.update_position(5, make_mapped(420.0))

    restored = BoatState.model_validate(cache.get_boat_state(5))
    assert restored.id == 5
    assert restored.position.distance_along_route_m == 420.0
    assert fake_redis.expiry[keys.boat_state(5)] == 300


def test_clear_all_evicts_snapshots(fake_redis):
    cache = rc.RedisStateCache(fake_redis)
    tracker = BoatStateTracker(cache=cache)
    tracker.update_position(5, make_mapped(420.0))
    tracker.clear_all()
    assert cache.get_boat_state(5) is None
