"""Shared fixtures: canal route, fake collaborators, tracker, API client."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from pridesync.api import create_app
from pridesync.contracts.route_contract import MappedPosition
from pridesync.core.route import AMSTERDAM_2025, ParadeRoute
from pridesync.core.tracker import BoatStateTracker
from pridesync.devices import DeviceDirectory

T0 = datetime(2025, 8, 2, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.positions: List[Tuple[int, Dict[str, Any]]] = []
        self.incidents: List[Tuple[int, Dict[str, Any]]] = []

    def save_position(self, boat_id, record):
        if self.fail:
            raise ConnectionError("database down")
        self.positions.append((boat_id, record))
        return len(self.positions)

    def save_incident(self, boat_id, record):
        if self.fail:
            raise ConnectionError("database down")
        self.incidents.append((boat_id, record))
        return len(self.incidents)


class FakeCache:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.data: Dict[str, Any] = {}
        self.ttls: Dict[str, int] = {}

    def set(self, key, value, ttl_seconds):
        if self.fail:
            raise TimeoutError("redis timeout")
        self.data[key] = value
        self.ttls[key] = ttl_seconds

    def get(self, key):
        return self.data.get(key)

    def delete(self, key):
        self.data.pop(key, None)


def make_mapped(
    distance_m: float,
    seconds: float = 0.0,
    total_m: float = 4200.0,
    off_route_m: float = 0.0,
    latitude: float = 52.3851,
    longitude: float = 4.8947,
    start: datetime = T0,
) -> MappedPosition:
    """MappedPosition at *distance_m* along a *total_m* route, *seconds* after *start*."""
    return MappedPosition(
        latitude=latitude,
        longitude=longitude,
        distance_along_route_m=distance_m,
        progress_percent=max(0.0, min(100.0, round(100.0 * distance_m / total_m, 2))),
        heading_deg=90.0,
        distance_off_route_m=off_route_m,
        nearest_segment_index=0,
        source_timestamp=start + timedelta(seconds=seconds),
    )


@pytest.fixture
def route() -> ParadeRoute:
    return ParadeRoute(AMSTERDAM_2025)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def tracker(store, cache, clock) -> BoatStateTracker:
    return BoatStateTracker(store=store, cache=cache, clock=clock)


@pytest.fixture
def devices() -> DeviceDirectory:
    return DeviceDirectory({"353760970649317": 7})


@pytest.fixture
def client(route, devices, store, cache):
    """API client over a fresh tracker (wall clock, inline persistence)."""
    app = create_app(
        tracker=BoatStateTracker(store=store, cache=cache),
        route=route,
        devices=devices,
    )
    with TestClient(app) as c:
        yield c


def iso(seconds: float = 0.0, start: Optional[datetime] = None) -> str:
    return ((start or T0) + timedelta(seconds=seconds)).isoformat().replace("+00:00", "Z")
