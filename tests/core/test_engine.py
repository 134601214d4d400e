"""End-to-end ingest: fix -> mapper -> tracker -> corridor -> incidents."""

from __future__ import annotations

from conftest import iso
from pridesync.core.engine import ingest_fix
from pridesync.core.models import BoatStatus, IncidentType
from pridesync.core.route import AMSTERDAM_2025


def _at(idx):
    p = AMSTERDAM_2025[idx]
    return p.latitude, p.longitude


def test_rejected_fix_changes_nothing(route, tracker, store):
    assert ingest_fix(route, tracker, 1, 52.0, 5.5, iso()) is None
    assert tracker.get_boat_state(1) is None
    assert store.positions == []


def test_fix_on_route_creates_boat(route, tracker):
    result = ingest_fix(route, tracker, 4, *_at(0), iso())

    assert result.mapped.distance_along_route_m == 0
    assert result.state.id == 4
    assert result.corridor.in_corridor is True
    assert tracker.get_boat_state(4) is not None


def test_boat_at_rest_on_first_fix_is_flagged_stopped(route, tracker):
    # new boats start active with zero speed
    result = ingest_fix(route, tracker, 4, *_at(0), iso())
    assert [i.type for i in result.incidents.incidents] == [IncidentType.STOPPED]
    assert [i.type for i in result.state.incidents] == [IncidentType.STOPPED]


def test_second_fix_yields_speed(route, tracker):
    ingest_fix(route, tracker, 1, *_at(3), iso(0))
    result = ingest_fix(route, tracker, 1, *_at(4), iso(340))

    # 340 m in 340 s
    assert result.state.position.speed_kmh == 3.6
    assert result.state.status == BoatStatus.ACTIVE
    assert result.incidents.has_incident is False


def test_fast_boat_records_speeding(route, tracker):
    ingest_fix(route, tracker, 1, *_at(0), iso(0))
    result = ingest_fix(route, tracker, 1, *_at(1), iso(60))

    assert [i.type for i in result.incidents.incidents] == [IncidentType.SPEEDING]
    types = [i.type for i in tracker.get_boat_state(1).incidents]
    assert types[-1] == IncidentType.SPEEDING


def test_leaving_corridor_records_one_violation(route, tracker):
    lat, lon = _at(5)
    # ~67 m north: accepted by the mapper, outside the 50 m corridor
    first = ingest_fix(route, tracker, 2, lat + 0.0006, lon, iso(0))
    second = ingest_fix(route, tracker, 2, lat + 0.0006, lon, iso(60))

    assert first.corridor.entered_violation is True
    assert second.corridor.entered_violation is False
    assert second.corridor.warning_count == 1

    violations = [
        i for i in tracker.get_boat_state(2).incidents
        if i.type == IncidentType.CORRIDOR_VIOLATION
    ]
    assert len(violations) == 1
    assert violations[0].metadata["distance_off_route_m"] == 67


def test_finish_waypoint_finishes_boat(route, tracker):
    ingest_fix(route, tracker, 9, *_at(6), iso(0))
    result = ingest_fix(route, tracker, 9, *_at(7), iso(300))
    assert result.state.status == BoatStatus.FINISHED
    assert result.mapped.progress_percent == 100.0
