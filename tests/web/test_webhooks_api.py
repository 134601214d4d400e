"""POST /webhooks/gps."""

from __future__ import annotations

from conftest import iso
from pridesync.core.route import AMSTERDAM_2025

AMSTEL = AMSTERDAM_2025[3]
MAGERE_BRUG = AMSTERDAM_2025[4]


def _payload(point=AMSTEL, seconds=0, **extra):
    body = {
        "boat_number": 1,
        "timestamp": iso(seconds),
        "latitude": point.latitude,
        "longitude": point.longitude,
    }
    body.update(extra)
    return body


def test_accepts_fix_on_route(client):
    r = client.post("/webhooks/gps", json=_payload())
    assert r.status_code == 200
    data = r.json()
    assert data["success"] is True
    assert data["boat_number"] == 1
    assert data["processed"]["route_distance_m"] == 2580
    assert data["processed"]["route_progress"] == 61.43
    assert data["processed"]["status"] == "active"
    assert data["processed"]["in_corridor"] is True
    assert data["processed"]["processing_time_ms"] >= 0


def test_second_fix_reports_speed(client):
    client.post("/webhooks/gps", json=_payload(AMSTEL, 0))
    r = client.post("/webhooks/gps", json=_payload(MAGERE_BRUG, 340))
    assert r.status_code == 200
    assert r.json()["processed"]["speed_kmh"] == 3.6


def test_off_route_fix_is_422(client):
    r = client.post("/webhooks/gps", json=_payload(latitude=52.0, longitude=5.5))
    assert r.status_code == 422
    detail = r.json()["detail"]
    assert detail["error"] == "GPS position could not be mapped to parade route"
    assert detail["boat_number"] == 1
    assert client.get("/boats/1").status_code == 404


def test_imei_resolves_through_device_map(client):
    body = _payload()
    del body["boat_number"]
    body["imei"] = "353760970649317"
    r = client.post("/webhooks/gps", json=body)
    assert r.status_code == 200
    assert r.json()["boat_number"] == 7
    assert r.json()["imei"] == "353760970649317"


def test_unknown_imei_is_404(client):
    body = _payload()
    del body["boat_number"]
    body["imei"] = "000000000000000"
    assert client.post("/webhooks/gps", json=body).status_code == 404


def test_payload_without_identity_is_rejected(client):
    body = _payload()
    del body["boat_number"]
    assert client.post("/webhooks/gps", json=body).status_code == 422


def test_out_of_range_coordinates_fail_validation(client):
    r = client.post("/webhooks/gps", json=_payload(latitude=95.0))
    assert r.status_code == 422
    assert client.get("/boats").json() == []


def test_missing_timestamp_fails_validation(client):
    body = _payload()
    del body["timestamp"]
    assert client.post("/webhooks/gps", json=body).status_code == 422


def test_unexpected_error_is_500(client, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("kaboom")

    monkeypatch.setattr("pridesync.routers.webhooks.ingest_fix", boom)
    r = client.post("/webhooks/gps", json=_payload())
    assert r.status_code == 500
    assert "kaboom" in r.json()["detail"]


def test_persistence_failure_still_returns_200(client, store):
    store.fail = True
    r = client.post("/webhooks/gps", json=_payload())
    assert r.status_code == 200
    assert client.get("/boats/1").json()["position"]["distance_along_route_m"] == 2580
