"""Supabase connection + position/incident persistence.

The tracker keeps working without a database; callers treat every write here
as best-effort.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

log = logging.getLogger(__name__)

_supabase_client = None
_supabase_checked = False


def get_supabase():
    """Lazy singleton.  Returns a supabase ``Client`` or ``None`` if unconfigured."""
    global _supabase_client, _supabase_checked
    if _supabase_checked:
        return _supabase_client
    _supabase_checked = True
    try:
        from pridesync.config import settings

        if not settings.supabase_url or not settings.supabase_service_key:
            log.info("Supabase not configured, running in-memory only")
            return None
        from supabase import create_client

        _supabase_client = create_client(settings.supabase_url, settings.supabase_service_key)
        log.info("Supabase client created: %s", settings.supabase_url)
    except Exception as exc:
        log.warning("Supabase unavailable (%s), running in-memory only", exc)
        _supabase_client = None
    return _supabase_client


class PositionStore(Protocol):
    def save_position(self, boat_id: int, record: Dict[str, Any]) -> Any: ...

    def save_incident(self, boat_id: int, record: Dict[str, Any]) -> Any: ...


class SupabasePositionStore:
    """Writes accepted positions and incidents to Supabase tables.

    Errors propagate; the tracker decides what to do with them.
    """

    positions_table = "boat_positions"
    incidents_table = "boat_incidents"

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        return self._client if self._client is not None else get_supabase()

    def save_position(self, boat_id: int, record: Dict[str, Any]) -> Optional[Any]:
        sb = self.client
        if sb is None:
            return None
        row = {
            "boat_number": boat_id,
            "latitude": record.get("latitude"),
            "longitude": record.get("longitude"),
            "route_distance": record.get("distance_along_route_m") or 0,
            "route_progress": record.get("progress_percent") or 0,
            "speed": record.get("speed_kmh") or 0,
            "heading": record.get("heading_deg") or 0,
            "distance_from_route": record.get("distance_off_route_m") or 0,
            "timestamp": record.get("timestamp"),
        }
        resp = sb.table(self.positions_table).insert(row).execute()
        row_id = resp.data[0].get("id") if resp.data else None
        log.debug("Position saved for boat %s (id=%s)", boat_id, row_id)
        return row_id

    def save_incident(self, boat_id: int, record: Dict[str, Any]) -> Optional[Any]:
        sb = self.client
        if sb is None:
            return None
        row = {
            "boat_number": boat_id,
            "incident_type": record.get("type"),
            "severity": record.get("severity") or "info",
            "message": record.get("message"),
            "metadata": record.get("metadata") or {},
            "timestamp": record.get("timestamp"),
        }
        resp = sb.table(self.incidents_table).insert(row).execute()
        row_id = resp.data[0].get("id") if resp.data else None
        log.debug("Incident saved for boat %s (id=%s)", boat_id, row_id)
        return row_id
