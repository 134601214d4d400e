from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from pridesync.contracts.route_contract import MappedPosition
from pridesync.core.models import (
    BoatState,
    CorridorStatus,
    Incident,
    IncidentCheckResult,
    IncidentType,
    Severity,
)
from pridesync.core.route import ParadeRoute
from pridesync.core.tracker import BoatStateTracker

log = logging.getLogger(__name__)


@dataclass
class IngestResult:
    mapped: MappedPosition
    state: BoatState
    corridor: CorridorStatus
    incidents: IncidentCheckResult


def ingest_fix(
    route: ParadeRoute,
    tracker: BoatStateTracker,
    boat_id: int,
    latitude: float,
    longitude: float,
    timestamp: Union[datetime, str],
) -> Optional[IngestResult]:
    """Map one GPS fix and run it through the tracker.

    Returns ``None`` when the fix is rejected by the route mapper.
    """
    mapped = route.map_to_route(latitude, longitude, timestamp)
    if mapped is None:
        log.warning("Could not map GPS position to route for boat %s", boat_id)
        return None

    state = tracker.update_position(boat_id, mapped)

    corridor = tracker.check_corridor(boat_id)
    if corridor.entered_violation:
        state = tracker.trigger_incident(boat_id, [Incident(
            type=IncidentType.CORRIDOR_VIOLATION,
            severity=Severity.WARNING,
            message="Boat is outside designated corridor",
            timestamp=corridor.last_warning,
            metadata={"distance_off_route_m": corridor.distance_off_route_m},
        )])

    check = tracker.check_for_incidents(boat_id)
    if check.has_incident:
        state = tracker.trigger_incident(boat_id, check.incidents)

    return IngestResult(mapped=mapped, state=state, corridor=corridor, incidents=check)
