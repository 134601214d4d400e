"""Parade-wide read endpoints: status, route, leaderboard, incidents."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from pridesync.core.models import ParadeStats, utcnow
from pridesync.core.route import ParadeRoute
from pridesync.core.tracker import BoatStateTracker
from pridesync.deps import get_route, get_tracker

router = APIRouter(prefix="/parade", tags=["parade"])


class ParadeStatusOut(BaseModel):
    status: str  # "active" | "waiting"
    statistics: ParadeStats
    route_total_distance_m: float
    route_total_points: int
    route_max_tolerance_m: float


class LeaderboardEntry(BaseModel):
    rank: int
    id: int
    name: str
    status: str
    route_progress: float
    route_distance_m: Optional[float] = None
    speed_kmh: float
    last_update: datetime


class IncidentOut(BaseModel):
    boat_id: int
    boat_name: str
    boat_status: str
    type: str
    severity: str
    message: str
    timestamp: datetime
    metadata: Dict[str, Any] = {}


@router.get("/status", response_model=ParadeStatusOut)
def parade_status(
    route: ParadeRoute = Depends(get_route),
    tracker: BoatStateTracker = Depends(get_tracker),
):
    stats = tracker.get_parade_stats()
    return ParadeStatusOut(
        status="active" if stats.active_boats > 0 else "waiting",
        statistics=stats,
        route_total_distance_m=route.total_distance_m,
        route_total_points=len(route),
        route_max_tolerance_m=route.max_distance_from_route_m,
    )


@router.get("/route")
def parade_route(route: ParadeRoute = Depends(get_route)):
    return route.route_info()


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
def leaderboard(tracker: BoatStateTracker = Depends(get_tracker)):
    boats = [b for b in tracker.get_all_boat_states() if b.position.progress_percent > 0]
    boats.sort(key=lambda b: b.position.progress_percent, reverse=True)
    return [
        LeaderboardEntry(
            rank=i + 1,
            id=b.id,
            name=b.name,
            status=b.status.value,
            route_progress=b.position.progress_percent,
            route_distance_m=b.position.distance_along_route_m,
            speed_kmh=b.position.speed_kmh,
            last_update=b.last_update,
        )
        for i, b in enumerate(boats)
    ]


@router.get("/incidents", response_model=List[IncidentOut])
def parade_incidents(
    hours: float = Query(default=24.0, gt=0, le=168),
    tracker: BoatStateTracker = Depends(get_tracker),
):
    cutoff = utcnow() - timedelta(hours=hours)
    out: List[IncidentOut] = []
    for boat in tracker.get_all_boat_states():
        for inc in boat.incidents:
            if inc.timestamp <= cutoff:
                continue
            out.append(IncidentOut(
                boat_id=boat.id,
                boat_name=boat.name,
                boat_status=boat.status.value,
                type=inc.type.value,
                severity=inc.severity.value,
                message=inc.message,
                timestamp=inc.timestamp,
                metadata=inc.metadata,
            ))
    out.sort(key=lambda i: i.timestamp, reverse=True)
    return out
