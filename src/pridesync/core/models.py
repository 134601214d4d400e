from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BoatStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    FINISHED = "finished"
    EMERGENCY = "emergency"


class IncidentType(str, Enum):
    STOPPED = "stopped"
    REVERSE = "reverse"
    SPEEDING = "speeding"
    CORRIDOR_VIOLATION = "corridor-violation"
    MANUAL_EMERGENCY = "manual-emergency"
    STATUS_CHANGE = "status-change"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def next_status_for_progress(current: BoatStatus, progress_percent: float) -> BoatStatus:
    """Status implied by an ordinary position update.

    Emergency and finished are sticky here; only an operator status update
    moves a boat out of them.
    """
    if current in (BoatStatus.EMERGENCY, BoatStatus.FINISHED):
        return current
    if progress_percent >= 100.0:
        return BoatStatus.FINISHED
    if progress_percent > 0.0:
        return BoatStatus.ACTIVE
    return current


def escalate(current: BoatStatus, incidents: List["Incident"]) -> BoatStatus:
    if any(i.severity == Severity.CRITICAL for i in incidents):
        return BoatStatus.EMERGENCY
    return current


# ---------------------------------------------------------------------------
# State records
# ---------------------------------------------------------------------------

class Incident(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: IncidentType
    severity: Severity = Severity.INFO
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BoatPosition(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance_along_route_m: Optional[float] = None
    progress_percent: float = 0.0
    speed_kmh: float = 0.0
    heading_deg: float = 0.0
    distance_off_route_m: float = 0.0
    timestamp: Optional[datetime] = None      # GPS fix time
    last_update: Optional[datetime] = None    # wall clock when applied


class CorridorState(BaseModel):
    in_corridor: bool = True
    last_warning: Optional[datetime] = None
    warning_count: int = 0


class BoatState(BaseModel):
    id: int
    name: str = ""
    status: BoatStatus = BoatStatus.ACTIVE
    position: BoatPosition = Field(default_factory=BoatPosition)
    corridor: CorridorState = Field(default_factory=CorridorState)
    incidents: List[Incident] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    last_update: datetime = Field(default_factory=utcnow)

    @classmethod
    def new(cls, boat_id: int, now: datetime) -> "BoatState":
        return cls(id=boat_id, name=f"Pride Boat {boat_id}", created_at=now, last_update=now)


class PositionHistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    distance_along_route_m: float
    progress_percent: float
    speed_kmh: float
    heading_deg: float
    distance_off_route_m: float
    timestamp: datetime
    recorded_at: datetime


# ---------------------------------------------------------------------------
# Query results
# ---------------------------------------------------------------------------

class CorridorStatus(BaseModel):
    in_corridor: bool
    out_of_corridor: bool
    distance_off_route_m: float
    warning_count: int
    last_warning: Optional[datetime] = None
    # True only on the update that took the boat out of the corridor
    entered_violation: bool = False


class IncidentCheckResult(BaseModel):
    has_incident: bool
    incidents: List[Incident] = Field(default_factory=list)
    count: int = 0


class ParadeStats(BaseModel):
    total_boats: int
    waiting_boats: int
    active_boats: int
    finished_boats: int
    emergency_boats: int
    average_progress: float
    last_update: datetime
