from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class RoutePoint:
    latitude: float
    longitude: float
    cumulative_distance_m: float
    name: Optional[str] = None


@dataclass(frozen=True)
class MappedPosition:
    """Route-relative position of one GPS fix. Recomputed on every call."""

    latitude: float
    longitude: float
    distance_along_route_m: float
    progress_percent: float
    heading_deg: float
    distance_off_route_m: float
    nearest_segment_index: int
    source_timestamp: datetime
