"""
Synthetic parade: boats advancing along the route, emitting GPS fixes.

Used by ``pridesync simulate`` to exercise a running server and by tests.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional

from pridesync.core.geo import interpolate_point
from pridesync.core.models import utcnow
from pridesync.core.route import ParadeRoute


@dataclass
class SimBoat:
    boat_number: int
    speed_kmh: float
    distance_m: float = 0.0


@dataclass
class ParadeSimulator:
    route: ParadeRoute
    boats: int = 5
    spacing_m: float = 150.0
    min_speed_kmh: float = 2.0
    max_speed_kmh: float = 5.0
    seed: Optional[int] = None
    start: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        rng = random.Random(self.seed)
        self._boats: List[SimBoat] = [
            SimBoat(
                boat_number=i + 1,
                speed_kmh=rng.uniform(self.min_speed_kmh, self.max_speed_kmh),
                # first boat leads
                distance_m=max(0.0, (self.boats - 1 - i) * self.spacing_m),
            )
            for i in range(self.boats)
        ]

    def position_at(self, distance_m: float) -> tuple[float, float]:
        """Lat/lon of the point *distance_m* along the route polyline."""
        pts = self.route.points
        d = max(0.0, min(distance_m, self.route.total_distance_m))
        for a, b in zip(pts, pts[1:]):
            if d <= b.cumulative_distance_m:
                seg = b.cumulative_distance_m - a.cumulative_distance_m
                frac = (d - a.cumulative_distance_m) / seg if seg > 0 else 0.0
                return interpolate_point(a.latitude, a.longitude, b.latitude, b.longitude, frac)
        last = pts[-1]
        return last.latitude, last.longitude

    def steps(self, count: int, interval_s: float) -> Iterator[List[Dict]]:
        """Yield *count* batches of webhook payloads, one per boat per step."""
        for step in range(count):
            t = self.start + timedelta(seconds=step * interval_s)
            batch = []
            for boat in self._boats:
                if step > 0:
                    boat.distance_m = min(
                        self.route.total_distance_m,
                        boat.distance_m + boat.speed_kmh / 3.6 * interval_s,
                    )
                lat, lon = self.position_at(boat.distance_m)
                batch.append({
                    "boat_number": boat.boat_number,
                    "timestamp": t.isoformat(),
                    "latitude": round(lat, 6),
                    "longitude": round(lon, 6),
                })
            yield batch
