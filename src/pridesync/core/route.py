"""Parade route geometry and GPS-to-route mapping."""
from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from pridesync.contracts.route_contract import MappedPosition, RoutePoint
from pridesync.core.errors import RouteConfigError
from pridesync.core.geo import bearing_deg, haversine_m, interpolate_point

log = logging.getLogger(__name__)

DEFAULT_MAX_DISTANCE_FROM_ROUTE_M = 100.0

# Amsterdam Pride canal parade, 2025: Westerdok -> Oosterdok
AMSTERDAM_2025: tuple[RoutePoint, ...] = (
    RoutePoint(52.3851, 4.8947, 0.0, "Westerdok"),
    RoutePoint(52.3836, 4.8842, 850.0, "Prinsengracht"),
    RoutePoint(52.3758, 4.8835, 1720.0, "Prinsengracht (zuid)"),
    RoutePoint(52.3677, 4.8951, 2580.0, "Amstel"),
    RoutePoint(52.3648, 4.8978, 2920.0, "Amstel (Magere Brug)"),
    RoutePoint(52.3668, 4.9015, 3250.0, "Zwanenburgwal"),
    RoutePoint(52.3712, 4.9058, 3780.0, "Oudeschans"),
    RoutePoint(52.3742, 4.9089, 4200.0, "Oosterdok"),
)


# ---------------------------------------------------------------------------
# Input parsing
# ---------------------------------------------------------------------------

def parse_timestamp(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Return an aware UTC datetime, or None if *value* is not a valid instant.

    Accepts ``datetime`` objects and ISO-8601 strings (a trailing ``Z`` is
    allowed).  Naive values are taken to be UTC.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        s = value.strip()
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _valid_coordinates(latitude: Any, longitude: Any) -> bool:
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------

class ParadeRoute:
    """Immutable ordered waypoints plus the mapping of raw fixes onto them."""

    def __init__(
        self,
        points: Sequence[RoutePoint],
        max_distance_from_route_m: float = DEFAULT_MAX_DISTANCE_FROM_ROUTE_M,
    ):
        if not points:
            raise RouteConfigError("A parade route needs at least one waypoint")
        for prev, cur in zip(points, points[1:]):
            if cur.cumulative_distance_m < prev.cumulative_distance_m:
                raise RouteConfigError(
                    f"Cumulative distance decreases at waypoint {cur.name or cur}"
                )
        self._points: tuple[RoutePoint, ...] = tuple(points)
        self.max_distance_from_route_m = float(max_distance_from_route_m)

    @property
    def points(self) -> tuple[RoutePoint, ...]:
        return self._points

    @property
    def total_distance_m(self) -> float:
        return self._points[-1].cumulative_distance_m

    def __len__(self) -> int:
        return len(self._points)

    # ---- helpers -----------------------------------------------------------

    def _nearest(self, latitude: float, longitude: float) -> tuple[int, float]:
        best_i = -1
        best_d = math.inf
        for i, p in enumerate(self._points):
            d = haversine_m(latitude, longitude, p.latitude, p.longitude)
            if d < best_d:
                best_i, best_d = i, d
        return best_i, best_d

    def _distance_along(self, latitude: float, longitude: float, idx: int) -> float:
        # No interpolation at the route ends
        if idx == 0 or idx == len(self._points) - 1:
            return self._points[idx].cumulative_distance_m

        cur = self._points[idx]
        nxt = self._points[idx + 1]
        seg_geo = haversine_m(cur.latitude, cur.longitude, nxt.latitude, nxt.longitude)
        if seg_geo > 0:
            to_next = haversine_m(latitude, longitude, nxt.latitude, nxt.longitude)
            frac = 1.0 - to_next / seg_geo
        else:
            frac = 0.0
        frac = max(0.0, min(1.0, frac))

        seg_len = nxt.cumulative_distance_m - cur.cumulative_distance_m
        return cur.cumulative_distance_m + seg_len * frac

    def progress_for(self, distance_m: float) -> float:
        total = self.total_distance_m
        if total <= 0:
            return 0.0
        pct = round(100.0 * distance_m / total, 2)
        return max(0.0, min(100.0, pct))

    # ---- public API --------------------------------------------------------

    def map_to_route(
        self,
        latitude: float,
        longitude: float,
        timestamp: Union[datetime, str],
    ) -> Optional[MappedPosition]:
        """Map a raw GPS fix onto the route.

        Returns ``None`` when the fix is invalid or further than
        ``max_distance_from_route_m`` from every waypoint.  Rejection is an
        ordinary outcome of GPS noise, not an error.
        """
        if not _valid_coordinates(latitude, longitude):
            log.warning("Invalid GPS coordinates rejected: (%r, %r)", latitude, longitude)
            return None
        ts = parse_timestamp(timestamp)
        if ts is None:
            log.warning("Invalid GPS timestamp rejected: %r", timestamp)
            return None

        lat = float(latitude)
        lon = float(longitude)
        idx, off_route = self._nearest(lat, lon)

        if off_route > self.max_distance_from_route_m:
            log.warning(
                "GPS position too far from parade route: (%.5f, %.5f) %.0fm > %.0fm",
                lat, lon, off_route, self.max_distance_from_route_m,
            )
            return None

        distance = self._distance_along(lat, lon, idx)

        heading = 0.0
        if idx < len(self._points) - 1:
            nxt = self._points[idx + 1]
            heading = round(bearing_deg(lat, lon, nxt.latitude, nxt.longitude), 1) % 360.0

        mapped = MappedPosition(
            latitude=lat,
            longitude=lon,
            distance_along_route_m=distance,
            progress_percent=self.progress_for(distance),
            heading_deg=heading,
            distance_off_route_m=float(round(off_route)),
            nearest_segment_index=idx,
            source_timestamp=ts,
        )
        log.debug(
            "GPS position mapped to route: (%.5f, %.5f) -> %.2f%% (off-route %.0fm)",
            lat, lon, mapped.progress_percent, off_route,
        )
        return mapped

    def route_info(self) -> Dict[str, Any]:
        total = self.total_distance_m
        return {
            "total_distance_m": total,
            "total_points": len(self._points),
            "max_tolerance_m": self.max_distance_from_route_m,
            "route": [
                {
                    "name": p.name,
                    "latitude": p.latitude,
                    "longitude": p.longitude,
                    "cumulative_distance_m": p.cumulative_distance_m,
                    "progress_percent": (p.cumulative_distance_m / total * 100.0) if total else 0.0,
                }
                for p in self._points
            ],
        }


# ---------------------------------------------------------------------------
# Construction from raw data
# ---------------------------------------------------------------------------

def build_route(
    raw_points: List[dict],
    max_distance_from_route_m: float = DEFAULT_MAX_DISTANCE_FROM_ROUTE_M,
) -> ParadeRoute:
    """
    Build a route from an unmeasured polyline.

    Parameters
    ----------
    raw_points : list of dict
        Each dict must have ``lat`` and ``lon``; may have ``name``.
    max_distance_from_route_m : float
        Rejection tolerance for :meth:`ParadeRoute.map_to_route`.
    """
    if not raw_points:
        raise RouteConfigError("A parade route needs at least one waypoint")

    cum = 0.0
    points: list[RoutePoint] = []
    for i, p in enumerate(raw_points):
        if i > 0:
            prev = raw_points[i - 1]
            cum += haversine_m(prev["lat"], prev["lon"], p["lat"], p["lon"])
        points.append(RoutePoint(float(p["lat"]), float(p["lon"]), cum, p.get("name")))
    return ParadeRoute(points, max_distance_from_route_m)


def resample_route(route: ParadeRoute, spacing_m: float) -> ParadeRoute:
    """
    Resample a route into uniform-spacing waypoints.

    Sparse waypoints leave mid-segment fixes further than the rejection
    tolerance from every waypoint; resampling at less than twice the
    tolerance keeps every on-route fix mappable.  Cumulative distances follow
    the source route's declared distances, not re-measured geodesics.
    """
    if spacing_m <= 0:
        raise ValueError("spacing_m must be positive")
    src = route.points
    total = route.total_distance_m
    if len(src) < 2 or total <= 0:
        return route

    targets: list[float] = []
    d = 0.0
    while d < total:
        targets.append(d)
        d += spacing_m
    targets.append(total)

    points: list[RoutePoint] = []
    seg = 0
    for target in targets:
        while seg < len(src) - 2 and src[seg + 1].cumulative_distance_m < target:
            seg += 1
        a, b = src[seg], src[seg + 1]
        seg_len = b.cumulative_distance_m - a.cumulative_distance_m
        frac = (target - a.cumulative_distance_m) / seg_len if seg_len > 0 else 0.0
        frac = max(0.0, min(1.0, frac))
        lat, lon = interpolate_point(a.latitude, a.longitude, b.latitude, b.longitude, frac)
        name = a.name if frac == 0.0 else (b.name if frac == 1.0 else None)
        points.append(RoutePoint(lat, lon, target, name))

    return ParadeRoute(points, route.max_distance_from_route_m)


def load_route(
    path: Union[str, Path],
    max_distance_from_route_m: float = DEFAULT_MAX_DISTANCE_FROM_ROUTE_M,
) -> ParadeRoute:
    """Read a route JSON file: a list of waypoints, measured or raw."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("route", [])
    if not isinstance(data, list) or not data:
        raise RouteConfigError(f"No waypoints in {path}")

    if all("cumulative_distance_m" in p for p in data):
        points = [
            RoutePoint(
                float(p["lat"]), float(p["lon"]), float(p["cumulative_distance_m"]), p.get("name")
            )
            for p in data
        ]
        return ParadeRoute(points, max_distance_from_route_m)
    return build_route(data, max_distance_from_route_m)


def default_route() -> ParadeRoute:
    """Route configured in settings, falling back to the built-in 2025 route."""
    from pridesync.config import settings

    if settings.route_file:
        log.info("Loading parade route from %s", settings.route_file)
        route = load_route(settings.route_file, settings.max_distance_from_route_m)
    else:
        route = ParadeRoute(AMSTERDAM_2025, settings.max_distance_from_route_m)
    if settings.route_spacing_m > 0:
        route = resample_route(route, settings.route_spacing_m)
        log.info("Route resampled to %d waypoints", len(route))
    return route
