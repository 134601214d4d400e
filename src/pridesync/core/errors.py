from __future__ import annotations


class RouteConfigError(ValueError):
    """Route waypoints are empty or not ordered by cumulative distance."""


class BoatNotFoundError(LookupError):
    def __init__(self, boat_id: int):
        super().__init__(f"Boat {boat_id} not found")
        self.boat_id = boat_id
