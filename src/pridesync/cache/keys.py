"""Redis key naming conventions for the PrideSync cache layer."""
from __future__ import annotations

_PREFIX = "pridesync"


def boat_state(boat_id: int) -> str:
    """Key for the latest state snapshot of one boat."""
    return f"{_PREFIX}:boat:{boat_id}"
