"""Per-boat live state, history and operator status changes."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from pridesync.core.errors import BoatNotFoundError
from pridesync.core.models import BoatState, BoatStatus, PositionHistoryEntry, Severity
from pridesync.core.tracker import BoatStateTracker
from pridesync.deps import get_tracker

router = APIRouter(prefix="/boats", tags=["boats"])


class StatusUpdate(BaseModel):
    status: BoatStatus
    message: Optional[str] = None
    severity: Severity = Severity.INFO


class StatusUpdateOut(BaseModel):
    boat_id: int
    previous_status: BoatStatus
    new_status: BoatStatus
    message: str
    boat: BoatState


@router.get("", response_model=List[BoatState])
def list_boats(
    status: Optional[BoatStatus] = Query(default=None),
    tracker: BoatStateTracker = Depends(get_tracker),
):
    boats = tracker.get_all_boat_states()
    if status is not None:
        boats = [b for b in boats if b.status == status]
    return sorted(boats, key=lambda b: b.id)


@router.get("/{boat_id}", response_model=BoatState)
def get_boat(boat_id: int, tracker: BoatStateTracker = Depends(get_tracker)):
    boat = tracker.get_boat_state(boat_id)
    if boat is None:
        raise HTTPException(status_code=404, detail=f"Boat {boat_id} not found")
    return boat


@router.get("/{boat_id}/history", response_model=List[PositionHistoryEntry])
def get_boat_history(
    boat_id: int,
    limit: int = Query(default=50, ge=1, le=100),
    tracker: BoatStateTracker = Depends(get_tracker),
):
    if tracker.get_boat_state(boat_id) is None:
        raise HTTPException(status_code=404, detail=f"Boat {boat_id} not found")
    return tracker.get_boat_history(boat_id, limit)


@router.post("/{boat_id}/status", response_model=StatusUpdateOut)
def update_boat_status(
    boat_id: int,
    body: StatusUpdate,
    tracker: BoatStateTracker = Depends(get_tracker),
):
    current = tracker.get_boat_state(boat_id)
    if current is None:
        raise HTTPException(status_code=404, detail=f"Boat {boat_id} not found")

    message = body.message or f"Status updated to {body.status.value}"
    try:
        boat = tracker.update_status(boat_id, body.status, message=message, severity=body.severity)
    except BoatNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return StatusUpdateOut(
        boat_id=boat_id,
        previous_status=current.status,
        new_status=boat.status,
        message=message,
        boat=boat,
    )
