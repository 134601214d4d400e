"""GPS webhook ingestion."""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator

from pridesync.core.engine import ingest_fix
from pridesync.core.route import ParadeRoute
from pridesync.core.tracker import BoatStateTracker
from pridesync.deps import get_devices, get_route, get_tracker
from pridesync.devices import DeviceDirectory

log = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class GPSPayload(BaseModel):
    boat_number: Optional[int] = Field(default=None, ge=1, le=999)
    imei: Optional[str] = Field(default=None, pattern=r"^\d{15}$")
    timestamp: datetime
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    altitude: Optional[float] = None
    accuracy: Optional[float] = Field(default=None, ge=0)
    speed: Optional[float] = Field(default=None, ge=0)
    heading: Optional[float] = Field(default=None, ge=0, le=360)

    @model_validator(mode="after")
    def _needs_identity(self) -> "GPSPayload":
        if self.boat_number is None and self.imei is None:
            raise ValueError("boat_number or imei is required")
        return self


class ProcessedOut(BaseModel):
    timestamp: datetime
    route_progress: float
    route_distance_m: float
    distance_off_route_m: float
    speed_kmh: float
    status: str
    in_corridor: bool
    incidents: int
    processing_time_ms: float


class WebhookResponse(BaseModel):
    success: bool = True
    boat_number: int
    imei: Optional[str] = None
    processed: ProcessedOut


@router.post("/gps", response_model=WebhookResponse)
def gps_webhook(
    body: GPSPayload,
    route: ParadeRoute = Depends(get_route),
    tracker: BoatStateTracker = Depends(get_tracker),
    devices: DeviceDirectory = Depends(get_devices),
):
    started = time.perf_counter()

    boat_id = devices.resolve(boat_number=body.boat_number, imei=body.imei)
    if boat_id is None:
        log.warning(
            "GPS data received for unknown device: boat_number=%s imei=%s",
            body.boat_number, body.imei,
        )
        raise HTTPException(status_code=404, detail="No boat registered with this number or IMEI")

    log.info(
        "GPS update received for boat %s: (%.5f, %.5f) at %s",
        boat_id, body.latitude, body.longitude, body.timestamp.isoformat(),
    )

    try:
        result = ingest_fix(route, tracker, boat_id, body.latitude, body.longitude, body.timestamp)
    except Exception as e:
        log.exception("Error processing GPS webhook for boat %s", boat_id)
        raise HTTPException(status_code=500, detail=f"Internal error processing GPS update: {e}")

    if result is None:
        raise HTTPException(
            status_code=422,
            detail={
                "error": "GPS position could not be mapped to parade route",
                "boat_number": boat_id,
                "coordinates": [body.latitude, body.longitude],
            },
        )

    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    log.info(
        "GPS update processed for boat %s: %.2f%% in %.1fms",
        boat_id, result.mapped.progress_percent, elapsed_ms,
    )
    return WebhookResponse(
        boat_number=boat_id,
        imei=body.imei,
        processed=ProcessedOut(
            timestamp=result.mapped.source_timestamp,
            route_progress=result.mapped.progress_percent,
            route_distance_m=result.mapped.distance_along_route_m,
            distance_off_route_m=result.mapped.distance_off_route_m,
            speed_kmh=result.state.position.speed_kmh,
            status=result.state.status.value,
            in_corridor=result.corridor.in_corridor,
            incidents=result.incidents.count,
            processing_time_ms=elapsed_ms,
        ),
    )
