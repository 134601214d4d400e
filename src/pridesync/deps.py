"""FastAPI dependencies: the per-app route, tracker and device directory."""
from __future__ import annotations

from fastapi import Request

from pridesync.core.route import ParadeRoute
from pridesync.core.tracker import BoatStateTracker
from pridesync.devices import DeviceDirectory


def get_tracker(request: Request) -> BoatStateTracker:
    return request.app.state.tracker


def get_route(request: Request) -> ParadeRoute:
    return request.app.state.route


def get_devices(request: Request) -> DeviceDirectory:
    return request.app.state.devices
