"""Centralized settings for the PrideSync backend."""
from __future__ import annotations

import logging
from typing import Dict

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_prefix": "PRIDESYNC_"}

    # Redis: empty string means disabled (graceful fallback)
    redis_url: str = ""

    # Supabase: empty strings mean disabled (in-memory only)
    supabase_url: str = ""
    supabase_service_key: str = ""

    # TTL in seconds for the cached boat state snapshot
    ttl_boat_state: int = 300

    # Route mapping + corridor thresholds (metres)
    max_distance_from_route_m: float = 100.0
    corridor_tolerance_m: float = 50.0

    # Per-boat retention
    history_capacity: int = 100
    max_incidents: int = 200

    # JSON route file; empty means the built-in 2025 canal route
    route_file: str = ""

    # Resample waypoints to this spacing (metres); 0 keeps them as configured
    route_spacing_m: float = 0.0

    # Device id (boat number or IMEI, as string) -> boat id.
    # e.g. PRIDESYNC_DEVICE_MAP='{"353760970649317": 1}'
    device_map: Dict[str, int] = {}

    # Background persistence threads
    persistence_workers: int = 2

    log_level: str = "INFO"


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Root logging for the entry points (API process, CLI)."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s [pridesync] %(levelname)s %(message)s",
    )
