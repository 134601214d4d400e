"""FastAPI backend for the PrideSync parade tracker."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pridesync.cache.redis_client import RedisStateCache, get_redis
from pridesync.config import configure_logging, settings
from pridesync.core.route import ParadeRoute, default_route
from pridesync.core.tracker import BoatStateTracker
from pridesync.db import SupabasePositionStore, get_supabase
from pridesync.devices import DeviceDirectory
from pridesync.routers import boats, parade, webhooks

log = logging.getLogger(__name__)


def create_app(
    tracker: Optional[BoatStateTracker] = None,
    route: Optional[ParadeRoute] = None,
    devices: Optional[DeviceDirectory] = None,
) -> FastAPI:
    """Build the app.  Collaborators default to the settings-driven ones."""
    executor: Optional[ThreadPoolExecutor] = None
    if tracker is None:
        executor = ThreadPoolExecutor(
            max_workers=settings.persistence_workers, thread_name_prefix="persist"
        )
        tracker = BoatStateTracker.from_settings(
            store=SupabasePositionStore(),
            cache=RedisStateCache(),
            executor=executor,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if executor is not None:
            # Let queued writes finish; they never block requests
            executor.shutdown(wait=True)

    app = FastAPI(title="PrideSync", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.tracker = tracker
    app.state.route = route or default_route()
    app.state.devices = devices or DeviceDirectory.from_settings()

    app.include_router(webhooks.router)
    app.include_router(parade.router)
    app.include_router(boats.router)

    @app.get("/health")
    def health():
        redis_ok = False
        try:
            r = get_redis()
            if r is not None:
                r.ping()
                redis_ok = True
        except Exception:
            log.debug("Redis ping failed", exc_info=True)

        return {
            "status": "ok",
            "version": app.version,
            "redis": redis_ok,
            "supabase": get_supabase() is not None,
            "boats": len(app.state.tracker.get_all_boat_states()),
        }

    return app


configure_logging()
app = create_app()
