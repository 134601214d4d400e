"""Per-boat state tracking: position, speed, status, corridor and incidents.

One :class:`BoatStateTracker` owns every boat's state.  Each boat has its own
lock, so updates for different boats never wait on each other while updates
for the same boat are serialized.  Persistence and caching run after the
in-memory update and can never fail it.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Union

from pridesync.cache import keys
from pridesync.contracts.route_contract import MappedPosition
from pridesync.core.errors import BoatNotFoundError
from pridesync.core.models import (
    BoatPosition,
    BoatState,
    BoatStatus,
    CorridorStatus,
    Incident,
    IncidentCheckResult,
    IncidentType,
    ParadeStats,
    PositionHistoryEntry,
    Severity,
    escalate,
    next_status_for_progress,
    utcnow,
)
from pridesync.core.route import parse_timestamp

log = logging.getLogger(__name__)

STOPPED_BELOW_KMH = 0.5
REVERSE_BELOW_KMH = -1.0
SPEEDING_ABOVE_KMH = 10.0


class _BoatSlot:
    __slots__ = ("lock", "state", "history")

    def __init__(self, state: BoatState, history_capacity: int):
        self.lock = threading.Lock()
        self.state = state
        self.history: Deque[PositionHistoryEntry] = deque(maxlen=history_capacity)


class BoatStateTracker:
    def __init__(
        self,
        store=None,
        cache=None,
        executor: Optional[Executor] = None,
        clock: Callable[[], datetime] = utcnow,
        corridor_tolerance_m: float = 50.0,
        history_capacity: int = 100,
        max_incidents: int = 200,
        cache_ttl_s: int = 300,
    ):
        self._store = store
        self._cache = cache
        self._executor = executor
        self._clock = clock
        self.corridor_tolerance_m = corridor_tolerance_m
        self.history_capacity = history_capacity
        self.max_incidents = max_incidents
        self.cache_ttl_s = cache_ttl_s

        self._boats: Dict[int, _BoatSlot] = {}
        self._registry_lock = threading.Lock()

    @classmethod
    def from_settings(cls, store=None, cache=None, executor: Optional[Executor] = None):
        from pridesync.config import settings

        return cls(
            store=store,
            cache=cache,
            executor=executor,
            corridor_tolerance_m=settings.corridor_tolerance_m,
            history_capacity=settings.history_capacity,
            max_incidents=settings.max_incidents,
            cache_ttl_s=settings.ttl_boat_state,
        )

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def _get_slot(self, boat_id: int) -> Optional[_BoatSlot]:
        with self._registry_lock:
            return self._boats.get(boat_id)

    def _get_or_create_slot(self, boat_id: int) -> _BoatSlot:
        with self._registry_lock:
            slot = self._boats.get(boat_id)
            if slot is None:
                slot = _BoatSlot(BoatState.new(boat_id, self._clock()), self.history_capacity)
                self._boats[boat_id] = slot
                log.info("Created new boat state for boat %s", boat_id)
            return slot

    def _require_slot(self, boat_id: int) -> _BoatSlot:
        slot = self._get_slot(boat_id)
        if slot is None:
            raise BoatNotFoundError(boat_id)
        return slot

    # ------------------------------------------------------------------
    # Side effects (best-effort)
    # ------------------------------------------------------------------

    def _dispatch(self, fn: Callable[..., None], *args: Any) -> None:
        if self._executor is None:
            self._run_side_effect(fn, *args)
            return
        try:
            self._executor.submit(self._run_side_effect, fn, *args)
        except RuntimeError as exc:
            # executor already shut down
            log.warning("Persistence skipped (%s)", exc)

    @staticmethod
    def _run_side_effect(fn: Callable[..., None], *args: Any) -> None:
        try:
            fn(*args)
        except Exception:
            log.exception("Unexpected error in persistence side effect")

    def _refresh_cache(self, snapshot: BoatState) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(
                keys.boat_state(snapshot.id), snapshot.model_dump(mode="json"), self.cache_ttl_s
            )
        except Exception as exc:
            log.error("Error updating cache for boat %s: %s", snapshot.id, exc)

    def _persist_position(self, boat_id: int, record: Dict[str, Any], snapshot: BoatState) -> None:
        if self._store is not None:
            try:
                self._store.save_position(boat_id, record)
            except Exception as exc:
                log.error("Error saving boat position to database for boat %s: %s", boat_id, exc)
        self._refresh_cache(snapshot)

    def _persist_incidents(
        self, boat_id: int, incidents: List[Incident], snapshot: BoatState
    ) -> None:
        if self._store is not None:
            for incident in incidents:
                try:
                    self._store.save_incident(boat_id, incident.model_dump(mode="json"))
                except Exception as exc:
                    log.error("Error saving incident to database for boat %s: %s", boat_id, exc)
        self._refresh_cache(snapshot)

    def _append_incidents(self, state: BoatState, incidents: List[Incident]) -> None:
        state.incidents.extend(incidents)
        overflow = len(state.incidents) - self.max_incidents
        if overflow > 0:
            del state.incidents[:overflow]

    # ------------------------------------------------------------------
    # Position updates
    # ------------------------------------------------------------------

    def update_position(self, boat_id: int, mapped: MappedPosition) -> BoatState:
        """Merge a mapped fix into the boat's state and return a snapshot."""
        slot = self._get_or_create_slot(boat_id)
        with slot.lock:
            now = self._clock()
            state = slot.state
            prev = state.position

            speed = prev.speed_kmh
            if prev.timestamp is not None and prev.distance_along_route_m is not None:
                dt = (mapped.source_timestamp - prev.timestamp).total_seconds()
                # Duplicate or out-of-order fix: keep the previous speed
                if dt > 0:
                    dd = mapped.distance_along_route_m - prev.distance_along_route_m
                    speed = round(dd / dt * 3.6, 2)

            state.position = BoatPosition(
                latitude=mapped.latitude,
                longitude=mapped.longitude,
                distance_along_route_m=mapped.distance_along_route_m,
                progress_percent=mapped.progress_percent,
                speed_kmh=speed,
                heading_deg=mapped.heading_deg,
                distance_off_route_m=mapped.distance_off_route_m,
                timestamp=mapped.source_timestamp,
                last_update=now,
            )

            status = next_status_for_progress(state.status, mapped.progress_percent)
            if status != state.status:
                log.info("Boat %s status %s -> %s", boat_id, state.status.value, status.value)
                state.status = status
            state.last_update = now

            entry = PositionHistoryEntry(
                latitude=mapped.latitude,
                longitude=mapped.longitude,
                distance_along_route_m=mapped.distance_along_route_m,
                progress_percent=mapped.progress_percent,
                speed_kmh=speed,
                heading_deg=mapped.heading_deg,
                distance_off_route_m=mapped.distance_off_route_m,
                timestamp=mapped.source_timestamp,
                recorded_at=now,
            )
            slot.history.append(entry)
            snapshot = state.model_copy(deep=True)

        log.debug(
            "Updated position for boat %s: progress=%.2f%% speed=%.2fkm/h",
            boat_id, snapshot.position.progress_percent, snapshot.position.speed_kmh,
        )
        self._dispatch(self._persist_position, boat_id, entry.model_dump(mode="json"), snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Corridor + incidents
    # ------------------------------------------------------------------

    def check_corridor(self, boat_id: int) -> Optional[CorridorStatus]:
        """Evaluate corridor compliance.  ``None`` for an unknown boat."""
        slot = self._get_slot(boat_id)
        if slot is None:
            return None

        with slot.lock:
            state = slot.state
            distance = state.position.distance_off_route_m
            in_corridor = distance <= self.corridor_tolerance_m
            entered = not in_corridor and state.corridor.in_corridor
            if entered:
                state.corridor.last_warning = self._clock()
                state.corridor.warning_count += 1
            state.corridor.in_corridor = in_corridor
            result = CorridorStatus(
                in_corridor=in_corridor,
                out_of_corridor=not in_corridor,
                distance_off_route_m=distance,
                warning_count=state.corridor.warning_count,
                last_warning=state.corridor.last_warning,
                entered_violation=entered,
            )

        if entered:
            log.warning(
                "Boat %s left designated corridor: %.0fm off route (warning #%d)",
                boat_id, distance, result.warning_count,
            )
        return result

    def check_for_incidents(self, boat_id: int) -> Optional[IncidentCheckResult]:
        """Detect incident candidates from the current speed.  Records nothing."""
        slot = self._get_slot(boat_id)
        if slot is None:
            return None

        with slot.lock:
            speed = slot.state.position.speed_kmh
            status = slot.state.status

        now = self._clock()
        meta = {"speed_kmh": speed}
        found: List[Incident] = []
        if speed < STOPPED_BELOW_KMH and status == BoatStatus.ACTIVE:
            found.append(Incident(
                type=IncidentType.STOPPED, severity=Severity.WARNING,
                message="Boat appears to be stopped", timestamp=now, metadata=meta,
            ))
        if speed < REVERSE_BELOW_KMH:
            found.append(Incident(
                type=IncidentType.REVERSE, severity=Severity.WARNING,
                message="Boat is moving backwards", timestamp=now, metadata=meta,
            ))
        if speed > SPEEDING_ABOVE_KMH:
            found.append(Incident(
                type=IncidentType.SPEEDING, severity=Severity.WARNING,
                message="Boat speed exceeds safe limits", timestamp=now, metadata=meta,
            ))
        return IncidentCheckResult(has_incident=bool(found), incidents=found, count=len(found))

    def trigger_incident(self, boat_id: int, incidents: Iterable[Incident]) -> BoatState:
        """Record incidents; any critical one escalates the boat to emergency."""
        incidents = list(incidents)
        slot = self._require_slot(boat_id)
        with slot.lock:
            state = slot.state
            self._append_incidents(state, incidents)
            status = escalate(state.status, incidents)
            if status != state.status:
                log.info("Boat %s escalated %s -> %s", boat_id, state.status.value, status.value)
                state.status = status
            state.last_update = self._clock()
            snapshot = state.model_copy(deep=True)

        log.warning(
            "Incident triggered for boat %s: %s",
            boat_id, ", ".join(i.type.value for i in incidents),
        )
        self._dispatch(self._persist_incidents, boat_id, incidents, snapshot)
        return snapshot

    def update_status(
        self,
        boat_id: int,
        status: Union[BoatStatus, str],
        message: Optional[str] = None,
        severity: Union[Severity, str] = Severity.INFO,
        timestamp: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> BoatState:
        """Operator status change.  The only way out of emergency or finished."""
        status = BoatStatus(status)
        severity = Severity(severity)
        slot = self._require_slot(boat_id)

        recorded: List[Incident] = []
        with slot.lock:
            state = slot.state
            previous = state.status
            state.status = status
            now = self._clock()
            state.last_update = now
            if message:
                kind = (
                    IncidentType.MANUAL_EMERGENCY
                    if status == BoatStatus.EMERGENCY
                    else IncidentType.STATUS_CHANGE
                )
                recorded.append(Incident(
                    type=kind,
                    severity=severity,
                    message=message,
                    timestamp=parse_timestamp(timestamp) or now,
                    metadata={"previous_status": previous.value, **(metadata or {})},
                ))
                self._append_incidents(state, recorded)
            snapshot = state.model_copy(deep=True)

        log.info("Updated status for boat %s: %s -> %s", boat_id, previous.value, status.value)
        self._dispatch(self._persist_incidents, boat_id, recorded, snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_boat_state(self, boat_id: int) -> Optional[BoatState]:
        slot = self._get_slot(boat_id)
        if slot is None:
            return None
        with slot.lock:
            return slot.state.model_copy(deep=True)

    def get_all_boat_states(self) -> List[BoatState]:
        with self._registry_lock:
            slots = list(self._boats.values())
        out = []
        for slot in slots:
            with slot.lock:
                out.append(slot.state.model_copy(deep=True))
        return out

    def get_boat_history(self, boat_id: int, limit: int = 50) -> List[PositionHistoryEntry]:
        """Newest *limit* entries, oldest first.  Empty for an unknown boat."""
        slot = self._get_slot(boat_id)
        if slot is None or limit <= 0:
            return []
        with slot.lock:
            return list(slot.history)[-limit:]

    def get_parade_stats(self) -> ParadeStats:
        boats = self.get_all_boat_states()

        def count(status: BoatStatus) -> int:
            return sum(1 for b in boats if b.status == status)

        avg = sum(b.position.progress_percent for b in boats) / len(boats) if boats else 0.0
        return ParadeStats(
            total_boats=len(boats),
            waiting_boats=count(BoatStatus.WAITING),
            active_boats=count(BoatStatus.ACTIVE),
            finished_boats=count(BoatStatus.FINISHED),
            emergency_boats=count(BoatStatus.EMERGENCY),
            average_progress=round(avg, 2),
            last_update=self._clock(),
        )

    def clear_all(self) -> None:
        """Forget every boat and drop their cached snapshots."""
        with self._registry_lock:
            boat_ids = list(self._boats)
            self._boats.clear()
        if self._cache is not None:
            for boat_id in boat_ids:
                self._dispatch(self._evict_cache, boat_id)
        log.debug("Cleared all boat states (%d boats)", len(boat_ids))

    def _evict_cache(self, boat_id: int) -> None:
        try:
            self._cache.delete(keys.boat_state(boat_id))
        except Exception as exc:
            log.error("Error evicting cache for boat %s: %s", boat_id, exc)
