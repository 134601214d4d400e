from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console
from rich.table import Table

from pridesync.config import configure_logging
from pridesync.core.engine import ingest_fix
from pridesync.core.models import BoatState
from pridesync.core.route import ParadeRoute, default_route, load_route, resample_route
from pridesync.core.tracker import BoatStateTracker
from pridesync.http_client import HTTPClient
from pridesync.simulator import ParadeSimulator

log = logging.getLogger(__name__)


def _read_fixes(path: Path) -> List[dict]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("fixes", [])
    return list(data)


def _build_route(route_file: Optional[str], spacing_m: float) -> ParadeRoute:
    route = load_route(route_file) if route_file else default_route()
    if spacing_m > 0:
        route = resample_route(route, spacing_m)
    return route


def _boat_table(title: str, boats: List[BoatState], rejected: Dict[int, int]) -> Table:
    table = Table(title=title)
    table.add_column("Boat")
    table.add_column("Status")
    table.add_column("Progress %")
    table.add_column("Distance m")
    table.add_column("Speed km/h")
    table.add_column("Heading")
    table.add_column("Corridor")
    table.add_column("Warnings")
    table.add_column("Incidents")
    table.add_column("Rejected")

    for b in sorted(boats, key=lambda s: s.id):
        p = b.position
        table.add_row(
            str(b.id),
            b.status.value,
            f"{p.progress_percent:.2f}",
            f"{p.distance_along_route_m or 0:.0f}",
            f"{p.speed_kmh:.2f}",
            f"{p.heading_deg:.0f}",
            "in" if b.corridor.in_corridor else "OUT",
            str(b.corridor.warning_count),
            str(len(b.incidents)),
            str(rejected.get(b.id, 0)),
        )
    return table


def run_replay(
    fixes: List[dict],
    route: ParadeRoute,
    tracker: Optional[BoatStateTracker] = None,
    only_boat: Optional[int] = None,
) -> tuple[BoatStateTracker, Dict[int, int]]:
    """Feed recorded fixes through mapper + tracker in file order."""
    tracker = tracker or BoatStateTracker()
    rejected: Dict[int, int] = {}
    for fix in fixes:
        boat_id = int(fix["boat_number"])
        if only_boat is not None and boat_id != only_boat:
            continue
        result = ingest_fix(
            route, tracker, boat_id, fix.get("latitude"), fix.get("longitude"), fix.get("timestamp")
        )
        if result is None:
            rejected[boat_id] = rejected.get(boat_id, 0) + 1
    return tracker, rejected


def _cmd_replay(args: argparse.Namespace, console: Console) -> int:
    route = _build_route(args.route, args.spacing)
    fixes = _read_fixes(Path(args.fixes))
    tracker, rejected = run_replay(fixes, route, only_boat=args.boat)

    boats = tracker.get_all_boat_states()
    console.print(_boat_table(f"PrideSync replay: {args.fixes}", boats, rejected))
    stats = tracker.get_parade_stats()
    console.print(
        f"{len(fixes)} fixes, {sum(rejected.values())} rejected; "
        f"{stats.finished_boats}/{stats.total_boats} boats finished, "
        f"average progress {stats.average_progress:.2f}%"
    )

    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(
            json.dumps([b.model_dump(mode="json") for b in boats], indent=2), encoding="utf-8"
        )
        console.print(f"Saved: {out.resolve()}")
    return 0


def _cmd_simulate(args: argparse.Namespace, console: Console) -> int:
    route = _build_route(args.route, args.spacing)
    sim = ParadeSimulator(route, boats=args.boats, seed=args.seed)
    client = HTTPClient()

    accepted: Dict[int, int] = {}
    rejected: Dict[int, int] = {}
    errors = 0
    for batch in sim.steps(args.steps, args.interval):
        for payload in batch:
            boat = payload["boat_number"]
            try:
                resp = client.post_json(args.url, payload)
            except Exception as exc:
                errors += 1
                log.warning("POST failed for boat %s: %s", boat, exc)
                continue
            if resp.status_code == 200:
                accepted[boat] = accepted.get(boat, 0) + 1
            elif resp.status_code == 422:
                rejected[boat] = rejected.get(boat, 0) + 1
            else:
                errors += 1
                log.warning("Boat %s: HTTP %s %s", boat, resp.status_code, resp.text[:200])
        if args.realtime:
            time.sleep(args.interval)

    table = Table(title=f"PrideSync simulation: {args.url}")
    table.add_column("Boat")
    table.add_column("Accepted")
    table.add_column("Rejected")
    for boat in range(1, args.boats + 1):
        table.add_row(str(boat), str(accepted.get(boat, 0)), str(rejected.get(boat, 0)))
    console.print(table)
    if errors:
        console.print(f"[red]{errors} request(s) failed[/red]")
    return 1 if errors else 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="pridesync")
    ap.add_argument("--log-level", default=None, help="e.g. DEBUG, INFO, WARNING")
    ap.add_argument("--route", default=None, help="Route JSON file (default: configured route)")
    ap.add_argument("--spacing", type=float, default=0.0, help="Resample route to this spacing (m)")
    sub = ap.add_subparsers(dest="command", required=True)

    rp = sub.add_parser("replay", help="Replay recorded GPS fixes in-process")
    rp.add_argument("fixes", help="JSON list of {boat_number, latitude, longitude, timestamp}")
    rp.add_argument("--boat", type=int, default=None, help="Only replay this boat")
    rp.add_argument("--out", default=None, help="Write final boat states to this JSON file")

    sp = sub.add_parser("simulate", help="POST simulated fixes to a running server")
    sp.add_argument("--url", default="http://localhost:8000/webhooks/gps")
    sp.add_argument("--boats", type=int, default=5)
    sp.add_argument("--steps", type=int, default=20)
    sp.add_argument("--interval", type=float, default=30.0, help="Seconds between fixes")
    sp.add_argument("--seed", type=int, default=None)
    sp.add_argument("--realtime", action="store_true", help="Sleep between steps")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    console = Console()

    if args.command == "replay":
        return _cmd_replay(args, console)
    return _cmd_simulate(args, console)


if __name__ == "__main__":
    raise SystemExit(main())
