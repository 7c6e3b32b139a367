#!/usr/bin/env python3
"""Watch live vehicle positions from AWS IoT (or the built-in demo fleet).

Reads ``VELO_*`` environment variables (see ``FleetConfig.from_env``),
opens the position store, and prints every table/state change.

    VELO_DEMO_MODE=1 python scripts/watch_fleet.py --duration 10
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from velotrack import (  # noqa: E402
    FleetConfig,
    StoreEvent,
    StoreEventKind,
    TripTracker,
    VehiclePositionStore,
    VeloConfigError,
    nearest_vehicles,
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print live vehicle positions.")
    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Use the simulated Kathmandu fleet instead of AWS IoT.",
    )
    parser.add_argument(
        "--near",
        type=float,
        nargs=2,
        metavar=("LAT", "LON"),
        help="Print vehicles ordered by distance from this point on exit.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_event(event: StoreEvent, tracker: TripTracker) -> None:
    if event.kind is StoreEventKind.STATE_CHANGED:
        error = f" error={event.snapshot.connection_error}" if event.snapshot.connection_error else ""
        print(f"[watch] state={event.snapshot.state}{error}")
        return
    if event.vehicle_id is None:
        return
    position = event.snapshot.vehicles[event.vehicle_id]
    speed = "-" if position.speed is None else f"{position.speed:.0f}km/h"
    where = (
        f"lat={position.latitude:.4f} lng={position.longitude:.4f}"
        if position.has_coordinates
        else "lat=? lng=?"
    )
    print(
        f"[watch] {position.id:<12} {where} "
        f"speed={speed} trip={tracker.trip_distance_km(position.id):.2f}km at {position.timestamp}"
    )


async def _run(args: argparse.Namespace) -> int:
    overrides = {"demo_mode": True} if args.demo else {}
    try:
        config = FleetConfig.from_env(**overrides)
        store = VehiclePositionStore(config)
    except VeloConfigError as exc:
        print(f"[watch] Configuration error: {exc}", file=sys.stderr)
        return 2

    tracker = TripTracker()
    store.subscribe(tracker)
    store.subscribe(lambda event: _print_event(event, tracker))

    started = time.monotonic()
    async with store:
        while args.duration <= 0 or (time.monotonic() - started) < args.duration:
            await asyncio.sleep(0.5)

    if args.near:
        lat, lon = args.near
        print(f"[watch] Nearest to ({lat:.4f}, {lon:.4f})")
        for position, distance in nearest_vehicles(store.vehicles.values(), lat, lon):
            print(f"[watch]   {position.id:<12} {distance:.2f} km")
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(_main())
