"""Simulated fleet for running the store without AWS credentials.

Three vehicles drive back and forth along real Kathmandu roads.  The
demo transport satisfies the same :class:`~velotrack._transport.Transport`
protocol as the paho transport and publishes JSON positions on
``vehicles/<id>/position``.
"""

from __future__ import annotations

import json
import logging
import random
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import paho.mqtt.client as mqtt

from velotrack._constants import DEFAULT_DEMO_INTERVAL
from velotrack._transport import TransportCallbacks

_logger = logging.getLogger(__name__)

Coord = tuple[float, float]

# Durbar Marg -> Tripureshwor
ROUTE_CITY: tuple[Coord, ...] = (
    (27.7120, 85.3220),
    (27.7105, 85.3218),
    (27.7080, 85.3215),
    (27.7050, 85.3210),
    (27.7020, 85.3200),
    (27.6980, 85.3180),
)

# Ring Road, Koteshwor -> Satdobato
ROUTE_RINGROAD: tuple[Coord, ...] = (
    (27.6750, 85.3450),
    (27.6720, 85.3400),
    (27.6690, 85.3350),
    (27.6670, 85.3300),
    (27.6650, 85.3250),
)

# Thamel loop
ROUTE_THAMEL: tuple[Coord, ...] = (
    (27.7150, 85.3100),
    (27.7160, 85.3120),
    (27.7170, 85.3140),
    (27.7180, 85.3150),
    (27.7190, 85.3130),
)

ROUTE_STEPS = 20
DEMO_TOPIC_TEMPLATE = "vehicles/{vehicle_id}/position"


def interpolate_route(route: tuple[Coord, ...], steps: int) -> list[Coord]:
    """Insert *steps* evenly spaced points between consecutive waypoints."""
    if steps < 1:
        raise ValueError("steps must be >= 1")
    smooth: list[Coord] = []
    for (start_lat, start_lng), (end_lat, end_lng) in zip(route, route[1:]):
        for j in range(steps):
            fraction = j / steps
            smooth.append(
                (
                    start_lat + (end_lat - start_lat) * fraction,
                    start_lng + (end_lng - start_lng) * fraction,
                )
            )
    smooth.append(route[-1])
    return smooth


@dataclass
class SimulatedVehicle:
    """A vehicle that ping-pongs along a fixed path."""

    vehicle_id: str
    path: list[Coord]
    index: int = 0
    direction: int = 1

    def advance(self) -> Coord:
        self.index += self.direction
        if self.index >= len(self.path) - 1 or self.index <= 0:
            self.direction *= -1
        return self.path[self.index]


def default_fleet() -> list[SimulatedVehicle]:
    return [
        SimulatedVehicle("Demo-Tesla", interpolate_route(ROUTE_CITY, ROUTE_STEPS)),
        SimulatedVehicle("Demo-Truck", interpolate_route(ROUTE_RINGROAD, ROUTE_STEPS)),
        SimulatedVehicle("Demo-Bus", interpolate_route(ROUTE_THAMEL, ROUTE_STEPS)),
    ]


class DemoFleet:
    """Produces the next batch of simulated position payloads."""

    def __init__(
        self,
        vehicles: list[SimulatedVehicle] | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._vehicles = vehicles if vehicles is not None else default_fleet()
        self._rng = rng or random.Random()

    @property
    def vehicle_ids(self) -> list[str]:
        return [v.vehicle_id for v in self._vehicles]

    def next_positions(self) -> list[dict[str, Any]]:
        batch: list[dict[str, Any]] = []
        now = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        for vehicle in self._vehicles:
            lat, lng = vehicle.advance()
            batch.append(
                {
                    "id": vehicle.vehicle_id,
                    "latitude": lat,
                    "longitude": lng,
                    "speed": self._rng.randint(10, 49),
                    "timestamp": now,
                }
            )
        return batch


class DemoTransport:
    """In-process transport that publishes simulated positions on a timer thread."""

    def __init__(
        self,
        callbacks: TransportCallbacks,
        *,
        interval: float = DEFAULT_DEMO_INTERVAL,
        fleet: DemoFleet | None = None,
    ) -> None:
        self._callbacks = callbacks
        self._interval = interval
        self._fleet = fleet or DemoFleet()
        self._subscriptions: list[str] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._closed = False

    def open(self) -> None:
        with self._lock:
            if self._closed:
                _logger.debug("Demo fleet already closed; not starting")
                return
            _logger.debug("Starting demo fleet interval=%.2fs", self._interval)
            self._thread = threading.Thread(target=self._run, name="velotrack-demo", daemon=True)
            self._thread.start()
        self._callbacks.on_connect()

    def subscribe(self, topic: str) -> None:
        with self._lock:
            self._subscriptions.append(topic)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._stop.set()
            thread = self._thread
            self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        _logger.debug("Demo fleet stopped")

    def publish_once(self) -> int:
        """Publish one batch to matching subscriptions; returns messages sent."""
        with self._lock:
            subscriptions = list(self._subscriptions)
        sent = 0
        for record in self._fleet.next_positions():
            topic = DEMO_TOPIC_TEMPLATE.format(vehicle_id=record["id"])
            if not any(mqtt.topic_matches_sub(sub, topic) for sub in subscriptions):
                continue
            self._callbacks.on_message(topic, json.dumps(record).encode("utf-8"))
            sent += 1
        return sent

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self.publish_once()
