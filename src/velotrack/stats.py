"""Derived fleet statistics: distances, proximity, trip distance, idle time."""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from velotrack.models.position import VehiclePosition
from velotrack.state.events import StoreEvent, StoreEventKind

EARTH_RADIUS_KM = 6371.0088
DEFAULT_IDLE_SPEED_KMH = 1.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def nearest_vehicles(
    vehicles: Iterable[VehiclePosition],
    latitude: float,
    longitude: float,
    limit: int | None = None,
) -> list[tuple[VehiclePosition, float]]:
    """Vehicles sorted by distance from the viewer at (*latitude*, *longitude*).

    Vehicles whose last record has no usable coordinates are left out.
    """
    ranked = sorted(
        (
            (v, haversine_km(latitude, longitude, v.latitude, v.longitude))
            for v in vehicles
            if v.latitude is not None and v.longitude is not None
        ),
        key=lambda item: item[1],
    )
    return ranked if limit is None else ranked[:limit]


@dataclass
class _TripState:
    last: VehiclePosition
    last_seen: float
    distance_km: float = 0.0
    idle_seconds: float = 0.0


class TripTracker:
    """Store observer accumulating per-vehicle trip distance and idle time.

    Idle time is the time between consecutive updates during which the
    earlier update reported a speed below ``idle_speed_threshold``.
    Updates without a speed never count as idle, and a leg where either
    end lacks coordinates adds no distance.

    Register with ``store.subscribe(tracker)``.
    """

    def __init__(
        self,
        *,
        idle_speed_threshold: float = DEFAULT_IDLE_SPEED_KMH,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._idle_speed_threshold = idle_speed_threshold
        self._clock = clock
        self._trips: dict[str, _TripState] = {}

    def __call__(self, event: StoreEvent) -> None:
        if event.kind is not StoreEventKind.TABLE_CHANGED or event.vehicle_id is None:
            return
        position = event.snapshot.vehicles.get(event.vehicle_id)
        if position is not None:
            self.record(position)

    def record(self, position: VehiclePosition) -> None:
        now = self._clock()
        trip = self._trips.get(position.id)
        if trip is None:
            self._trips[position.id] = _TripState(last=position, last_seen=now)
            return
        previous = trip.last
        if previous.has_coordinates and position.has_coordinates:
            trip.distance_km += haversine_km(
                previous.latitude, previous.longitude, position.latitude, position.longitude
            )
        if previous.speed is not None and previous.speed < self._idle_speed_threshold:
            trip.idle_seconds += max(0.0, now - trip.last_seen)
        trip.last = position
        trip.last_seen = now

    def trip_distance_km(self, vehicle_id: str) -> float:
        trip = self._trips.get(vehicle_id)
        return trip.distance_km if trip is not None else 0.0

    def idle_seconds(self, vehicle_id: str) -> float:
        trip = self._trips.get(vehicle_id)
        return trip.idle_seconds if trip is not None else 0.0

    def reset(self, vehicle_id: str | None = None) -> None:
        """Forget accumulated stats for one vehicle, or all of them."""
        if vehicle_id is None:
            self._trips.clear()
        else:
            self._trips.pop(vehicle_id, None)
