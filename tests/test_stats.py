from __future__ import annotations

from types import MappingProxyType

import pytest

from velotrack.models.connection import ConnectionState
from velotrack.models.position import VehiclePosition
from velotrack.state.events import FleetSnapshot, StoreEvent, StoreEventKind
from velotrack.stats import TripTracker, haversine_km, nearest_vehicles


def _pos(vehicle_id: str, lat: float, lng: float, speed: float | None = None) -> VehiclePosition:
    return VehiclePosition(id=vehicle_id, latitude=lat, longitude=lng, timestamp="t", speed=speed)


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_haversine_one_degree_of_longitude_at_equator() -> None:
    assert haversine_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(111.195, abs=0.01)


def test_haversine_zero_for_same_point() -> None:
    assert haversine_km(27.7, 85.3, 27.7, 85.3) == 0.0


def test_nearest_vehicles_sorted_by_distance() -> None:
    vehicles = [_pos("far", 28.0, 85.3), _pos("near", 27.701, 85.3), _pos("mid", 27.75, 85.3)]
    ranked = nearest_vehicles(vehicles, 27.7, 85.3)
    assert [v.id for v, _ in ranked] == ["near", "mid", "far"]
    assert ranked[0][1] < ranked[1][1] < ranked[2][1]
    assert [v.id for v, _ in nearest_vehicles(vehicles, 27.7, 85.3, limit=1)] == ["near"]


def test_nearest_vehicles_skips_positions_without_coordinates() -> None:
    unplaced = VehiclePosition.from_payload("ghost", {"status": "offline"})
    ranked = nearest_vehicles([unplaced, _pos("V1", 27.7, 85.3)], 27.7, 85.3)
    assert [v.id for v, _ in ranked] == ["V1"]


def test_trip_tracker_skips_legs_without_coordinates() -> None:
    clock = _Clock()
    tracker = TripTracker(clock=clock)
    tracker.record(_pos("V1", 0.0, 0.0))
    tracker.record(VehiclePosition.from_payload("V1", {"latitude": 0.0, "speed": "n/a"}))
    tracker.record(_pos("V1", 0.0, 1.0))
    assert tracker.trip_distance_km("V1") == 0.0
    assert tracker.idle_seconds("V1") == 0.0


def test_trip_tracker_accumulates_distance_and_idle_time() -> None:
    clock = _Clock()
    tracker = TripTracker(clock=clock)

    tracker.record(_pos("V1", 0.0, 0.0, speed=0.0))
    clock.now = 10.0
    tracker.record(_pos("V1", 0.0, 0.0, speed=30.0))
    clock.now = 25.0
    tracker.record(_pos("V1", 0.0, 1.0, speed=30.0))
    clock.now = 40.0
    tracker.record(_pos("V1", 0.0, 1.0))

    assert tracker.trip_distance_km("V1") == pytest.approx(111.195, abs=0.01)
    assert tracker.idle_seconds("V1") == pytest.approx(10.0)
    assert tracker.trip_distance_km("unknown") == 0.0

    tracker.reset("V1")
    assert tracker.trip_distance_km("V1") == 0.0


def test_trip_tracker_consumes_store_events() -> None:
    tracker = TripTracker(clock=_Clock())
    for lng in (0.0, 1.0):
        snapshot = FleetSnapshot(
            vehicles=MappingProxyType({"V1": _pos("V1", 0.0, lng)}),
            state=ConnectionState.CONNECTED,
        )
        tracker(StoreEvent(kind=StoreEventKind.TABLE_CHANGED, snapshot=snapshot, vehicle_id="V1"))
        tracker(StoreEvent(kind=StoreEventKind.STATE_CHANGED, snapshot=snapshot))

    assert tracker.trip_distance_km("V1") == pytest.approx(111.195, abs=0.01)
