"""Store snapshots and change notifications."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum

from velotrack.models.connection import ConnectionState
from velotrack.models.position import VehiclePosition


class StoreEventKind(StrEnum):
    TABLE_CHANGED = "table_changed"
    STATE_CHANGED = "state_changed"


@dataclass(frozen=True)
class FleetSnapshot:
    """Read-only view of the store handed to consumers."""

    vehicles: Mapping[str, VehiclePosition]
    state: ConnectionState
    connection_error: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED


@dataclass(frozen=True)
class StoreEvent:
    """A change published to store observers.

    ``vehicle_id`` is set for ``TABLE_CHANGED`` events and names the entry
    that was replaced.
    """

    kind: StoreEventKind
    snapshot: FleetSnapshot
    vehicle_id: str | None = None


StoreObserver = Callable[[StoreEvent], None]
