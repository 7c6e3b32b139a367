"""velotrack - Live vehicle positions from AWS IoT over presigned WebSockets."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("velotrack")
except PackageNotFoundError:
    __version__ = "0+local"
from velotrack._crypto.signing import SigningRequest, build_signed_url
from velotrack.config import FleetConfig
from velotrack.exceptions import (
    VeloConfigError,
    VeloError,
    VeloSigningError,
    VeloTransportError,
)
from velotrack.models import ConnectionState, Credential, VehiclePosition
from velotrack.state.events import FleetSnapshot, StoreEvent, StoreEventKind
from velotrack.state.store import VehiclePositionStore
from velotrack.stats import TripTracker, haversine_km, nearest_vehicles

__all__ = [
    "__version__",
    "ConnectionState",
    "Credential",
    "FleetConfig",
    "FleetSnapshot",
    "SigningRequest",
    "StoreEvent",
    "StoreEventKind",
    "TripTracker",
    "VehiclePosition",
    "VehiclePositionStore",
    "VeloConfigError",
    "VeloError",
    "VeloSigningError",
    "VeloTransportError",
    "build_signed_url",
    "haversine_km",
    "nearest_vehicles",
]
