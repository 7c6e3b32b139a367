"""Pydantic models and enums for velotrack."""

from velotrack.models.connection import ConnectionState
from velotrack.models.credential import Credential
from velotrack.models.position import VehiclePosition

__all__ = [
    "ConnectionState",
    "Credential",
    "VehiclePosition",
]
