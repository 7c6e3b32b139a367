"""Vehicle position model."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from velotrack.ingestion.normalize import safe_float


class VehiclePosition(BaseModel):
    """Latest known position of one vehicle.

    Each inbound message produces a whole new record; nothing is merged
    from the previous one, so a payload without ``speed`` leaves
    ``speed`` as ``None``.

    The producer's JSON object is kept verbatim in ``raw`` (with ``id``
    taken from the topic) and is what ``as_dict()`` returns.  The typed
    attributes are lenient views over it: a coordinate or speed that is
    missing or not numeric reads as ``None`` instead of rejecting the
    message.

    Parameters
    ----------
    id : str
        Vehicle identifier, always taken from the MQTT topic.
    latitude : float or None
        Latitude in degrees.
    longitude : float or None
        Longitude in degrees.
    timestamp : Any
        Producer-supplied timestamp, unchanged (ISO-8601 string, epoch
        number, ...).
    speed : float or None
        Speed in km/h, if reported.
    raw : dict
        The flat record as received.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    latitude: float | None = None
    longitude: float | None = None
    timestamp: Any = None
    speed: float | None = None
    raw: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        if not isinstance(values, dict) or "raw" in values:
            return values
        return {**values, "raw": dict(values)}

    @field_validator("latitude", "longitude", "speed", mode="before")
    @classmethod
    def _lenient_float(cls, value: Any) -> float | None:
        return safe_float(value)

    @classmethod
    def from_payload(cls, vehicle_id: str, data: Mapping[str, Any]) -> VehiclePosition:
        """Build a position from a decoded payload; the topic id wins over any ``id`` field."""
        record = dict(data)
        record["id"] = vehicle_id
        return cls.model_validate({**record, "raw": record})

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def extras(self) -> dict[str, Any]:
        """Pass-through fields not declared on the model."""
        declared = set(type(self).model_fields) - {"raw"}
        return {key: value for key, value in self.raw.items() if key not in declared}

    def as_dict(self) -> dict[str, Any]:
        """Flat record including pass-through fields, as received."""
        return dict(self.raw)
