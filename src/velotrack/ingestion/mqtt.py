"""MQTT ingestion helpers.

Translates ``(topic, payload)`` pairs into vehicle positions.  Nothing in
here raises: malformed messages are logged and reported as ``None``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from velotrack.models.position import VehiclePosition

_logger = logging.getLogger(__name__)

# Topic layout is <prefix>/<vehicleId>/...
_VEHICLE_ID_LEVEL = 1


def vehicle_id_from_topic(topic: str) -> str | None:
    """Return the vehicle id segment of *topic*, or ``None`` if absent."""
    parts = topic.split("/")
    if len(parts) <= _VEHICLE_ID_LEVEL:
        return None
    vehicle_id = parts[_VEHICLE_ID_LEVEL]
    return vehicle_id or None


def decode_payload(payload: bytes) -> dict[str, Any] | None:
    """Decode a UTF-8 JSON object payload."""
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        _logger.warning("Dropping MQTT message with unparsable payload (%d bytes): %s", len(payload), exc)
        return None
    if not isinstance(parsed, dict):
        _logger.warning("Dropping MQTT message whose payload is %s, not an object", type(parsed).__name__)
        return None
    return parsed


def parse_position(topic: str, payload: bytes) -> VehiclePosition | None:
    """Build a position record from one MQTT message.

    The vehicle id always comes from the topic; an ``id`` field inside the
    payload is overwritten.  Every other payload field is kept as received.

    Returns
    -------
    VehiclePosition or None
        ``None`` when the topic has no vehicle id or the payload is not a
        JSON object.
    """
    vehicle_id = vehicle_id_from_topic(topic)
    if vehicle_id is None:
        _logger.debug("Dropping MQTT message without vehicle id topic=%s", topic)
        return None

    data = decode_payload(payload)
    if data is None:
        return None

    position = VehiclePosition.from_payload(vehicle_id, data)
    if not position.has_coordinates:
        _logger.debug("Position for vehicle=%s has no usable coordinates", vehicle_id)
    return position
