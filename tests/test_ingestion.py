from __future__ import annotations

import json
import logging

import pytest

from velotrack.ingestion.mqtt import decode_payload, parse_position, vehicle_id_from_topic


def _payload(**fields: object) -> bytes:
    base: dict[str, object] = {"latitude": 27.71, "longitude": 85.32, "timestamp": "2024-01-02T03:04:05Z"}
    base.update(fields)
    return json.dumps(base).encode("utf-8")


class TestVehicleIdFromTopic:
    @pytest.mark.parametrize(
        ("topic", "expected"),
        [
            ("fleet/V1/pos", "V1"),
            ("fleet/V1", "V1"),
            ("vehicles/Demo-Bus/position/extra", "Demo-Bus"),
            ("fleet//pos", None),
            ("badtopic", None),
            ("", None),
            ("fleet/", None),
        ],
    )
    def test_second_segment(self, topic: str, expected: str | None) -> None:
        assert vehicle_id_from_topic(topic) == expected


class TestParsePosition:
    def test_valid_message(self) -> None:
        position = parse_position("fleet/V1/pos", _payload(speed=42.5))
        assert position is not None
        assert position.id == "V1"
        assert position.latitude == pytest.approx(27.71)
        assert position.longitude == pytest.approx(85.32)
        assert position.timestamp == "2024-01-02T03:04:05Z"
        assert position.speed == pytest.approx(42.5)

    def test_topic_id_wins_over_payload_id(self) -> None:
        position = parse_position("fleet/V1/pos", _payload(id="SPOOFED"))
        assert position is not None
        assert position.id == "V1"

    def test_missing_speed_is_none(self) -> None:
        position = parse_position("fleet/V1/pos", _payload())
        assert position is not None
        assert position.speed is None

    def test_extra_fields_pass_through(self) -> None:
        position = parse_position("fleet/V1/pos", _payload(heading=270, driver={"name": "Asha"}))
        assert position is not None
        assert position.extras == {"heading": 270, "driver": {"name": "Asha"}}
        assert position.as_dict()["heading"] == 270

    def test_numeric_timestamp_keeps_its_type(self) -> None:
        position = parse_position("fleet/V1/pos", _payload(timestamp=1704164645123))
        assert position is not None
        assert position.timestamp == 1704164645123
        assert position.as_dict()["timestamp"] == 1704164645123

    @pytest.mark.parametrize("topic", ["fleet//pos", "badtopic"])
    def test_bad_topic_dropped(self, topic: str) -> None:
        assert parse_position(topic, _payload()) is None

    @pytest.mark.parametrize(
        "payload",
        [
            b"{not json",
            b"\xff\xfe\x00",
            b"[1, 2, 3]",
            b'"just a string"',
            b"",
        ],
    )
    def test_unparsable_payload_dropped(self, payload: bytes) -> None:
        assert parse_position("fleet/V1/pos", payload) is None

    def test_missing_coordinates_and_timestamp_still_stored(self) -> None:
        position = parse_position("fleet/V1/pos", json.dumps({"status": "parked"}).encode())
        assert position is not None
        assert position.id == "V1"
        assert position.latitude is None
        assert position.longitude is None
        assert position.timestamp is None
        assert not position.has_coordinates
        assert position.as_dict() == {"status": "parked", "id": "V1"}

    def test_coordinates_without_timestamp_stored(self) -> None:
        position = parse_position("fleet/V1/pos", json.dumps({"latitude": 1, "longitude": 2}).encode())
        assert position is not None
        assert (position.latitude, position.longitude) == (1.0, 2.0)
        assert position.timestamp is None

    def test_non_numeric_speed_kept_raw(self) -> None:
        position = parse_position("fleet/V1/pos", _payload(timestamp="t", speed="n/a"))
        assert position is not None
        assert position.speed is None
        assert position.as_dict()["speed"] == "n/a"

    def test_non_numeric_latitude_kept_raw(self) -> None:
        position = parse_position("fleet/V1/pos", _payload(latitude="north"))
        assert position is not None
        assert position.latitude is None
        assert position.longitude == pytest.approx(85.32)
        assert position.as_dict()["latitude"] == "north"

    def test_boolean_speed_is_not_numeric(self) -> None:
        position = parse_position("fleet/V1/pos", _payload(speed=True))
        assert position is not None
        assert position.speed is None

    def test_payload_raw_key_passes_through(self) -> None:
        position = parse_position("fleet/V1/pos", _payload(raw="abc"))
        assert position is not None
        assert position.as_dict()["raw"] == "abc"
        assert position.latitude == pytest.approx(27.71)

    def test_parse_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="velotrack.ingestion.mqtt"):
            assert decode_payload(b"{oops") is None
        assert "unparsable payload" in caplog.text
