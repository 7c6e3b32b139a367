from __future__ import annotations

import hashlib
import hmac
from datetime import UTC, datetime, timedelta, timezone
from urllib.parse import parse_qsl, urlsplit

import pytest

from velotrack._crypto.signing import (
    SigningRequest,
    build_signed_url,
    canonical_query_string,
    derive_signing_key,
    encode_uri_component,
    format_amz_date,
)
from velotrack.exceptions import VeloSigningError
from velotrack.models.credential import Credential

HOST = "a1b2c3d4e5-ats.iot.us-east-1.amazonaws.com"
REGION = "us-east-1"
SECRET = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


def _credential(**overrides: str) -> Credential:
    values = {"access_key_id": "AKIDEXAMPLE", "secret_access_key": SECRET}
    values.update(overrides)
    return Credential(**values)


def _reference_verify(url: str, secret: str, region: str) -> bool:
    """Independently re-derive the SigV4 signature embedded in *url*."""
    base, signature = url.rsplit("&X-Amz-Signature=", 1)
    parts = urlsplit(base)
    params = dict(parse_qsl(parts.query))
    amz_date = params["X-Amz-Date"]
    scope = params["X-Amz-Credential"].split("/", 1)[1]

    canonical = "\n".join(
        [
            "GET",
            parts.path,
            parts.query,
            f"host:{parts.hostname}\n",
            "host",
            hashlib.sha256(b"").hexdigest(),
        ]
    )
    to_sign = "\n".join(
        [
            "AWS4-HMAC-SHA256",
            amz_date,
            scope,
            hashlib.sha256(canonical.encode()).hexdigest(),
        ]
    )
    key = f"AWS4{secret}".encode()
    for part in (amz_date[:8], region, "iotdevicegateway", "aws4_request"):
        key = hmac.new(key, part.encode(), hashlib.sha256).digest()
    expected = hmac.new(key, to_sign.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def _signature(url: str) -> str:
    return url.rsplit("&X-Amz-Signature=", 1)[1]


class TestBuildSignedUrl:
    def test_url_layout(self) -> None:
        url = build_signed_url(HOST, REGION, _credential(), now=NOW)
        expected_prefix = (
            f"wss://{HOST}/mqtt?"
            "X-Amz-Algorithm=AWS4-HMAC-SHA256"
            "&X-Amz-Credential=AKIDEXAMPLE%2F20240102%2Fus-east-1%2Fiotdevicegateway%2Faws4_request"
            "&X-Amz-Date=20240102T030405Z"
            "&X-Amz-Expires=86400"
            "&X-Amz-SignedHeaders=host"
            "&X-Amz-Signature="
        )
        assert url.startswith(expected_prefix)
        signature = _signature(url)
        assert len(signature) == 64
        assert signature == signature.lower()

    def test_deterministic_for_fixed_inputs(self) -> None:
        first = build_signed_url(HOST, REGION, _credential(), now=NOW)
        second = build_signed_url(HOST, REGION, _credential(), now=NOW)
        assert first == second

    def test_verifies_against_reference_implementation(self) -> None:
        url = build_signed_url(HOST, REGION, _credential(), now=NOW)
        assert _reference_verify(url, SECRET, REGION)

    def test_different_second_gives_different_url(self) -> None:
        first = build_signed_url(HOST, REGION, _credential(), now=NOW)
        second = build_signed_url(HOST, REGION, _credential(), now=NOW + timedelta(seconds=1))
        assert first != second
        assert _signature(first) != _signature(second)

    def test_sub_second_changes_do_not_matter(self) -> None:
        first = build_signed_url(HOST, REGION, _credential(), now=NOW)
        second = build_signed_url(HOST, REGION, _credential(), now=NOW + timedelta(milliseconds=999))
        assert first == second

    @pytest.mark.parametrize(
        ("host", "region", "access_key", "secret", "now"),
        [
            (HOST.replace("a1", "a2"), REGION, "AKIDEXAMPLE", SECRET, NOW),
            (HOST, "us-east-2", "AKIDEXAMPLE", SECRET, NOW),
            (HOST, REGION, "AKIDEXAMPLF", SECRET, NOW),
            (HOST, REGION, "AKIDEXAMPLE", SECRET[:-1] + "X", NOW),
            (HOST, REGION, "AKIDEXAMPLE", SECRET + " ", NOW),
            (HOST, REGION, "AKIDEXAMPLE ", SECRET, NOW),
            (HOST, REGION, "AKIDEXAMPLE", SECRET, NOW + timedelta(seconds=1)),
        ],
    )
    def test_single_input_change_changes_signature(
        self, host: str, region: str, access_key: str, secret: str, now: datetime
    ) -> None:
        baseline = _signature(build_signed_url(HOST, REGION, _credential(), now=NOW))
        changed = build_signed_url(
            host,
            region,
            _credential(access_key_id=access_key, secret_access_key=secret),
            now=now,
        )
        assert _signature(changed) != baseline

    def test_secret_is_signed_verbatim(self) -> None:
        url = build_signed_url(HOST, REGION, _credential(secret_access_key=SECRET + " "), now=NOW)
        assert _reference_verify(url, SECRET + " ", REGION)
        assert not _reference_verify(url, SECRET, REGION)

    def test_wrong_secret_fails_reference_verification(self) -> None:
        url = build_signed_url(HOST, REGION, _credential(), now=NOW)
        assert not _reference_verify(url, SECRET + "x", REGION)

    def test_now_defaults_to_current_utc_time(self) -> None:
        before = datetime.now(UTC).replace(microsecond=0)
        url = build_signed_url(HOST, REGION, _credential())
        after = datetime.now(UTC)
        stamp = dict(parse_qsl(urlsplit(url).query))["X-Amz-Date"]
        signed_at = datetime.strptime(stamp, "%Y%m%dT%H%M%SZ").replace(tzinfo=UTC)
        assert before <= signed_at <= after


class TestSessionToken:
    TOKEN = "FwoGZXIvYXdzEJr//////////wEaDH+token=="

    def test_token_is_last_query_parameter_before_signature(self) -> None:
        url = build_signed_url(HOST, REGION, _credential(session_token=self.TOKEN), now=NOW)
        base = url.rsplit("&X-Amz-Signature=", 1)[0]
        assert base.endswith(f"&X-Amz-Security-Token={encode_uri_component(self.TOKEN)}")
        assert "%2F" in base.rsplit("X-Amz-Security-Token=", 1)[1]
        assert "%2B" in base.rsplit("X-Amz-Security-Token=", 1)[1]

    def test_token_participates_in_signature(self) -> None:
        url = build_signed_url(HOST, REGION, _credential(session_token=self.TOKEN), now=NOW)
        assert _reference_verify(url, SECRET, REGION)

        base, signature = url.rsplit("&X-Amz-Signature=", 1)
        stripped = base.split("&X-Amz-Security-Token=", 1)[0]
        assert not _reference_verify(f"{stripped}&X-Amz-Signature={signature}", SECRET, REGION)

    def test_token_changes_signature(self) -> None:
        without = build_signed_url(HOST, REGION, _credential(), now=NOW)
        with_token = build_signed_url(HOST, REGION, _credential(session_token=self.TOKEN), now=NOW)
        assert _signature(without) != _signature(with_token)

    def test_blank_token_is_omitted(self) -> None:
        url = build_signed_url(HOST, REGION, _credential(session_token="  "), now=NOW)
        assert "X-Amz-Security-Token" not in url
        assert url == build_signed_url(HOST, REGION, _credential(), now=NOW)


class TestSigningRequest:
    def test_date_stamp_is_truncated_utc_stamp(self) -> None:
        # 23:30 at UTC-02:00 is already the next day in UTC.
        local = datetime(2024, 1, 1, 23, 30, 0, tzinfo=timezone(timedelta(hours=-2)))
        request = SigningRequest(host=HOST, region=REGION, credential=_credential(), timestamp=local)
        assert request.amz_date == "20240102T013000Z"
        assert request.date_stamp == "20240102"
        assert request.credential_scope == "20240102/us-east-1/iotdevicegateway/aws4_request"

    def test_naive_timestamp_treated_as_utc(self) -> None:
        assert format_amz_date(datetime(2024, 5, 6, 7, 8, 9)) == "20240506T070809Z"

    def test_repr_hides_credential(self) -> None:
        request = SigningRequest(host=HOST, region=REGION, credential=_credential(), timestamp=NOW)
        assert SECRET not in repr(request)
        assert "AKIDEXAMPLE" not in repr(request)

    def test_query_string_order(self) -> None:
        request = SigningRequest(
            host=HOST,
            region=REGION,
            credential=_credential(session_token="tok"),
            timestamp=NOW,
        )
        keys = [pair.split("=", 1)[0] for pair in canonical_query_string(request).split("&")]
        assert keys == [
            "X-Amz-Algorithm",
            "X-Amz-Credential",
            "X-Amz-Date",
            "X-Amz-Expires",
            "X-Amz-SignedHeaders",
            "X-Amz-Security-Token",
        ]

    @pytest.mark.parametrize(
        "host",
        ["", "wss://" + HOST, HOST + "/mqtt", "bad host", " " + HOST, "-leading.example.com"],
    )
    def test_malformed_host_rejected(self, host: str) -> None:
        with pytest.raises(VeloSigningError):
            build_signed_url(host, REGION, _credential(), now=NOW)

    @pytest.mark.parametrize("region", ["", "US-EAST-1", "us east 1", "us-east-1/"])
    def test_malformed_region_rejected(self, region: str) -> None:
        with pytest.raises(VeloSigningError):
            build_signed_url(HOST, region, _credential(), now=NOW)

    def test_empty_access_key_rejected(self) -> None:
        with pytest.raises(VeloSigningError):
            build_signed_url(HOST, REGION, _credential(access_key_id=""), now=NOW)

    def test_errors_never_leak_secret(self) -> None:
        with pytest.raises(VeloSigningError) as exc_info:
            build_signed_url("https://bad", REGION, _credential(), now=NOW)
        assert SECRET not in str(exc_info.value)


class TestPrimitives:
    def test_signing_key_matches_aws_published_example(self) -> None:
        # Example from the AWS "deriving a signing key" documentation.
        key = derive_signing_key(SECRET, "20120215", "us-east-1", "iam")
        assert key.hex() == "f4780e2d9f65fa895f9c67b32ce1baf0b0d8a43505a000a1a9e090d414db404d"

    def test_encode_uri_component_matches_javascript(self) -> None:
        assert encode_uri_component("a/b+c=d e") == "a%2Fb%2Bc%3Dd%20e"
        assert encode_uri_component("-_.!~*'()") == "-_.!~*'()"
        assert encode_uri_component("é") == "%C3%A9"
