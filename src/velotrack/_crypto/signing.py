"""SigV4 presigning for AWS IoT MQTT-over-WebSocket connections.

The broker authenticates the WebSocket upgrade by re-deriving the
signature from the query string, so every byte of the canonical request
below has to match what the gateway computes:

  1. ``X-Amz-*`` query parameters in a fixed order, the security token
     (if any) last
  2. canonical request ``GET /mqtt <query> host:<host>\\n host <sha256("")>``
  3. string to sign bound to ``<date>/<region>/iotdevicegateway/aws4_request``
  4. signing key from the ``AWS4<secret>`` HMAC chain
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from urllib.parse import quote

from velotrack._constants import (
    SIGNED_HEADERS,
    SIGNING_ALGORITHM,
    SIGNING_KEY_PREFIX,
    SIGNING_SERVICE,
    SIGNING_TERMINATOR,
    URL_EXPIRES_SECONDS,
    WS_METHOD,
    WS_PATH,
    WS_SCHEME,
)
from velotrack._crypto.hashing import hmac_sha256, sha256_hex
from velotrack.exceptions import VeloSigningError
from velotrack.models.credential import Credential

_HOST_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9.-]*[A-Za-z0-9])?$")
_REGION_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

# Characters left alone by JavaScript's encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"

_EMPTY_PAYLOAD_HASH = sha256_hex("")


def encode_uri_component(value: str) -> str:
    """Percent-encode *value* the way ``encodeURIComponent`` does.

    ``/``, ``+`` and ``=`` are all encoded, which matters for the
    credential scope and for base64 session tokens.
    """
    return quote(value, safe=_URI_COMPONENT_SAFE)


def format_amz_date(moment: datetime) -> str:
    """Format *moment* as the compact ``YYYYMMDDTHHMMSSZ`` UTC stamp.

    Naive datetimes are taken to already be in UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).strftime("%Y%m%dT%H%M%SZ")


@dataclass(frozen=True)
class SigningRequest:
    """Inputs to one presigning operation.

    Construct one per connection attempt; the embedded timestamp makes
    the resulting URL expire :data:`URL_EXPIRES_SECONDS` after creation.

    Parameters
    ----------
    host : str
        Bare broker hostname, e.g. ``abc123-ats.iot.eu-west-1.amazonaws.com``.
    region : str
        Lowercase region code the credential is valid for.
    credential : Credential
        Access key pair and optional session token.
    timestamp : datetime
        Instant the request is signed at. Defaults to now (UTC).
    service : str
        Signing service name.
    """

    host: str
    region: str
    credential: Credential = field(repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    service: str = SIGNING_SERVICE

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host:
            raise VeloSigningError("host must be a non-empty string")
        if "://" in self.host:
            raise VeloSigningError(f"host must not include a scheme: {self.host!r}")
        if not _HOST_RE.match(self.host):
            raise VeloSigningError(f"host is not a bare hostname: {self.host!r}")
        if not isinstance(self.region, str) or not self.region:
            raise VeloSigningError("region must be a non-empty string")
        if not _REGION_RE.match(self.region):
            raise VeloSigningError(f"region must be a lowercase region code: {self.region!r}")
        if not self.credential.access_key_id:
            raise VeloSigningError("credential access key id is empty")

    @property
    def amz_date(self) -> str:
        return format_amz_date(self.timestamp)

    @property
    def date_stamp(self) -> str:
        # Truncated from amz_date so the two can never disagree.
        return self.amz_date[:8]

    @property
    def credential_scope(self) -> str:
        return f"{self.date_stamp}/{self.region}/{self.service}/{SIGNING_TERMINATOR}"


def canonical_query_string(request: SigningRequest) -> str:
    """Build the presigned query string (without ``X-Amz-Signature``).

    Parameter order is fixed; the security token, when present, is
    appended last and therefore takes part in the signature.
    """
    credential = request.credential
    params = [
        f"X-Amz-Algorithm={SIGNING_ALGORITHM}",
        f"X-Amz-Credential={encode_uri_component(f'{credential.access_key_id}/{request.credential_scope}')}",
        f"X-Amz-Date={request.amz_date}",
        f"X-Amz-Expires={URL_EXPIRES_SECONDS}",
        f"X-Amz-SignedHeaders={SIGNED_HEADERS}",
    ]
    token = credential.session_token_value()
    if token:
        params.append(f"X-Amz-Security-Token={encode_uri_component(token)}")
    return "&".join(params)


def canonical_request(request: SigningRequest, query_string: str) -> str:
    """Assemble the newline-joined canonical request for the WebSocket upgrade."""
    canonical_headers = f"host:{request.host}\n"
    return "\n".join(
        [
            WS_METHOD,
            WS_PATH,
            query_string,
            canonical_headers,
            SIGNED_HEADERS,
            _EMPTY_PAYLOAD_HASH,
        ]
    )


def string_to_sign(request: SigningRequest, canonical: str) -> str:
    return "\n".join(
        [
            SIGNING_ALGORITHM,
            request.amz_date,
            request.credential_scope,
            sha256_hex(canonical),
        ]
    )


def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str = SIGNING_SERVICE) -> bytes:
    """Derive the request signing key from a long-term secret.

    Parameters
    ----------
    secret_key : str
        AWS secret access key.
    date_stamp : str
        ``YYYYMMDD`` date the key is scoped to.
    region : str
        Region code.
    service : str
        Service name.

    Returns
    -------
    bytes
        32-byte signing key.
    """
    k_date = hmac_sha256(f"{SIGNING_KEY_PREFIX}{secret_key}", date_stamp)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, service)
    return hmac_sha256(k_service, SIGNING_TERMINATOR)


def sign(signing_key: bytes, to_sign: str) -> str:
    """Hex HMAC-SHA256 signature of *to_sign*."""
    return hmac_sha256(signing_key, to_sign).hex()


def presign(request: SigningRequest) -> str:
    """Produce the signed ``wss://`` URL for *request*."""
    query = canonical_query_string(request)
    to_sign = string_to_sign(request, canonical_request(request, query))
    key = derive_signing_key(
        request.credential.secret_access_key.get_secret_value(),
        request.date_stamp,
        request.region,
        request.service,
    )
    signature = sign(key, to_sign)
    return f"{WS_SCHEME}://{request.host}{WS_PATH}?{query}&X-Amz-Signature={signature}"


def build_signed_url(
    host: str,
    region: str,
    credential: Credential,
    *,
    now: datetime | None = None,
) -> str:
    """Build a time-limited signed WebSocket URL for the IoT broker.

    Parameters
    ----------
    host : str
        Bare broker hostname (no scheme, no path).
    region : str
        Region the credential is valid for.
    credential : Credential
        Credential pair; the secret never appears in the output.
    now : datetime or None
        Signing instant. ``None`` reads the current UTC clock.

    Returns
    -------
    str
        ``wss://<host>/mqtt?<query>&X-Amz-Signature=<hex>``.

    Raises
    ------
    VeloSigningError
        If *host* or *region* is malformed.
    """
    timestamp = now if now is not None else datetime.now(UTC)
    return presign(SigningRequest(host=host, region=region, credential=credential, timestamp=timestamp))
