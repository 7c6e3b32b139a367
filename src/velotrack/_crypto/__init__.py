"""Cryptographic primitives for AWS IoT WebSocket authentication."""

from __future__ import annotations

from velotrack._crypto.hashing import hmac_sha256, sha256_hex
from velotrack._crypto.signing import (
    SigningRequest,
    build_signed_url,
    canonical_query_string,
    canonical_request,
    derive_signing_key,
    encode_uri_component,
    format_amz_date,
    presign,
    sign,
    string_to_sign,
)

__all__ = [
    "SigningRequest",
    "build_signed_url",
    "canonical_query_string",
    "canonical_request",
    "derive_signing_key",
    "encode_uri_component",
    "format_amz_date",
    "hmac_sha256",
    "presign",
    "sha256_hex",
    "sign",
    "string_to_sign",
]
