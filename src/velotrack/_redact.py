"""Helpers for safe debug logging.

velotrack handles AWS secret keys, session tokens and presigned URLs
whose query strings embed the access key id and a live signature.  This
module masks those before they reach a log line.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import SecretStr

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "secret",
        "secretkey",
        "secretaccesskey",
        "accesskey",
        "accesskeyid",
        "sessiontoken",
        "token",
        "authorization",
        # Presigned query parameters
        "xamzcredential",
        "xamzsecuritytoken",
        "xamzsignature",
    }
)

_SENSITIVE_QUERY_PARAMS: frozenset[str] = frozenset(
    {
        "X-Amz-Credential",
        "X-Amz-Security-Token",
        "X-Amz-Signature",
    }
)


def _normalise_key(key: str) -> str:
    return key.lower().replace("_", "").replace("-", "")


def redact_signed_url(url: str) -> str:
    """Return *url* with credential, token and signature parameters masked."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = [
        (key, "<redacted>" if key in _SENSITIVE_QUERY_PARAMS else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(pairs, safe="<>")))


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, SecretStr):
        return "<redacted>"

    if isinstance(value, str):
        if value.startswith("wss://"):
            value = redact_signed_url(value)
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if _normalise_key(key) in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
