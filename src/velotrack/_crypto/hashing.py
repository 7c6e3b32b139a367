"""Hash functions for SigV4 request signing."""

from __future__ import annotations

import hashlib
import hmac


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def sha256_hex(value: str | bytes) -> str:
    """Compute SHA-256 of *value*, returning lowercase hex.

    Parameters
    ----------
    value : str or bytes
        Data to hash. Strings are UTF-8 encoded.

    Returns
    -------
    str
        64-character lowercase hex digest.
    """
    return hashlib.sha256(_to_bytes(value)).hexdigest()


def hmac_sha256(key: str | bytes, message: str | bytes) -> bytes:
    """Compute HMAC-SHA256 of *message* under *key*.

    Returns the raw 32-byte digest so it can seed the next link of a
    key-derivation chain.
    """
    return hmac.new(_to_bytes(key), _to_bytes(message), hashlib.sha256).digest()
