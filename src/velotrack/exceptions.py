"""Custom exception hierarchy for velotrack."""

from __future__ import annotations


class VeloError(Exception):
    """Base exception for all velotrack errors."""


class VeloConfigError(VeloError):
    """Invalid or missing configuration."""


class VeloSigningError(VeloConfigError):
    """Malformed input to the signed-URL builder.

    Raised before any hashing happens, so a bad host or region never
    produces a URL that the broker would silently refuse.  Messages
    never include credential material.
    """


class VeloTransportError(VeloError):
    """The publish/subscribe transport could not be opened or used."""

    def __init__(self, message: str, *, host: str = "") -> None:
        self.host = host
        super().__init__(message)
