"""Connection state enum."""

from __future__ import annotations

from enum import StrEnum


class ConnectionState(StrEnum):
    """Lifecycle of the store's broker subscription."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERRORED = "errored"

    @property
    def is_active(self) -> bool:
        """Whether a transport is being opened or is open."""
        return self in (ConnectionState.CONNECTING, ConnectionState.CONNECTED)
