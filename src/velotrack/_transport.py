"""Publish/subscribe transport for the position feed.

The store depends only on the narrow :class:`Transport` protocol; the
production implementation wraps a threaded paho-mqtt client speaking
MQTT over a presigned secure WebSocket.
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, cast
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from velotrack._constants import DEFAULT_CLIENT_ID_PREFIX, DEFAULT_MQTT_KEEPALIVE, WS_PORT
from velotrack._redact import redact_signed_url
from velotrack.exceptions import VeloTransportError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportCallbacks:
    """Events a transport reports back to its owner.

    Callbacks may be invoked from any thread.
    """

    on_connect: Callable[[], None]
    on_error: Callable[[str], None]
    on_message: Callable[[str, bytes], None]


class Transport(Protocol):
    """Structural transport interface used by the position store.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`PahoWebSocketTransport`)
    concrete.
    """

    def open(self) -> None:
        """Start connecting. May block; the store calls it off the event loop."""
        ...

    def subscribe(self, topic: str) -> None: ...

    def close(self) -> None: ...


TransportFactory = Callable[[str, TransportCallbacks], Transport]


def build_client_id(prefix: str = DEFAULT_CLIENT_ID_PREFIX) -> str:
    """Random MQTT client id, ``<prefix><8 hex chars>``."""
    return f"{prefix}{secrets.token_hex(4)}"


class PahoWebSocketTransport:
    """Threaded paho-mqtt client connected through a presigned ``wss://`` URL.

    Paho's own reconnect loop is not relied upon: the presigned URL is
    bound to its timestamp, so a lost connection is reported through
    ``on_error`` and the owner opens a new transport with a fresh URL.
    """

    def __init__(
        self,
        url: str,
        callbacks: TransportCallbacks,
        *,
        client_id: str | None = None,
        keepalive: int = DEFAULT_MQTT_KEEPALIVE,
        logger: logging.Logger | None = None,
    ) -> None:
        parts = urlsplit(url)
        if parts.scheme != "wss" or not parts.hostname:
            raise VeloTransportError("Transport URL must be a wss:// URL with a host")
        self._host = parts.hostname
        self._port = parts.port or WS_PORT
        self._path = f"{parts.path}?{parts.query}" if parts.query else parts.path
        self._url = url
        self._callbacks = callbacks
        self._client_id = client_id or build_client_id()
        self._keepalive = keepalive
        self._logger = logger or _logger
        self._client: mqtt.Client | None = None
        self._closing = False
        self._lock = threading.Lock()

    @property
    def client_id(self) -> str:
        return self._client_id

    def open(self) -> None:
        """Connect to the broker and start the network loop thread."""
        with self._lock:
            if self._closing:
                self._logger.debug("MQTT transport already closed; not opening")
                return
        self._logger.debug(
            "MQTT transport open host=%s port=%s client_id=%s url=%s",
            self._host,
            self._port,
            self._client_id,
            redact_signed_url(self._url),
        )
        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._client_id,
            protocol=mqtt.MQTTv311,
            transport="websockets",
        )
        client.enable_logger(self._logger)
        # Host header must match the signed canonical header exactly (no port).
        client.ws_set_options(path=self._path, headers={"Host": self._host})
        client.tls_set()

        def on_connect(
            _c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect refused: %s", reason_code)
                self._callbacks.on_error(f"Connection refused: {reason_code}")
                return
            self._logger.debug("MQTT connected reason=%s", reason_code)
            self._callbacks.on_connect()

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self._callbacks.on_message(msg.topic, msg.payload)

        def on_disconnect(
            _c: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._closing:
                return
            self._logger.debug("MQTT disconnected: %s", reason_code)
            self._callbacks.on_error(f"Connection lost: {reason_code}")

        def on_connect_fail(_c: mqtt.Client, _userdata: Any) -> None:
            if not self._closing:
                self._callbacks.on_error("Connection attempt failed")

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect
        client.on_connect_fail = on_connect_fail

        try:
            client.connect(self._host, self._port, keepalive=self._keepalive)
        except (OSError, ValueError) as exc:
            raise VeloTransportError(f"Could not connect to {self._host}: {exc}", host=self._host) from exc

        # close() may have run while connect() was blocking.
        with self._lock:
            aborted = self._closing
            if not aborted:
                self._client = client
                client.loop_start()
        if aborted:
            self._logger.debug("MQTT transport closed during connect; dropping connection")
            client.disconnect()
            return
        self._logger.debug("MQTT network loop started")

    def subscribe(self, topic: str) -> None:
        client = self._client
        if client is None:
            raise VeloTransportError("Transport is not open", host=self._host)
        self._logger.debug("MQTT subscribing topic=%s", topic)
        result, _mid = client.subscribe(topic, qos=0)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._callbacks.on_error(f"Subscribe failed: {mqtt.error_string(result)}")

    def close(self) -> None:
        """Disconnect and stop the network loop. Safe to call repeatedly.

        May run concurrently with a blocked :meth:`open`; that call then
        drops its connection instead of starting the network loop.
        """
        with self._lock:
            self._closing = True
            client = self._client
            self._client = None
        if client is None:
            return
        try:
            self._logger.debug("MQTT disconnect requested")
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")


def paho_transport_factory(
    *,
    client_id_prefix: str = DEFAULT_CLIENT_ID_PREFIX,
    keepalive: int = DEFAULT_MQTT_KEEPALIVE,
    logger: logging.Logger | None = None,
) -> TransportFactory:
    """Factory producing one :class:`PahoWebSocketTransport` per connection attempt."""

    def factory(url: str, callbacks: TransportCallbacks) -> Transport:
        return PahoWebSocketTransport(
            url,
            callbacks,
            client_id=build_client_id(client_id_prefix),
            keepalive=keepalive,
            logger=logger,
        )

    return factory
