"""Vehicle position store and connection state machine.

The store is the single writer of the vehicle table.  Transport callbacks
arrive on the network thread and are marshalled onto the owning asyncio
loop with ``call_soon_threadsafe``, so table updates and state
transitions never interleave.

State machine::

    DISCONNECTED --connect()--> CONNECTING --on_connect--> CONNECTED
    CONNECTING/CONNECTED --on_error--> ERRORED --reconnect_period--> CONNECTING
    any --disconnect()--> DISCONNECTED
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from velotrack._crypto.signing import build_signed_url
from velotrack._redact import redact_signed_url
from velotrack._transport import Transport, TransportCallbacks, TransportFactory, paho_transport_factory
from velotrack.config import FleetConfig
from velotrack.demo import DemoTransport
from velotrack.exceptions import VeloError
from velotrack.ingestion.mqtt import parse_position
from velotrack.models.connection import ConnectionState
from velotrack.models.position import VehiclePosition
from velotrack.state.events import FleetSnapshot, StoreEvent, StoreEventKind, StoreObserver

_logger = logging.getLogger(__name__)

_DEMO_URL = "demo://fleet"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def default_transport_factory(config: FleetConfig) -> TransportFactory:
    """Transport factory matching *config* (demo fleet or AWS IoT over WebSocket)."""
    if config.demo_mode:

        def demo_factory(_url: str, callbacks: TransportCallbacks) -> Transport:
            return DemoTransport(callbacks, interval=config.demo_interval)

        return demo_factory
    return paho_transport_factory(
        client_id_prefix=config.client_id_prefix,
        keepalive=config.mqtt_keepalive,
    )


class VehiclePositionStore:
    """Live table of vehicle positions fed by one broker subscription.

    Usage::

        async with VehiclePositionStore(FleetConfig.from_env()) as store:
            store.subscribe(lambda event: print(event.snapshot.vehicles))
            await store.wait_until_connected(10)

    Entries are replaced wholesale on every message and are never evicted;
    a vehicle that goes quiet keeps its last known position.
    """

    def __init__(
        self,
        config: FleetConfig,
        *,
        transport_factory: TransportFactory | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        clock: Callable[[], datetime] = _utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        config.validate()
        self._config = config
        self._transport_factory = transport_factory or default_transport_factory(config)
        self._loop = loop
        self._clock = clock
        self._logger = logger or _logger

        self._vehicles: dict[str, VehiclePosition] = {}
        self._state = ConnectionState.DISCONNECTED
        self._connection_error: str | None = None
        self._observers: list[StoreObserver] = []

        self._transport: Transport | None = None
        # Bumped on every connection attempt and on disconnect; callbacks
        # carrying an older value belong to a transport that was replaced.
        self._attempt = 0
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._pending: set[asyncio.Future[Any]] = set()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> VehiclePositionStore:
        self._loop = asyncio.get_running_loop()
        self.connect()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Consumer interface
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def connection_error(self) -> str | None:
        return self._connection_error

    @property
    def vehicles(self) -> Mapping[str, VehiclePosition]:
        """Read-only copy of the vehicle table."""
        return MappingProxyType(dict(self._vehicles))

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def snapshot(self) -> FleetSnapshot:
        return FleetSnapshot(
            vehicles=self.vehicles,
            state=self._state,
            connection_error=self._connection_error,
        )

    def subscribe(self, observer: StoreObserver) -> Callable[[], None]:
        """Register *observer* for table/state changes; returns an unsubscribe callable."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def wait_until_connected(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds for the store to reach ``CONNECTED``."""
        if self.is_connected:
            return True
        loop = self._ensure_loop()
        waiter: asyncio.Future[bool] = loop.create_future()

        def on_event(event: StoreEvent) -> None:
            if event.snapshot.is_connected and not waiter.done():
                waiter.set_result(True)

        unsubscribe = self.subscribe(on_event)
        try:
            return await asyncio.wait_for(waiter, timeout)
        except TimeoutError:
            return False
        finally:
            unsubscribe()

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Start a connection attempt and return immediately.

        No-op while already connecting or connected.
        """
        if self._state.is_active:
            self._logger.debug("connect() ignored state=%s", self._state)
            return

        loop = self._ensure_loop()
        self._cancel_reconnect()
        self._attempt += 1
        attempt = self._attempt
        self._set_state(ConnectionState.CONNECTING, self._connection_error)

        callbacks = TransportCallbacks(
            on_connect=lambda: self._dispatch(self._handle_connect, attempt),
            on_error=lambda reason: self._dispatch(self._handle_error, attempt, reason),
            on_message=lambda topic, payload: self._dispatch(self._handle_message, attempt, topic, payload),
        )

        try:
            url = self._build_url()
            transport = self._transport_factory(url, callbacks)
        except VeloError as exc:
            self._fail(f"Configuration error: {exc}")
            return

        self._transport = transport
        self._track(loop.run_in_executor(None, self._open_transport, transport, callbacks))

    def disconnect(self) -> None:
        """Close the transport, cancel any pending reconnect, and go ``DISCONNECTED``."""
        self._cancel_reconnect()
        self._attempt += 1
        self._release_transport()
        self._set_state(ConnectionState.DISCONNECTED, None)
        self._logger.debug("Disconnected")

    async def aclose(self) -> None:
        """Disconnect and wait for transport teardown to finish."""
        self.disconnect()
        pending = list(self._pending)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _build_url(self) -> str:
        if self._config.demo_mode:
            return _DEMO_URL
        url = build_signed_url(
            self._config.host,
            self._config.region,
            self._config.credential(),
            now=self._clock(),
        )
        self._logger.debug("Signed broker URL %s", redact_signed_url(url))
        return url

    def _open_transport(self, transport: Transport, callbacks: TransportCallbacks) -> None:
        # Runs on an executor thread.
        try:
            transport.open()
        except Exception as exc:
            self._logger.debug("Transport open failed", exc_info=True)
            callbacks.on_error(f"Could not open connection: {exc}")

    def _close_transport(self, transport: Transport) -> None:
        try:
            transport.close()
        except Exception:
            self._logger.debug("Transport close failed", exc_info=True)

    def _release_transport(self) -> None:
        transport = self._transport
        self._transport = None
        if transport is None:
            return
        loop = self._loop
        if loop is None or loop.is_closed():
            self._close_transport(transport)
            return
        self._track(loop.run_in_executor(None, self._close_transport, transport))

    def _track(self, future: asyncio.Future[Any]) -> None:
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)

    def _dispatch(self, handler: Callable[..., None], *args: Any) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(handler, *args)
        except RuntimeError:
            self._logger.debug("Event loop closed; dropping transport event %s", handler.__name__)

    def _handle_connect(self, attempt: int) -> None:
        if attempt != self._attempt or self._state is not ConnectionState.CONNECTING:
            return
        transport = self._transport
        if transport is None:
            return
        self._logger.info("Connected to broker; subscribing to %s", self._config.topic)
        self._set_state(ConnectionState.CONNECTED, None)
        try:
            transport.subscribe(self._config.topic)
        except VeloError as exc:
            self._fail(f"Subscribe failed: {exc}")

    def _handle_error(self, attempt: int, reason: str) -> None:
        if attempt != self._attempt or not self._state.is_active:
            self._logger.debug("Ignoring stale transport error: %s", reason)
            return
        self._fail(reason)

    def _handle_message(self, attempt: int, topic: str, payload: bytes) -> None:
        if attempt != self._attempt or self._state is not ConnectionState.CONNECTED:
            return
        position = parse_position(topic, payload)
        if position is None:
            return
        self._vehicles[position.id] = position
        self._publish(StoreEventKind.TABLE_CHANGED, vehicle_id=position.id)

    def _fail(self, reason: str) -> None:
        self._logger.warning("Broker connection error: %s", reason)
        self._release_transport()
        self._set_state(ConnectionState.ERRORED, reason)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        loop = self._ensure_loop()
        self._logger.debug("Reconnecting in %.1fs", self._config.reconnect_period)
        self._reconnect_handle = loop.call_later(self._config.reconnect_period, self._reconnect)

    def _cancel_reconnect(self) -> None:
        handle = self._reconnect_handle
        self._reconnect_handle = None
        if handle is not None:
            handle.cancel()

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self._state is not ConnectionState.ERRORED:
            return
        self._logger.debug("Reconnect attempt %d", self._attempt + 1)
        self.connect()

    def _set_state(self, state: ConnectionState, error: str | None) -> None:
        if state is self._state and error == self._connection_error:
            return
        self._state = state
        self._connection_error = error
        self._publish(StoreEventKind.STATE_CHANGED)

    def _publish(self, kind: StoreEventKind, *, vehicle_id: str | None = None) -> None:
        if not self._observers:
            return
        event = StoreEvent(kind=kind, snapshot=self.snapshot(), vehicle_id=vehicle_id)
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                self._logger.exception("Store observer %r failed", observer)
