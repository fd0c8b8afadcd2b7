"""Connection lifecycle and command channel for a MiniDrone."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from .config import DroneOptions
from .const import (
    CHAR_BATTERY,
    CHAR_COMMAND,
    CHAR_EMERGENCY,
    CHAR_FLIGHT_PARAMS,
    CHAR_FLIGHT_STATUS,
    EVENT_BATTERY_STATUS_CHANGE,
    EVENT_CONNECTED,
    EVENT_DISCONNECTED,
    EVENT_FLIGHT_PARAM_CHANGE,
    EVENT_FLIGHT_STATUS_CHANGE,
    EVENT_MAX_ALTITUDE_CHANGE,
    EVENT_MAX_ROTATION_SPEED_CHANGE,
    EVENT_MAX_TILT_CHANGE,
    EVENT_MAX_VERTICAL_SPEED_CHANGE,
    EVENT_RSSI_UPDATE,
    SEQUENCED_CHANNELS,
    SUBSCRIBED_CHARACTERISTICS,
)
from .events import EventEmitter, Listener
from .exceptions import DroneConnectionError, FrameDecodeError, TransportError
from .identifier import Advertisement, DeviceIdentifier
from .protocol import FlightParams, FlightStatus, MiniDroneProtocol
from .sequence import SequenceRegistry

if TYPE_CHECKING:
    from .transport import BleTransport

_LOGGER = logging.getLogger(__name__)

# The adapter refuses peripherals missing any of these
_REQUIRED_CHARACTERISTICS = (*SEQUENCED_CHANNELS, CHAR_BATTERY, CHAR_FLIGHT_STATUS)


class ConnectionState(StrEnum):
    """Where the adapter is in the connection lifecycle."""

    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    DISCOVERING_SERVICES = "discovering_services"
    CONNECTED = "connected"


@dataclass
class TelemetrySnapshot:
    """Latest values reported by the drone.

    None means no reading yet. After a disconnect the flight status is
    cleared; battery and RSSI are kept but flagged stale until the next
    connection.
    """

    battery_level: int | None = None
    flight_status: FlightStatus | None = None
    rssi: int | None = None
    stale: bool = False


# Messages processed by the session loop


@dataclass(frozen=True)
class PeripheralDiscovered:
    advertisement: Advertisement


@dataclass(frozen=True)
class PeripheralConnected:
    advertisement: Advertisement


@dataclass(frozen=True)
class ServicesReady:
    characteristics: tuple[Any, ...]


@dataclass(frozen=True)
class NotificationReceived:
    channel: str
    data: bytes
    is_notification: bool


@dataclass(frozen=True)
class Disconnected:
    pass


class MiniDroneAdapter:
    """Bridge between drone commands and a BLE transport.

    connect() starts a session: scan, connect to the first matching
    peripheral, discover its characteristics and subscribe to telemetry.
    Every transport callback is turned into a message and handled by a
    single session task, so state changes never interleave. When the drone
    drops the connection the adapter goes back to scanning.

    Command writes are synchronous and fire-and-forget. Frames are queued
    in call order and written by one writer task; with no drone connected
    a write only logs a warning.
    """

    def __init__(
        self,
        transport: BleTransport,
        options: DroneOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._options = options or DroneOptions()
        self._clock = clock
        self._identifier = DeviceIdentifier(self._options.drone_filter)
        self._sequences = SequenceRegistry()
        self._events = EventEmitter()
        self._state = ConnectionState.DISCONNECTED
        self._peripheral: Advertisement | None = None
        self._channels: dict[str, Any] = {}
        self._telemetry = TelemetrySnapshot()

        # flight params cache, only values that changed are resent early
        self._last_params: FlightParams | None = None
        self._last_params_write = 0.0

        self._loop: asyncio.AbstractEventLoop | None = None
        self._inbox: asyncio.Queue[Any] | None = None
        self._session: asyncio.Task[None] | None = None
        self._ready: asyncio.Future[None] | None = None
        self._outbox: asyncio.Queue[tuple[str, bytes]] | None = None
        self._writer: asyncio.Task[None] | None = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Whether a drone is connected and subscribed."""
        return self._state is ConnectionState.CONNECTED

    @property
    def telemetry(self) -> TelemetrySnapshot:
        """Latest decoded telemetry."""
        return self._telemetry

    @property
    def identifier(self) -> DeviceIdentifier:
        """Identifier used to accept discovered peripherals."""
        return self._identifier

    @property
    def sequences(self) -> SequenceRegistry:
        """Per-channel sequence counters."""
        return self._sequences

    @property
    def peripheral(self) -> Advertisement | None:
        """Advertisement of the drone being connected or connected to."""
        return self._peripheral

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register an event listener; returns a callable removing it."""
        return self._events.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        """Remove an event listener."""
        self._events.off(event, listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Start looking for a drone and connect to the first match.

        Returns once scanning has started. Use wait_until_connected() to
        wait for the drone itself. Calling this while a session is active
        does nothing.

        Raises:
            DroneConnectionError: If scanning could not be started.
        """
        if self._session is not None and not self._session.done():
            _LOGGER.debug("Connect called while a session is active, ignoring")
            return

        self._loop = asyncio.get_running_loop()
        self._inbox = asyncio.Queue()
        self._ready = self._loop.create_future()
        self._session = self._loop.create_task(
            self._run_session(self._inbox), name="minidrone-session"
        )
        try:
            await self._start_scanning()
        except DroneConnectionError as err:
            _LOGGER.error("%s", err)
            await self.close()
            raise

    async def wait_until_connected(self, timeout: float | None = None) -> None:
        """Wait for the current session to reach the connected state.

        Raises:
            DroneConnectionError: If the connection attempt failed or no
                attempt was started.
            TimeoutError: If timeout elapsed first.
        """
        if self._ready is None:
            raise DroneConnectionError("connect() has not been called")
        await asyncio.wait_for(asyncio.shield(self._ready), timeout)

    async def flush(self) -> None:
        """Wait until every queued frame has been handed to the transport."""
        if self._outbox is not None:
            await self._outbox.join()

    async def close(self) -> None:
        """End the session and drop any connection."""
        session, self._session = self._session, None
        self._inbox = None
        if session is not None and session is not asyncio.current_task():
            session.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await session
        if self._ready is not None and not self._ready.done():
            self._ready.cancel()
        await self._teardown()
        self._set_state(ConnectionState.DISCONNECTED)

    async def request_rssi(self) -> int | None:
        """Read the signal strength of the connected drone.

        Returns:
            RSSI in dBm, or None if no reading could be taken.
        """
        if not self.is_connected:
            _LOGGER.warning("Cannot read RSSI, no drone connected")
            return None
        try:
            rssi = await self._transport.read_rssi()
        except TransportError as err:
            _LOGGER.warning("RSSI read failed: %s", err)
            return None
        self._telemetry.rssi = rssi
        self._events.emit(EVENT_RSSI_UPDATE, rssi)
        return rssi

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def write_flight_params(self, params: FlightParams) -> bool:
        """Send roll/pitch/yaw/altitude unless throttled.

        Identical values are resent only once min_params_interval has
        elapsed since the last send.

        Returns:
            True if a frame was queued.
        """
        now = self._clock()
        if (
            params == self._last_params
            and now - self._last_params_write < self._options.min_params_interval
        ):
            return False

        if not self._send(
            CHAR_FLIGHT_PARAMS,
            lambda seq: MiniDroneProtocol.encode_flight_params(seq, params),
        ):
            return False

        self._last_params = params
        self._last_params_write = now
        self._events.emit(EVENT_FLIGHT_PARAM_CHANGE, params)
        return True

    def write_trim(self) -> bool:
        """Send the flat trim command."""
        return self._command(CHAR_COMMAND, MiniDroneProtocol.encode_trim, "Trim")

    def write_takeoff(self) -> bool:
        """Send the takeoff command."""
        return self._command(CHAR_COMMAND, MiniDroneProtocol.encode_takeoff, "Takeoff")

    def write_land(self) -> bool:
        """Send the land command."""
        return self._command(CHAR_COMMAND, MiniDroneProtocol.encode_land, "Land")

    def write_emergency(self) -> bool:
        """Send the emergency command on its own channel."""
        return self._command(
            CHAR_EMERGENCY, MiniDroneProtocol.encode_emergency, "Emergency"
        )

    def write_take_picture(self) -> bool:
        """Send the take picture command."""
        return self._command(
            CHAR_COMMAND, MiniDroneProtocol.encode_take_picture, "Take picture"
        )

    def write_animation(self, direction: str) -> bool:
        """Send a flip animation. Unknown directions are ignored."""
        code = MiniDroneProtocol.animation_code(direction)
        if code is None:
            _LOGGER.debug("Ignoring unknown animation %s", direction)
            return False
        return self._command(
            CHAR_COMMAND,
            lambda seq: MiniDroneProtocol.encode_flip(seq, code),
            f"Animation {direction}",
        )

    def write_max_altitude(self, altitude: int) -> bool:
        """Send the max altitude setting (meters)."""
        return self._setting(
            MiniDroneProtocol.encode_max_altitude,
            altitude,
            EVENT_MAX_ALTITUDE_CHANGE,
            "Max altitude",
        )

    def write_max_tilt(self, tilt: int) -> bool:
        """Send the max tilt setting (0-100)."""
        return self._setting(
            MiniDroneProtocol.encode_max_tilt, tilt, EVENT_MAX_TILT_CHANGE, "Max tilt"
        )

    def write_max_vertical_speed(self, speed: int) -> bool:
        """Send the max vertical speed setting (m/s)."""
        return self._setting(
            MiniDroneProtocol.encode_max_vertical_speed,
            speed,
            EVENT_MAX_VERTICAL_SPEED_CHANGE,
            "Max vertical speed",
        )

    def write_max_rotation_speed(self, speed: int) -> bool:
        """Send the max rotation speed setting (degrees/s)."""
        return self._setting(
            MiniDroneProtocol.encode_max_rotation_speed,
            speed,
            EVENT_MAX_ROTATION_SPEED_CHANGE,
            "Max rotation speed",
        )

    def _command(self, channel: str, encode: Callable[[int], bytes], name: str) -> bool:
        if not self._send(channel, encode):
            return False
        _LOGGER.info("%s command called", name)
        return True

    def _setting(
        self, encode: Callable[[int, int], bytes], value: int, event: str, name: str
    ) -> bool:
        if not self._send(CHAR_COMMAND, lambda seq: encode(seq, value)):
            return False
        _LOGGER.info("%s set to %s", name, value)
        self._events.emit(event, value)
        return True

    def _send(self, channel: str, encode: Callable[[int], bytes]) -> bool:
        if not self._channels or self._outbox is None:
            _LOGGER.warning(
                "You must have bluetooth enabled and be connected to a drone "
                "before executing a command"
            )
            return False
        frame = encode(self._sequences.next(channel))
        self._outbox.put_nowait((channel, frame))
        return True

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _post(self, message: Any) -> None:
        loop, inbox = self._loop, self._inbox
        if loop is None or inbox is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(inbox.put_nowait, message)

    def _on_discover(self, advertisement: Advertisement) -> None:
        self._post(PeripheralDiscovered(advertisement))

    def _on_disconnect(self) -> None:
        self._post(Disconnected())

    def _on_data(self, channel: str, data: bytes, is_notification: bool) -> None:
        self._post(NotificationReceived(channel, bytes(data), is_notification))

    # ------------------------------------------------------------------
    # Session loop
    # ------------------------------------------------------------------

    async def _run_session(self, inbox: asyncio.Queue[Any]) -> None:
        while True:
            message = await inbox.get()
            try:
                await self._handle(message, inbox)
            except DroneConnectionError as err:
                _LOGGER.error("%s", err)
                await self._end_session(err)
                return
            except Exception as err:
                _LOGGER.exception(
                    "Unexpected error handling %s", type(message).__name__
                )
                failure = DroneConnectionError(f"Session ended unexpectedly: {err!r}")
                failure.__cause__ = err
                await self._end_session(failure)
                return

    async def _end_session(self, err: DroneConnectionError) -> None:
        self._fail(err)
        await self._teardown()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _handle(self, message: Any, inbox: asyncio.Queue[Any]) -> None:
        if isinstance(message, PeripheralDiscovered):
            await self._handle_discovered(message.advertisement, inbox)
        elif isinstance(message, PeripheralConnected):
            await self._handle_connected(inbox)
        elif isinstance(message, ServicesReady):
            await self._handle_services_ready(message.characteristics)
        elif isinstance(message, NotificationReceived):
            self._handle_notification(message)
        elif isinstance(message, Disconnected):
            await self._handle_disconnected()

    async def _handle_discovered(
        self, advertisement: Advertisement, inbox: asyncio.Queue[Any]
    ) -> None:
        if self._state is not ConnectionState.SCANNING:
            return
        if not self._identifier.matches(advertisement):
            return

        _LOGGER.info("Peripheral found %s", advertisement.name or advertisement.address)
        self._peripheral = advertisement
        self._set_state(ConnectionState.CONNECTING)
        try:
            await self._transport.stop_scanning()
        except TransportError as err:
            _LOGGER.warning("Could not stop scanning: %s", err)

        try:
            await self._transport.connect(advertisement, self._on_disconnect)
        except TransportError as err:
            name = advertisement.name or advertisement.address
            raise DroneConnectionError(f"Could not connect to {name}: {err}") from err
        inbox.put_nowait(PeripheralConnected(advertisement))

    async def _handle_connected(self, inbox: asyncio.Queue[Any]) -> None:
        if self._state is not ConnectionState.CONNECTING:
            return
        self._set_state(ConnectionState.DISCOVERING_SERVICES)
        try:
            characteristics = await self._transport.discover_characteristics()
        except TransportError as err:
            raise DroneConnectionError(
                f"Characteristic discovery failed: {err}"
            ) from err
        inbox.put_nowait(ServicesReady(tuple(characteristics)))

    async def _handle_services_ready(self, characteristics: tuple[Any, ...]) -> None:
        if self._state is not ConnectionState.DISCOVERING_SERVICES:
            return

        channels: dict[str, Any] = {}
        for key in (*SEQUENCED_CHANNELS, *SUBSCRIBED_CHARACTERISTICS):
            characteristic = _find_characteristic(characteristics, key)
            if characteristic is not None:
                channels[key] = characteristic
        missing = [key for key in _REQUIRED_CHARACTERISTICS if key not in channels]
        if missing:
            raise DroneConnectionError(
                f"Peripheral is missing characteristics {', '.join(missing)}"
            )

        self._channels = channels
        self._start_writer()
        for key in SUBSCRIBED_CHARACTERISTICS:
            if key not in channels:
                continue
            try:
                await self._transport.subscribe(
                    channels[key], functools.partial(self._on_data, key)
                )
            except TransportError as err:
                raise DroneConnectionError(
                    f"Subscribing to {key} failed: {err}"
                ) from err

        self._telemetry.stale = False
        self._set_state(ConnectionState.CONNECTED)
        name = self._peripheral.name if self._peripheral else None
        _LOGGER.info("Device connected %s", name)

        if self._options.connected_settle > 0:
            await asyncio.sleep(self._options.connected_settle)
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(None)
        self._events.emit(EVENT_CONNECTED)

    def _handle_notification(self, message: NotificationReceived) -> None:
        try:
            if message.channel == CHAR_BATTERY:
                self._update_battery(message.data, message.is_notification)
            elif message.channel == CHAR_FLIGHT_STATUS:
                self._update_flight_status(message.data, message.is_notification)
            else:
                _LOGGER.debug(
                    "Notification on %s: %s", message.channel, message.data.hex()
                )
        except FrameDecodeError as err:
            _LOGGER.error(
                "Could not decode %s notification %s: %s",
                message.channel,
                err.data.hex(),
                err,
            )

    def _update_battery(self, data: bytes, is_notification: bool) -> None:
        level = MiniDroneProtocol.decode_battery(data, is_notification)
        if level is None:
            return
        self._telemetry.battery_level = level
        _LOGGER.info("Battery level: %s%%", level)
        self._events.emit(EVENT_BATTERY_STATUS_CHANGE, level)

    def _update_flight_status(self, data: bytes, is_notification: bool) -> None:
        status = MiniDroneProtocol.decode_flight_status(data, is_notification)
        if status is None:
            return
        self._telemetry.flight_status = status
        _LOGGER.debug("Flight status = %s", status)
        self._events.emit(EVENT_FLIGHT_STATUS_CHANGE, status)

    async def _handle_disconnected(self) -> None:
        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.SCANNING):
            return

        _LOGGER.warning("Drone disconnected, searching again")
        await self._stop_writer()
        self._channels = {}
        self._peripheral = None
        self._last_params = None
        self._telemetry.flight_status = None
        self._telemetry.stale = True
        if self._ready is not None and self._ready.done() and self._loop is not None:
            self._ready = self._loop.create_future()
        self._events.emit(EVENT_DISCONNECTED)
        await self._start_scanning()

    async def _start_scanning(self) -> None:
        self._set_state(ConnectionState.SCANNING)
        _LOGGER.info("Searching for drones...")
        try:
            await self._transport.start_scanning(self._on_discover)
        except TransportError as err:
            raise DroneConnectionError(f"Could not start scanning: {err}") from err

    def _fail(self, err: DroneConnectionError) -> None:
        if self._ready is None or self._ready.done():
            if self._loop is None:
                return
            self._ready = self._loop.create_future()
        self._ready.set_exception(err)

    async def _teardown(self) -> None:
        await self._stop_writer()
        self._channels = {}
        try:
            await self._transport.stop_scanning()
            await self._transport.disconnect()
        except TransportError as err:
            _LOGGER.warning("Error while releasing the transport: %s", err)

    # ------------------------------------------------------------------
    # Writer
    # ------------------------------------------------------------------

    def _start_writer(self) -> None:
        self._outbox = asyncio.Queue()
        self._writer = asyncio.get_running_loop().create_task(
            self._run_writer(self._outbox), name="minidrone-writer"
        )

    async def _stop_writer(self) -> None:
        writer, self._writer = self._writer, None
        self._outbox = None
        if writer is None:
            return
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer

    async def _run_writer(self, outbox: asyncio.Queue[tuple[str, bytes]]) -> None:
        while True:
            channel, frame = await outbox.get()
            try:
                await self._transport.write(
                    self._channels[channel], frame, with_response=True
                )
                _LOGGER.debug("Wrote %s to %s", frame.hex(), channel)
            except TransportError as err:
                _LOGGER.warning("Write to %s failed: %s", channel, err)
            except Exception:
                _LOGGER.exception("Unexpected error writing to %s", channel)
            finally:
                outbox.task_done()

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            _LOGGER.debug("Connection state %s -> %s", self._state, state)
            self._state = state


def _find_characteristic(characteristics: tuple[Any, ...], key: str) -> Any | None:
    for characteristic in characteristics:
        if key in str(characteristic.uuid).lower():
            return characteristic
    return None
