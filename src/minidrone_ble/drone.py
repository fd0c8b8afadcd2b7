"""High level MiniDrone flight controller."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from types import TracebackType
from typing import Any

from .adapter import MiniDroneAdapter
from .config import DroneOptions
from .const import EVENT_CONNECTED
from .events import Listener
from .protocol import FlightParams, FlightStatus
from .transport import BleakTransport, BleTransport

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Limits:
    """Flight envelope pushed to the drone on every connection."""

    max_altitude: int
    max_tilt: int
    max_vertical_speed: int
    max_rotation_speed: int


class MiniDrone:
    """Command API for a Parrot MiniDrone.

    Holds the commanded roll/pitch/yaw/altitude and streams them to the
    drone every update_interval_ms while connected. One-shot commands
    (takeoff, land, flips, ...) are passed straight to the adapter and are
    ignored with a warning while no drone is connected.

    Usage:
        async with MiniDrone(auto_connect=True) as drone:
            await drone.wait_until_connected()
            drone.takeoff()
    """

    def __init__(
        self,
        transport: BleTransport | None = None,
        options: DroneOptions | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> None:
        """Initialize the controller.

        Args:
            transport: BLE transport, a BleakTransport when omitted.
            options: DroneOptions or a mapping of option keys.
            **overrides: Individual option keys, applied over options.

        Raises:
            InvalidOptionsError: If an option fails validation.
        """
        if isinstance(options, DroneOptions):
            self._options = options.merge(**overrides) if overrides else options
        else:
            self._options = DroneOptions.from_dict({**(options or {}), **overrides})

        self._adapter = MiniDroneAdapter(transport or BleakTransport(), self._options)
        self._flight_params = FlightParams()
        self._limits = Limits(
            max_altitude=self._options.max_altitude,
            max_tilt=self._options.max_tilt,
            max_vertical_speed=self._options.max_vertical_speed,
            max_rotation_speed=self._options.max_rotation_speed,
        )
        self._update_task: asyncio.Task[None] | None = None
        self._adapter.on(EVENT_CONNECTED, self._push_limits)

    async def __aenter__(self) -> MiniDrone:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    @property
    def options(self) -> DroneOptions:
        return self._options

    @property
    def adapter(self) -> MiniDroneAdapter:
        return self._adapter

    @property
    def flight_params(self) -> FlightParams:
        """Currently commanded roll/pitch/yaw/altitude."""
        return self._flight_params

    @property
    def limits(self) -> Limits:
        """Last limits set on this controller."""
        return self._limits

    @property
    def flight_status(self) -> FlightStatus | None:
        """Last flight status reported by the drone."""
        return self._adapter.telemetry.flight_status

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register an event listener; returns a callable removing it."""
        return self._adapter.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        """Remove an event listener."""
        self._adapter.off(event, listener)

    async def start(self) -> None:
        """Start the flight params stream, and connect if auto_connect is set."""
        if self._update_task is None or self._update_task.done():
            self._update_task = asyncio.get_running_loop().create_task(
                self._run_update_loop(), name="minidrone-update-loop"
            )
        if self._options.auto_connect:
            await self.connect()

    async def stop(self) -> None:
        """Stop the flight params stream and drop the connection."""
        task, self._update_task = self._update_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._adapter.close()

    async def connect(self) -> None:
        """Start pairing with a drone. Does nothing if already pairing."""
        await self._adapter.connect()

    async def wait_until_connected(self, timeout: float | None = None) -> None:
        """Wait until a drone is connected.

        Raises:
            DroneConnectionError: If the connection attempt failed.
            TimeoutError: If timeout elapsed first.
        """
        await self._adapter.wait_until_connected(timeout)

    def set_flight_params(self, **params: int) -> FlightParams:
        """Update some of roll, pitch, yaw and altitude (-100 to 100).

        Axes not given keep their current value.
        """
        self._flight_params = self._flight_params.merge(**params)
        return self._flight_params

    def is_flying(self) -> bool:
        """Whether the drone reported an airborne status on this connection.

        The adapter forgets the status when the connection drops.
        """
        status = self.flight_status
        return status is not None and status.is_airborne

    def takeoff_or_land(self) -> None:
        """Land when flying, take off otherwise."""
        if self.is_flying():
            self.land()
        else:
            self.takeoff()

    def takeoff(self) -> None:
        self._adapter.write_takeoff()

    def land(self) -> None:
        self._adapter.write_land()

    def trim(self) -> None:
        """Flat trim, run while the drone sits on level ground."""
        self._adapter.write_trim()

    def take_picture(self) -> None:
        self._adapter.write_take_picture()

    def emergency(self) -> None:
        """Cut the motors immediately."""
        self._adapter.write_emergency()

    def animate(self, direction: str) -> None:
        """Flip towards flip_front, flip_back, flip_right or flip_left.

        Unknown directions are ignored.
        """
        self._adapter.write_animation(direction)

    def set_max_altitude(self, altitude: int) -> None:
        self._limits = replace(self._limits, max_altitude=altitude)
        self._adapter.write_max_altitude(altitude)

    def set_max_tilt(self, tilt: int) -> None:
        self._limits = replace(self._limits, max_tilt=tilt)
        self._adapter.write_max_tilt(tilt)

    def set_max_vertical_speed(self, speed: int) -> None:
        self._limits = replace(self._limits, max_vertical_speed=speed)
        self._adapter.write_max_vertical_speed(speed)

    def set_max_rotation_speed(self, speed: int) -> None:
        self._limits = replace(self._limits, max_rotation_speed=speed)
        self._adapter.write_max_rotation_speed(speed)

    def get_battery_level(self) -> int | None:
        """Last reported battery percentage, None until the first reading."""
        return self._adapter.telemetry.battery_level

    async def request_rssi(self) -> int | None:
        """Read the signal strength in dBm, None if unavailable."""
        return await self._adapter.request_rssi()

    def _push_limits(self) -> None:
        limits = self._limits
        _LOGGER.debug("Pushing limits %s", limits)
        self.set_max_altitude(limits.max_altitude)
        self.set_max_tilt(limits.max_tilt)
        self.set_max_vertical_speed(limits.max_vertical_speed)
        self.set_max_rotation_speed(limits.max_rotation_speed)

    def _tick(self) -> None:
        if not self._adapter.is_connected:
            return
        try:
            self._adapter.write_flight_params(self._flight_params)
        except Exception:
            _LOGGER.exception("Sending flight params %s failed", self._flight_params)

    async def _run_update_loop(self) -> None:
        interval = self._options.update_interval
        while True:
            self._tick()
            await asyncio.sleep(interval)
