"""Tests for the MiniDrone flight controller."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from unittest.mock import patch

import pytest

from minidrone_ble.adapter import ConnectionState
from minidrone_ble.config import DroneOptions
from minidrone_ble.const import (
    CHAR_BATTERY,
    CHAR_COMMAND,
    CHAR_EMERGENCY,
    CHAR_FLIGHT_PARAMS,
    CHAR_FLIGHT_STATUS,
    EVENT_BATTERY_STATUS_CHANGE,
    EVENT_FLIGHT_STATUS_CHANGE,
)
from minidrone_ble.drone import Limits, MiniDrone
from minidrone_ble.exceptions import InvalidOptionsError
from minidrone_ble.protocol import FlightParams, FlightStatus

from tests.fakes import FakeTransport, wait_for_event

TAKEOFF_METHOD = 0x01
LAND_METHOD = 0x03


def _status_frame(index: int) -> bytes:
    return bytes([0x04, 0x0A, 0x02, 0x03, 0x01, 0x00, index, 0x00, 0x00, 0x00])


async def _wait_for_frame(
    transport: FakeTransport,
    key: str,
    predicate: Callable[[bytes], bool],
    timeout: float = 1.0,
) -> bytes:
    async with asyncio.timeout(timeout):
        while True:
            for frame in transport.frames(key):
                if predicate(frame):
                    return frame
            await asyncio.sleep(0.01)


async def _wait_for_state(drone: MiniDrone, state: ConnectionState) -> None:
    async with asyncio.timeout(1):
        while drone.adapter.state is not state:
            await asyncio.sleep(0.01)


async def _connected_drone(
    transport: FakeTransport, options: DroneOptions, **overrides
) -> MiniDrone:
    drone = MiniDrone(transport, options, **overrides)
    await drone.connect()
    transport.advertise()
    await drone.wait_until_connected(timeout=1)
    await drone.adapter.flush()
    return drone


# --- construction ---


def test_defaults(fake_transport) -> None:
    """A new controller has default options, limits and neutral params."""
    drone = MiniDrone(fake_transport)

    assert drone.options == DroneOptions()
    assert drone.flight_params == FlightParams()
    assert drone.limits == Limits(
        max_altitude=2, max_tilt=40, max_vertical_speed=1, max_rotation_speed=100
    )
    assert drone.flight_status is None
    assert drone.get_battery_level() is None
    assert drone.is_flying() is False


def test_options_mapping_and_overrides(fake_transport) -> None:
    """Mappings are validated and keyword overrides win."""
    drone = MiniDrone(
        fake_transport, {"maxTilt": 20, "drone_filter": "a"}, drone_filter="b"
    )

    assert drone.options.max_tilt == 20
    assert drone.options.drone_filter == "b"
    assert drone.limits.max_tilt == 20
    assert drone.adapter.identifier.drone_filter == "b"


def test_options_instance_with_overrides(fake_transport, options) -> None:
    """Overrides apply on top of a DroneOptions instance."""
    drone = MiniDrone(fake_transport, options, max_altitude=5)

    assert drone.options.max_altitude == 5
    assert drone.options.connected_settle_ms == 0


def test_invalid_options(fake_transport) -> None:
    """Invalid options fail at construction."""
    with pytest.raises(InvalidOptionsError):
        MiniDrone(fake_transport, max_tilt=500)


def test_set_flight_params_merges(fake_transport) -> None:
    """Only the given axes change."""
    drone = MiniDrone(fake_transport)

    drone.set_flight_params(roll=10, pitch=-5)
    params = drone.set_flight_params(yaw=30)

    assert params == FlightParams(roll=10, pitch=-5, yaw=30, altitude=0)
    assert drone.flight_params == params
    with pytest.raises(TypeError):
        drone.set_flight_params(throttle=1)


def test_set_flight_params_rejects_non_int(fake_transport) -> None:
    """A non-int axis is refused and the commanded params stay as they were."""
    drone = MiniDrone(fake_transport)
    drone.set_flight_params(roll=10)

    with pytest.raises(TypeError, match="roll must be an int"):
        drone.set_flight_params(roll=50.0)

    assert drone.flight_params == FlightParams(roll=10)


def test_commands_without_connection(fake_transport) -> None:
    """Commands before connecting write nothing."""
    drone = MiniDrone(fake_transport)

    drone.takeoff()
    drone.land()
    drone.emergency()
    drone.animate("flip_left")

    assert fake_transport.writes == []


def test_limits_recorded_while_disconnected(fake_transport) -> None:
    """Limit setters remember the value even without a drone."""
    drone = MiniDrone(fake_transport)

    drone.set_max_altitude(4)
    drone.set_max_tilt(15)
    drone.set_max_vertical_speed(2)
    drone.set_max_rotation_speed(200)

    assert drone.limits == Limits(4, 15, 2, 200)
    assert fake_transport.writes == []


# --- connection ---


@pytest.mark.asyncio
async def test_limits_pushed_on_connect(fake_transport, options) -> None:
    """Every connection starts by sending the flight envelope."""
    drone = MiniDrone(fake_transport, options)
    drone.set_max_tilt(15)

    await drone.connect()
    fake_transport.advertise()
    await drone.wait_until_connected(timeout=1)
    await drone.adapter.flush()

    assert fake_transport.frames(CHAR_COMMAND) == [
        bytes([0x02, 0x01, 0x02, 0x08, 0x00, 0x00, 2, 0x00]),
        bytes([0x02, 0x02, 0x02, 0x08, 0x01, 0x00, 15, 0x00]),
        bytes([0x02, 0x03, 0x02, 0x01, 0x00, 0x00, 1, 0x00]),
        bytes([0x02, 0x04, 0x02, 0x01, 0x01, 0x00, 100, 0x00]),
    ]
    await drone.stop()


@pytest.mark.asyncio
async def test_limits_pushed_again_after_reconnect(fake_transport, options) -> None:
    """A reconnect sends the limits again with fresh sequence numbers."""
    drone = await _connected_drone(fake_transport, options)

    fake_transport.drop()
    await _wait_for_state(drone, ConnectionState.SCANNING)
    fake_transport.advertise()
    await drone.wait_until_connected(timeout=1)
    await drone.adapter.flush()

    frames = fake_transport.frames(CHAR_COMMAND)
    assert len(frames) == 8
    assert [frame[1] for frame in frames] == list(range(1, 9))
    await drone.stop()


@pytest.mark.asyncio
async def test_auto_connect_starts_scanning(fake_transport, options) -> None:
    """With auto_connect, entering the context starts pairing."""
    async with MiniDrone(fake_transport, options, auto_connect=True) as drone:
        assert drone.adapter.state is ConnectionState.SCANNING
        assert fake_transport.scan_starts == 1

    assert drone.adapter.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_context_without_auto_connect(fake_transport, options) -> None:
    """Without auto_connect, nothing is scanned."""
    async with MiniDrone(fake_transport, options) as drone:
        assert drone.adapter.state is ConnectionState.DISCONNECTED

    assert fake_transport.scan_starts == 0


# --- flight params stream ---


@pytest.mark.asyncio
async def test_update_loop_streams_params(fake_transport, options) -> None:
    """The update loop sends the commanded params while connected."""
    drone = MiniDrone(fake_transport, options, update_interval_ms=10)
    await drone.start()
    await fake_transport.pair(drone.adapter)

    drone.set_flight_params(roll=10, yaw=-20)
    frame = await _wait_for_frame(
        fake_transport, CHAR_FLIGHT_PARAMS, lambda f: f[7] == 10
    )

    assert len(frame) == 19
    assert frame[9] == 0xEC
    await drone.stop()


@pytest.mark.asyncio
async def test_update_loop_idle_when_disconnected(
    fake_transport, options, caplog
) -> None:
    """No writes or warnings from the loop before a drone is connected."""
    drone = MiniDrone(fake_transport, options, update_interval_ms=5)
    await drone.start()

    await asyncio.sleep(0.05)

    assert fake_transport.writes == []
    assert "connected to a drone" not in caplog.text
    await drone.stop()


@pytest.mark.asyncio
async def test_update_loop_survives_send_error(fake_transport, options, caplog) -> None:
    """A failing send is logged and the loop keeps streaming."""
    drone = MiniDrone(fake_transport, options, update_interval_ms=10)
    await drone.start()
    await fake_transport.pair(drone.adapter)

    with patch.object(
        drone.adapter, "write_flight_params", side_effect=RuntimeError("boom")
    ):
        await asyncio.sleep(0.05)

    assert "Sending flight params" in caplog.text
    assert not drone._update_task.done()

    drone.set_flight_params(roll=20)
    await _wait_for_frame(fake_transport, CHAR_FLIGHT_PARAMS, lambda f: f[7] == 20)
    await drone.stop()


# --- commands ---


@pytest.mark.asyncio
async def test_takeoff_or_land(fake_transport, options) -> None:
    """Take off when landed or unknown, land when airborne."""
    drone = await _connected_drone(fake_transport, options)

    def command_methods() -> list[int]:
        # skip the four limit frames sent on connect
        return [f[4] for f in fake_transport.frames(CHAR_COMMAND)[4:]]

    # no status yet
    drone.takeoff_or_land()
    await drone.adapter.flush()
    assert command_methods() == [TAKEOFF_METHOD]

    await wait_for_event(
        drone,
        EVENT_FLIGHT_STATUS_CHANGE,
        lambda: fake_transport.notify(CHAR_FLIGHT_STATUS, _status_frame(2)),
    )
    assert drone.flight_status is FlightStatus.HOVERING
    assert drone.is_flying()
    drone.takeoff_or_land()
    await drone.adapter.flush()
    assert command_methods() == [TAKEOFF_METHOD, LAND_METHOD]

    await wait_for_event(
        drone,
        EVENT_FLIGHT_STATUS_CHANGE,
        lambda: fake_transport.notify(CHAR_FLIGHT_STATUS, _status_frame(0)),
    )
    assert not drone.is_flying()
    drone.takeoff_or_land()
    await drone.adapter.flush()
    assert command_methods() == [TAKEOFF_METHOD, LAND_METHOD, TAKEOFF_METHOD]
    await drone.stop()


@pytest.mark.asyncio
async def test_takeoff_after_reconnect_ignores_old_status(
    fake_transport, options
) -> None:
    """A status from before a dropped link does not count on the next link."""
    drone = await _connected_drone(fake_transport, options)
    await wait_for_event(
        drone,
        EVENT_FLIGHT_STATUS_CHANGE,
        lambda: fake_transport.notify(CHAR_FLIGHT_STATUS, _status_frame(2)),
    )
    assert drone.is_flying()

    fake_transport.drop()
    await _wait_for_state(drone, ConnectionState.SCANNING)
    fake_transport.advertise()
    await drone.wait_until_connected(timeout=1)
    await drone.adapter.flush()

    assert drone.flight_status is None
    assert not drone.is_flying()
    drone.takeoff_or_land()
    await drone.adapter.flush()

    # four limit frames per connection come first
    methods = [f[4] for f in fake_transport.frames(CHAR_COMMAND)[8:]]
    assert methods == [TAKEOFF_METHOD]
    await drone.stop()


@pytest.mark.asyncio
async def test_emergency_and_animation(fake_transport, options) -> None:
    """Emergency uses its own channel; flips go to the command channel."""
    drone = await _connected_drone(fake_transport, options)

    drone.emergency()
    drone.animate("flip_right")
    drone.animate("sideways")
    drone.take_picture()
    await drone.adapter.flush()

    assert fake_transport.frames(CHAR_EMERGENCY) == [
        bytes([0x02, 0x01, 0x02, 0x00, 0x04, 0x00])
    ]
    assert fake_transport.frames(CHAR_COMMAND)[4:] == [
        bytes([0x02, 0x05, 0x02, 0x04, 0x00, 0x00, 0x02, 0x00, 0x00, 0x00]),
        bytes([0x02, 0x06, 0x02, 0x06, 0x01, 0x00]),
    ]
    await drone.stop()


@pytest.mark.asyncio
async def test_battery_level(fake_transport, options) -> None:
    """The battery level follows notifications."""
    drone = await _connected_drone(fake_transport, options)

    await wait_for_event(
        drone,
        EVENT_BATTERY_STATUS_CHANGE,
        lambda: fake_transport.notify(CHAR_BATTERY, bytes([0x04, 0x0B, 0x02, 42])),
    )

    assert drone.get_battery_level() == 42
    await drone.stop()


@pytest.mark.asyncio
async def test_request_rssi(fake_transport, options) -> None:
    """RSSI is read through the transport."""
    drone = await _connected_drone(fake_transport, options)
    fake_transport.rssi = -71

    assert await drone.request_rssi() == -71
    await drone.stop()
