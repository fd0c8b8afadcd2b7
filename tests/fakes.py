"""In-memory BLE transport and helpers for adapter tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from minidrone_ble.const import SEQUENCED_CHANNELS, SUBSCRIBED_CHARACTERISTICS
from minidrone_ble.identifier import Advertisement
from minidrone_ble.transport import BleTransport, DataCallback

DRONE_NAME = "Travis_1234567890"
DRONE_ADDRESS = "E0:14:A0:3D:3D:C5"
MANUFACTURER_ID = "4300cf1900090100"


def char_uuid(key: str) -> str:
    """Full UUID of a MiniDrone characteristic key."""
    return f"9a66{key}-0800-9191-11e4-012d1540cb8e"


@dataclass(frozen=True)
class FakeCharacteristic:
    uuid: str

    @property
    def key(self) -> str:
        return self.uuid[4:8]


class FakeTransport(BleTransport):
    """Records every call; tests drive discovery, data and disconnects."""

    def __init__(self, keys: tuple[str, ...] | None = None) -> None:
        if keys is None:
            keys = (*SEQUENCED_CHANNELS, *SUBSCRIBED_CHARACTERISTICS)
        self.characteristics = [FakeCharacteristic(char_uuid(key)) for key in keys]
        self.scan_starts = 0
        self.scan_stops = 0
        self.connects: list[Advertisement] = []
        self.disconnects = 0
        self.writes: list[tuple[str, bytes, bool]] = []
        self.subscriptions: dict[str, DataCallback] = {}
        self.on_discover: Callable[[Advertisement], None] | None = None
        self.on_disconnect: Callable[[], None] | None = None
        self.scan_error: Exception | None = None
        self.connect_error: Exception | None = None
        self.discover_error: Exception | None = None
        self.write_error: Exception | None = None
        self.rssi: int = -58
        self.rssi_error: Exception | None = None

    async def start_scanning(
        self, on_discover: Callable[[Advertisement], None]
    ) -> None:
        if self.scan_error is not None:
            raise self.scan_error
        self.scan_starts += 1
        self.on_discover = on_discover

    async def stop_scanning(self) -> None:
        self.scan_stops += 1

    async def connect(
        self, advertisement: Advertisement, on_disconnect: Callable[[], None]
    ) -> None:
        self.connects.append(advertisement)
        if self.connect_error is not None:
            raise self.connect_error
        self.on_disconnect = on_disconnect

    async def discover_characteristics(self) -> list[Any]:
        if self.discover_error is not None:
            raise self.discover_error
        return list(self.characteristics)

    async def write(
        self, characteristic: Any, data: bytes, *, with_response: bool
    ) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((characteristic.key, bytes(data), with_response))

    async def subscribe(self, characteristic: Any, on_data: DataCallback) -> None:
        self.subscriptions[characteristic.key] = on_data

    async def read_rssi(self) -> int:
        if self.rssi_error is not None:
            raise self.rssi_error
        return self.rssi

    async def disconnect(self) -> None:
        self.disconnects += 1

    # --- test drivers ---

    def advertise(
        self,
        name: str | None = DRONE_NAME,
        manufacturer_id: str | None = MANUFACTURER_ID,
        address: str = DRONE_ADDRESS,
    ) -> None:
        assert self.on_discover is not None, "not scanning"
        self.on_discover(Advertisement(name, manufacturer_id, address, -60))

    def notify(self, key: str, data: bytes, is_notification: bool = True) -> None:
        self.subscriptions[key](data, is_notification)

    def drop(self) -> None:
        assert self.on_disconnect is not None, "not connected"
        self.on_disconnect()

    def frames(self, key: str) -> list[bytes]:
        """Frames written to one characteristic, in wire order."""
        return [data for written_key, data, _ in self.writes if written_key == key]

    async def pair(self, adapter: Any, timeout: float = 1.0) -> None:
        """Run a full connect of the adapter against this transport."""
        await adapter.connect()
        self.advertise()
        await adapter.wait_until_connected(timeout)


async def wait_for_event(
    emitter: Any, event: str, trigger: Callable[[], None], timeout: float = 1.0
) -> tuple[Any, ...]:
    """Run trigger and return the arguments of the next emitted event."""
    future: asyncio.Future[tuple[Any, ...]] = asyncio.get_running_loop().create_future()

    def listener(*args: Any) -> None:
        if not future.done():
            future.set_result(args)

    remove = emitter.on(event, listener)
    try:
        trigger()
        return await asyncio.wait_for(future, timeout)
    finally:
        remove()
