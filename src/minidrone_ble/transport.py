"""BLE transport used by the MiniDrone adapter."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from .const import CONNECTION_TIMEOUT, RSSI_SCAN_TIMEOUT
from .exceptions import TransportError
from .identifier import Advertisement, manufacturer_id_from_data

if TYPE_CHECKING:
    from bleak.backends.device import BLEDevice
    from bleak.backends.scanner import AdvertisementData

_LOGGER = logging.getLogger(__name__)

DiscoveryCallback = Callable[[Advertisement], None]
DisconnectCallback = Callable[[], None]
DataCallback = Callable[[bytes, bool], None]


class BleTransport(ABC):
    """What the adapter needs from a BLE stack.

    Characteristics are opaque handles exposing a ``uuid`` attribute.
    Callbacks may fire from any thread; the adapter serializes them.
    """

    @abstractmethod
    async def start_scanning(self, on_discover: DiscoveryCallback) -> None:
        """Start scanning, reporting each advertisement to on_discover."""

    @abstractmethod
    async def stop_scanning(self) -> None:
        """Stop scanning. Safe to call when not scanning."""

    @abstractmethod
    async def connect(
        self, advertisement: Advertisement, on_disconnect: DisconnectCallback
    ) -> None:
        """Connect to an advertised peripheral.

        Raises:
            TransportError: If the connection fails.
        """

    @abstractmethod
    async def discover_characteristics(self) -> list[Any]:
        """Return every GATT characteristic of the connected peripheral.

        Raises:
            TransportError: If discovery fails.
        """

    @abstractmethod
    async def write(
        self, characteristic: Any, data: bytes, *, with_response: bool
    ) -> None:
        """Write a frame to a characteristic."""

    @abstractmethod
    async def subscribe(self, characteristic: Any, on_data: DataCallback) -> None:
        """Enable notifications; on_data receives (data, is_notification)."""

    @abstractmethod
    async def read_rssi(self) -> int:
        """Return the signal strength of the connected peripheral in dBm.

        Raises:
            TransportError: If no reading is available.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Drop the connection. Safe to call when not connected."""


class BleakTransport(BleTransport):
    """BleTransport backed by bleak."""

    def __init__(
        self,
        connect_timeout: float = CONNECTION_TIMEOUT,
        rssi_timeout: float = RSSI_SCAN_TIMEOUT,
    ) -> None:
        self._connect_timeout = connect_timeout
        self._rssi_timeout = rssi_timeout
        self._scanner: BleakScanner | None = None
        self._client: BleakClient | None = None
        self._devices: dict[str, BLEDevice] = {}

    async def start_scanning(self, on_discover: DiscoveryCallback) -> None:
        def detection_callback(device: BLEDevice, adv_data: AdvertisementData) -> None:
            self._devices[device.address] = device
            on_discover(
                Advertisement(
                    name=adv_data.local_name or device.name,
                    manufacturer_id=manufacturer_id_from_data(
                        adv_data.manufacturer_data
                    ),
                    address=device.address,
                    rssi=adv_data.rssi,
                )
            )

        await self.stop_scanning()
        self._scanner = BleakScanner(detection_callback=detection_callback)
        try:
            await self._scanner.start()
        except BleakError as err:
            self._scanner = None
            raise TransportError(f"Could not start scanning: {err}") from err
        _LOGGER.debug("Scanning started")

    async def stop_scanning(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except BleakError as err:
            raise TransportError(f"Could not stop scanning: {err}") from err
        _LOGGER.debug("Scanning stopped")

    async def connect(
        self, advertisement: Advertisement, on_disconnect: DisconnectCallback
    ) -> None:
        if advertisement.address is None:
            raise TransportError("Advertisement has no address to connect to")
        device = self._devices.get(advertisement.address, advertisement.address)
        client = BleakClient(
            device,
            disconnected_callback=lambda _client: on_disconnect(),
            timeout=self._connect_timeout,
        )
        try:
            await client.connect()
        except (BleakError, TimeoutError) as err:
            raise TransportError(
                f"Could not connect to {advertisement.address}: {err}"
            ) from err
        self._client = client

    async def discover_characteristics(self) -> list[Any]:
        # bleak resolves the GATT table while connecting
        client = self._require_client()
        try:
            services = list(client.services)
        except BleakError as err:
            raise TransportError(f"Service discovery failed: {err}") from err
        return [char for service in services for char in service.characteristics]

    async def write(
        self, characteristic: Any, data: bytes, *, with_response: bool
    ) -> None:
        client = self._require_client()
        try:
            await client.write_gatt_char(characteristic, data, response=with_response)
        except BleakError as err:
            raise TransportError(
                f"Write to {characteristic.uuid} failed: {err}"
            ) from err

    async def subscribe(self, characteristic: Any, on_data: DataCallback) -> None:
        def notification_handler(_sender: Any, data: bytearray) -> None:
            on_data(bytes(data), True)

        client = self._require_client()
        try:
            await client.start_notify(characteristic, notification_handler)
        except BleakError as err:
            raise TransportError(
                f"Subscribe to {characteristic.uuid} failed: {err}"
            ) from err

    async def read_rssi(self) -> int:
        # No portable way to query RSSI of a live connection, so listen for
        # the peripheral's own advertisements instead.
        address = self._require_client().address
        readings: list[int] = []

        def match(device: BLEDevice, adv_data: AdvertisementData) -> bool:
            if device.address != address:
                return False
            readings.append(adv_data.rssi)
            return True

        try:
            await BleakScanner.find_device_by_filter(match, timeout=self._rssi_timeout)
        except BleakError as err:
            raise TransportError(f"RSSI scan failed: {err}") from err
        if not readings:
            raise TransportError(f"No advertisement seen from {address}")
        return readings[-1]

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except BleakError as err:
            raise TransportError(f"Disconnect failed: {err}") from err

    def _require_client(self) -> BleakClient:
        if self._client is None:
            raise TransportError("Not connected to a drone")
        return self._client
