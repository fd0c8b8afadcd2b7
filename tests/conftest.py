"""Fixtures for MiniDrone tests."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from minidrone_ble.config import DroneOptions

from tests.fakes import FakeTransport

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Transport that records writes instead of touching Bluetooth."""
    return FakeTransport()


@pytest.fixture
def options() -> DroneOptions:
    """Default options without the post-connect settle delay."""
    return DroneOptions.from_dict({"connected_settle_ms": 0})


@pytest.fixture
def mock_bleak_client() -> Generator[MagicMock]:
    """Mock BleakClient for testing without actual Bluetooth hardware."""
    with patch("minidrone_ble.transport.BleakClient") as mock_client:
        client_instance = MagicMock()
        client_instance.address = "E0:14:A0:3D:3D:C5"
        client_instance.is_connected = True
        client_instance.connect = AsyncMock(return_value=True)
        client_instance.disconnect = AsyncMock(return_value=True)
        client_instance.write_gatt_char = AsyncMock(return_value=None)
        client_instance.start_notify = AsyncMock(return_value=None)
        mock_client.return_value = client_instance
        yield mock_client


@pytest.fixture
def mock_bleak_scanner() -> Generator[MagicMock]:
    """Mock BleakScanner class."""
    with patch("minidrone_ble.transport.BleakScanner") as mock_scanner:
        scanner_instance = MagicMock()
        scanner_instance.start = AsyncMock(return_value=None)
        scanner_instance.stop = AsyncMock(return_value=None)
        mock_scanner.return_value = scanner_instance
        mock_scanner.find_device_by_filter = AsyncMock(return_value=None)
        yield mock_scanner
