"""Parrot MiniDrone BLE protocol library."""

from __future__ import annotations

from .adapter import ConnectionState, MiniDroneAdapter, TelemetrySnapshot
from .config import DroneOptions
from .drone import Limits, MiniDrone
from .exceptions import (
    DroneConnectionError,
    FrameDecodeError,
    InvalidOptionsError,
    MiniDroneError,
    TransportError,
)
from .identifier import Advertisement, DeviceIdentifier
from .protocol import FlightParams, FlightStatus, MiniDroneProtocol
from .sequence import SequenceRegistry
from .transport import BleakTransport, BleTransport

__all__ = [
    "Advertisement",
    "BleTransport",
    "BleakTransport",
    "ConnectionState",
    "DeviceIdentifier",
    "DroneConnectionError",
    "DroneOptions",
    "FlightParams",
    "FlightStatus",
    "FrameDecodeError",
    "InvalidOptionsError",
    "Limits",
    "MiniDrone",
    "MiniDroneAdapter",
    "MiniDroneError",
    "MiniDroneProtocol",
    "SequenceRegistry",
    "TelemetrySnapshot",
    "TransportError",
]
