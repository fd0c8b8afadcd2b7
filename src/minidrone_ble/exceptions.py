"""Exceptions raised by the MiniDrone BLE library."""

from __future__ import annotations


class MiniDroneError(Exception):
    """Base class for all MiniDrone errors."""


class TransportError(MiniDroneError):
    """The BLE stack failed to perform an operation."""


class DroneConnectionError(TransportError):
    """Connecting to a drone or discovering its characteristics failed.

    Fatal to the current connection attempt; the adapter does not retry.
    """


class FrameDecodeError(MiniDroneError):
    """A notification payload did not match the expected layout."""

    def __init__(self, message: str, data: bytes = b"") -> None:
        super().__init__(message)
        self.data = bytes(data)


class InvalidOptionsError(MiniDroneError, ValueError):
    """Drone options failed schema validation."""
