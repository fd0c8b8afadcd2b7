"""Recognize MiniDrone peripherals from their advertisements."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .const import DRONE_NAME_PREFIXES, MANUFACTURER_IDS

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True)
class Advertisement:
    """Transport-neutral view of a discovered peripheral."""

    name: str | None = None
    manufacturer_id: str | None = None
    address: str | None = None
    rssi: int | None = None


def manufacturer_id_from_data(manufacturer_data: Mapping[int, bytes]) -> str | None:
    """Rebuild the hex manufacturer id from parsed advertisement data.

    BLE stacks split manufacturer-specific data into the 16-bit company
    identifier and the remaining bytes. The drone ids are the hex form of
    the raw field, with the company identifier little-endian in front.

    Args:
        manufacturer_data: Company identifier to payload mapping.

    Returns:
        Lowercase hex string of the first entry, or None if there is none.
    """
    for company_id, payload in manufacturer_data.items():
        return (company_id.to_bytes(2, "little") + bytes(payload)).hex()
    return None


class DeviceIdentifier:
    """Decide whether an advertisement belongs to a MiniDrone.

    A peripheral matches if any of these hold:
    - its name equals the configured drone filter
    - its name starts with a known MiniDrone prefix
    - its manufacturer id is a known MiniDrone id

    The manufacturer check alone is enough, even for an unrelated name.
    """

    def __init__(self, drone_filter: str = "") -> None:
        self._drone_filter = drone_filter

    @property
    def drone_filter(self) -> str:
        """Exact peripheral name to match, empty when unset."""
        return self._drone_filter

    def matches(self, advertisement: Advertisement | None) -> bool:
        """Return True if the advertisement looks like a MiniDrone."""
        if advertisement is None:
            return False

        name = advertisement.name
        if name and self._drone_filter and name == self._drone_filter:
            return True
        if name and name.startswith(DRONE_NAME_PREFIXES):
            return True

        manufacturer_id = advertisement.manufacturer_id
        return bool(manufacturer_id) and manufacturer_id.lower() in MANUFACTURER_IDS
