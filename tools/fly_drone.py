#!/usr/bin/env python3
"""Bench script for Parrot MiniDrone BLE communication.

Usage:
    # Scan for drones
    uv run python tools/fly_drone.py scan

    # Connect and print battery level and signal strength
    uv run python tools/fly_drone.py battery

    # Take off, hover a few seconds, land
    uv run python tools/fly_drone.py hop

    # Only pair with a specific drone
    uv run python tools/fly_drone.py battery Travis_123456

Keep the drone on a flat surface with clear space above it before hopping.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from bleak import BleakScanner

from minidrone_ble import DeviceIdentifier, MiniDrone
from minidrone_ble.const import EVENT_FLIGHT_STATUS_CHANGE, SCAN_TIMEOUT
from minidrone_ble.identifier import Advertisement, manufacturer_id_from_data

HOVER_SECONDS = 3.0
CONNECT_TIMEOUT = 30.0


def _drone_filter() -> str:
    return sys.argv[2] if len(sys.argv) > 2 else ""


async def scan_drones(timeout: float = SCAN_TIMEOUT) -> list[Advertisement]:
    """Scan and print every advertisement, marking the drones."""
    print(f"Scanning for BLE devices ({timeout:.0f} seconds)...")
    devices = await BleakScanner.discover(timeout=timeout, return_adv=True)
    identifier = DeviceIdentifier(_drone_filter())

    print(f"\nFound {len(devices)} devices:\n")
    drones = []
    for device, adv_data in devices.values():
        advertisement = Advertisement(
            name=adv_data.local_name or device.name,
            manufacturer_id=manufacturer_id_from_data(adv_data.manufacturer_data),
            address=device.address,
            rssi=adv_data.rssi,
        )
        is_drone = identifier.matches(advertisement)
        marker = "DRONE" if is_drone else "     "
        name = advertisement.name or "Unknown"
        print(f"{marker} {name:20} {device.address}  RSSI: {adv_data.rssi}")
        if is_drone:
            print(f"       Manufacturer: {advertisement.manufacturer_id}")
            drones.append(advertisement)
    return drones


async def read_battery(drone: MiniDrone) -> None:
    """Connect, then print battery level and RSSI."""
    print("Connecting...")
    await drone.connect()
    await drone.wait_until_connected(CONNECT_TIMEOUT)
    print(f"Connected to {drone.adapter.peripheral.name}")

    # The battery notification arrives shortly after subscribing
    await asyncio.sleep(1.0)
    level = drone.get_battery_level()
    print(f"Battery: {'unknown' if level is None else f'{level}%'}")

    rssi = await drone.request_rssi()
    print(f"RSSI: {'unknown' if rssi is None else f'{rssi} dBm'}")


async def hop(drone: MiniDrone, hover_seconds: float = HOVER_SECONDS) -> None:
    """Take off, hover, then land."""
    drone.on(EVENT_FLIGHT_STATUS_CHANGE, lambda status: print(f"Status: {status}"))

    print("Connecting...")
    await drone.connect()
    await drone.wait_until_connected(CONNECT_TIMEOUT)

    drone.trim()
    drone.takeoff()
    print(f"Hovering for {hover_seconds:.0f} seconds...")
    await asyncio.sleep(hover_seconds)
    drone.land()
    await drone.adapter.flush()
    await asyncio.sleep(1.0)


async def _cmd_battery() -> None:
    async with MiniDrone(drone_filter=_drone_filter()) as drone:
        await read_battery(drone)


async def _cmd_hop() -> None:
    async with MiniDrone(drone_filter=_drone_filter()) as drone:
        await hop(drone)


async def main() -> None:
    """Main entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        return

    commands = {
        "scan": scan_drones,
        "battery": _cmd_battery,
        "hop": _cmd_hop,
    }

    cmd = sys.argv[1].lower()
    handler = commands.get(cmd)
    if handler:
        await handler()
    else:
        print(f"Unknown command: {cmd}")
        print(__doc__)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
