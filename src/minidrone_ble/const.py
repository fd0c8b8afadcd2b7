"""BLE constants for the Parrot MiniDrone protocol."""

from __future__ import annotations

from typing import Final

# GATT characteristic keys
# Characteristics are matched by the short fragment inside their full UUID,
# e.g. 9a66fa0a-0800-9191-11e4-012d1540cb8e
CHAR_FLIGHT_PARAMS: Final = "fa0a"  # WRITE, roll/pitch/yaw/altitude stream
CHAR_COMMAND: Final = "fa0b"  # WRITE, general commands
CHAR_EMERGENCY: Final = "fa0c"  # WRITE, emergency only
CHAR_FLIGHT_STATUS: Final = "fb0e"  # NOTIFY
CHAR_BATTERY: Final = "fb0f"  # NOTIFY

# Every notifying characteristic the drone expects a subscription on
SUBSCRIBED_CHARACTERISTICS: Final = (
    CHAR_BATTERY,
    CHAR_FLIGHT_STATUS,
    "fb1b",
    "fb1c",
    "fd22",
    "fd23",
    "fd24",
    "fd52",
    "fd53",
    "fd54",
)

# Writable channels, each with its own sequence counter
SEQUENCED_CHANNELS: Final = (CHAR_FLIGHT_PARAMS, CHAR_COMMAND, CHAR_EMERGENCY)

# Frame header
# https://github.com/Parrot-Developers/libARCommands
DATA_TYPE_DATA: Final = 0x02
DEVICE_TYPE_MINIDRONE: Final = 0x02

# Command classes
CLASS_PILOTING: Final = 0x00
CLASS_SPEED_SETTINGS: Final = 0x01
CLASS_ANIMATION: Final = 0x04
CLASS_MEDIA_RECORD: Final = 0x06
CLASS_PILOTING_SETTINGS: Final = 0x08

# Command methods (scoped by class)
METHOD_TRIM: Final = 0x00
METHOD_TAKEOFF: Final = 0x01
METHOD_LAND: Final = 0x03
METHOD_EMERGENCY: Final = 0x04
METHOD_PICTURE: Final = 0x01
METHOD_FLIP: Final = 0x00
METHOD_MAX_ALTITUDE: Final = 0x00
METHOD_MAX_TILT: Final = 0x01
METHOD_MAX_VERTICAL_SPEED: Final = 0x00
METHOD_MAX_ROTATION_SPEED: Final = 0x01

# Flip directions (payload byte of the animation command)
FLIP_DIRECTIONS: Final[dict[str, int]] = {
    "flip_front": 0x00,
    "flip_back": 0x01,
    "flip_right": 0x02,
    "flip_left": 0x03,
}

FLIGHT_PARAMS_FRAME_LENGTH: Final = 19

# Notification layout
STATUS_FRAME_MARKER_OFFSET: Final = 2
STATUS_FRAME_MARKER: Final = 2
STATUS_INDEX_OFFSET: Final = 6

# Drone identification
DRONE_NAME_PREFIXES: Final = ("RS_", "Mars_", "Travis_", "Maclan_", "NewZ_")
MANUFACTURER_IDS: Final = frozenset(
    {"4300cf1900090100", "4300cf1909090100", "4300cf1907090100"}
)

# Emitted events
EVENT_CONNECTED: Final = "connected"
EVENT_DISCONNECTED: Final = "disconnected"
EVENT_FLIGHT_PARAM_CHANGE: Final = "flight_param_change"
EVENT_FLIGHT_STATUS_CHANGE: Final = "flight_status_change"
EVENT_BATTERY_STATUS_CHANGE: Final = "battery_status_change"
EVENT_MAX_ALTITUDE_CHANGE: Final = "max_altitude_change"
EVENT_MAX_TILT_CHANGE: Final = "max_tilt_change"
EVENT_MAX_VERTICAL_SPEED_CHANGE: Final = "max_vertical_speed_change"
EVENT_MAX_ROTATION_SPEED_CHANGE: Final = "max_rotation_speed_change"
EVENT_RSSI_UPDATE: Final = "rssi_update"

# Configuration keys
CONF_UPDATE_INTERVAL_MS: Final = "update_interval_ms"
CONF_AUTO_CONNECT: Final = "auto_connect"
CONF_DRONE_FILTER: Final = "drone_filter"
CONF_MAX_ALTITUDE: Final = "max_altitude"
CONF_MAX_TILT: Final = "max_tilt"
CONF_MAX_VERTICAL_SPEED: Final = "max_vertical_speed"
CONF_MAX_ROTATION_SPEED: Final = "max_rotation_speed"
CONF_MIN_PARAMS_INTERVAL_MS: Final = "min_params_interval_ms"
CONF_CONNECTED_SETTLE_MS: Final = "connected_settle_ms"

# Default values
DEFAULT_UPDATE_INTERVAL_MS: Final = 100
DEFAULT_MIN_PARAMS_INTERVAL_MS: Final = 300
DEFAULT_CONNECTED_SETTLE_MS: Final = 200
DEFAULT_MAX_ALTITUDE: Final = 2  # meters
DEFAULT_MAX_TILT: Final = 40  # 0-100 scale
DEFAULT_MAX_VERTICAL_SPEED: Final = 1  # m/s
DEFAULT_MAX_ROTATION_SPEED: Final = 100  # degrees/s

# Timeouts
CONNECTION_TIMEOUT: Final = 10.0  # seconds
SCAN_TIMEOUT: Final = 10.0  # seconds
RSSI_SCAN_TIMEOUT: Final = 2.0  # seconds
