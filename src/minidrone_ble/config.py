"""Options for the MiniDrone adapter and flight controller."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Final

import voluptuous as vol

from .const import (
    CONF_AUTO_CONNECT,
    CONF_CONNECTED_SETTLE_MS,
    CONF_DRONE_FILTER,
    CONF_MAX_ALTITUDE,
    CONF_MAX_ROTATION_SPEED,
    CONF_MAX_TILT,
    CONF_MAX_VERTICAL_SPEED,
    CONF_MIN_PARAMS_INTERVAL_MS,
    CONF_UPDATE_INTERVAL_MS,
    DEFAULT_CONNECTED_SETTLE_MS,
    DEFAULT_MAX_ALTITUDE,
    DEFAULT_MAX_ROTATION_SPEED,
    DEFAULT_MAX_TILT,
    DEFAULT_MAX_VERTICAL_SPEED,
    DEFAULT_MIN_PARAMS_INTERVAL_MS,
    DEFAULT_UPDATE_INTERVAL_MS,
)
from .exceptions import InvalidOptionsError

if TYPE_CHECKING:
    from collections.abc import Mapping

_BYTE = vol.All(vol.Coerce(int), vol.Range(min=0, max=255))
_MILLIS = vol.All(vol.Coerce(int), vol.Range(min=0))

OPTIONS_SCHEMA: Final = vol.Schema(
    {
        vol.Optional(
            CONF_UPDATE_INTERVAL_MS, default=DEFAULT_UPDATE_INTERVAL_MS
        ): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Optional(CONF_AUTO_CONNECT, default=False): bool,
        vol.Optional(CONF_DRONE_FILTER, default=""): str,
        vol.Optional(CONF_MAX_ALTITUDE, default=DEFAULT_MAX_ALTITUDE): _BYTE,
        vol.Optional(CONF_MAX_TILT, default=DEFAULT_MAX_TILT): vol.All(
            vol.Coerce(int), vol.Range(min=0, max=100)
        ),
        vol.Optional(
            CONF_MAX_VERTICAL_SPEED, default=DEFAULT_MAX_VERTICAL_SPEED
        ): _BYTE,
        vol.Optional(
            CONF_MAX_ROTATION_SPEED, default=DEFAULT_MAX_ROTATION_SPEED
        ): _BYTE,
        vol.Optional(
            CONF_MIN_PARAMS_INTERVAL_MS, default=DEFAULT_MIN_PARAMS_INTERVAL_MS
        ): _MILLIS,
        vol.Optional(
            CONF_CONNECTED_SETTLE_MS, default=DEFAULT_CONNECTED_SETTLE_MS
        ): _MILLIS,
    }
)

# camelCase spellings accepted alongside the snake_case keys
_KEY_ALIASES: Final = {
    "updateIntervalMs": CONF_UPDATE_INTERVAL_MS,
    "autoConnect": CONF_AUTO_CONNECT,
    "droneFilter": CONF_DRONE_FILTER,
    "maxAltitude": CONF_MAX_ALTITUDE,
    "maxTilt": CONF_MAX_TILT,
    "maxVerticalSpeed": CONF_MAX_VERTICAL_SPEED,
    "maxRotationSpeed": CONF_MAX_ROTATION_SPEED,
}


@dataclass(frozen=True)
class DroneOptions:
    """Validated drone options. Build with from_dict() to apply defaults."""

    update_interval_ms: int = DEFAULT_UPDATE_INTERVAL_MS
    auto_connect: bool = False
    drone_filter: str = ""
    max_altitude: int = DEFAULT_MAX_ALTITUDE
    max_tilt: int = DEFAULT_MAX_TILT
    max_vertical_speed: int = DEFAULT_MAX_VERTICAL_SPEED
    max_rotation_speed: int = DEFAULT_MAX_ROTATION_SPEED
    min_params_interval_ms: int = DEFAULT_MIN_PARAMS_INTERVAL_MS
    connected_settle_ms: int = DEFAULT_CONNECTED_SETTLE_MS

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None = None) -> DroneOptions:
        """Validate a mapping of options and merge it over the defaults.

        Raises:
            InvalidOptionsError: If a value fails validation or a key is
                not a known option.
        """
        normalized = {
            _KEY_ALIASES.get(key, key): value for key, value in (data or {}).items()
        }
        try:
            validated = OPTIONS_SCHEMA(normalized)
        except vol.Invalid as err:
            raise InvalidOptionsError(f"Invalid drone options: {err}") from err
        return cls(**validated)

    def merge(self, **overrides: Any) -> DroneOptions:
        """Return new options with the given keys replaced and re-validated."""
        return DroneOptions.from_dict({**asdict(self), **overrides})

    @property
    def update_interval(self) -> float:
        """Flight params tick period in seconds."""
        return self.update_interval_ms / 1000

    @property
    def min_params_interval(self) -> float:
        """Minimum delay between identical flight params writes, in seconds."""
        return self.min_params_interval_ms / 1000

    @property
    def connected_settle(self) -> float:
        """Delay before announcing a new connection, in seconds."""
        return self.connected_settle_ms / 1000
