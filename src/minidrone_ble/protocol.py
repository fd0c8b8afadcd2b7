"""MiniDrone BLE protocol implementation."""

from __future__ import annotations

import struct
from dataclasses import dataclass, fields, replace
from enum import StrEnum

from .const import (
    CLASS_ANIMATION,
    CLASS_MEDIA_RECORD,
    CLASS_PILOTING,
    CLASS_PILOTING_SETTINGS,
    CLASS_SPEED_SETTINGS,
    DATA_TYPE_DATA,
    DEVICE_TYPE_MINIDRONE,
    FLIP_DIRECTIONS,
    METHOD_EMERGENCY,
    METHOD_FLIP,
    METHOD_LAND,
    METHOD_MAX_ALTITUDE,
    METHOD_MAX_ROTATION_SPEED,
    METHOD_MAX_TILT,
    METHOD_MAX_VERTICAL_SPEED,
    METHOD_PICTURE,
    METHOD_TAKEOFF,
    METHOD_TRIM,
    STATUS_FRAME_MARKER,
    STATUS_FRAME_MARKER_OFFSET,
    STATUS_INDEX_OFFSET,
)
from .exceptions import FrameDecodeError

# [data type, seq, device type, 0, 2, 0, roll/pitch flag, roll, pitch, yaw,
#  altitude] followed by a float32 and zero padding
_FLIGHT_PARAMS_STRUCT = struct.Struct("<11Bf4x")


class FlightStatus(StrEnum):
    """Flight status reported by the drone, in wire index order."""

    LANDED = "landed"
    TAKING_OFF = "taking off"
    HOVERING = "hovering"
    FLYING = "flying"
    LANDING = "landing"
    EMERGENCY = "emergency"
    ROLLING = "rolling"
    INITIALIZING = "initializing"

    @classmethod
    def from_index(cls, index: int) -> FlightStatus:
        """Map a wire index to a status.

        Raises:
            FrameDecodeError: If the index is outside the status table.
        """
        members = list(cls)
        if not 0 <= index < len(members):
            raise FrameDecodeError(f"Unknown flight status index {index}")
        return members[index]

    @property
    def is_airborne(self) -> bool:
        """Whether the drone should be landed rather than launched."""
        return self in _AIRBORNE_STATUSES


_AIRBORNE_STATUSES = frozenset(
    {
        FlightStatus.TAKING_OFF,
        FlightStatus.HOVERING,
        FlightStatus.FLYING,
        FlightStatus.ROLLING,
    }
)


@dataclass(frozen=True)
class FlightParams:
    """Commanded attitude of the drone, each axis conventionally -100..100."""

    roll: int = 0
    pitch: int = 0
    yaw: int = 0
    altitude: int = 0

    def merge(self, **partial: int) -> FlightParams:
        """Return a copy with only the supplied axes replaced.

        Raises:
            TypeError: If an axis name is unknown or a value is not an int.
        """
        unknown = set(partial) - {f.name for f in fields(self)}
        if unknown:
            names = ", ".join(sorted(unknown))
            raise TypeError(f"Unknown flight parameter(s): {names}")
        for name, value in partial.items():
            # bool is an int subclass but never a meaningful axis value
            if not isinstance(value, int) or isinstance(value, bool):
                kind = type(value).__name__
                raise TypeError(f"Flight parameter {name} must be an int, got {kind}")
        return replace(self, **partial)

    def as_tuple(self) -> tuple[int, int, int, int]:
        """Return (roll, pitch, yaw, altitude)."""
        return (self.roll, self.pitch, self.yaw, self.altitude)


def _build_animation_aliases() -> dict[str, int]:
    aliases: dict[str, int] = {}
    for name, value in FLIP_DIRECTIONS.items():
        short = name.removeprefix("flip_")
        aliases[name] = value
        aliases[short] = value
        aliases[f"flip{short.capitalize()}"] = value
    return aliases


class MiniDroneProtocol:
    """Frame encoder/decoder for Parrot MiniDrone BLE communication.

    Every outbound frame starts with the same three-byte header, followed
    by the command class and method and a command-specific payload:

        [data type=0x02, sequence, device type=0x02, class, method, ...]

    The roll/pitch/yaw/altitude stream uses its own fixed 19-byte frame on
    a dedicated characteristic. Inbound battery and flight status
    notifications are raw byte frames as well.
    """

    _ANIMATIONS: dict[str, int] = _build_animation_aliases()

    @staticmethod
    def encode_command(
        seq: int, command_class: int, method: int, *payload: int
    ) -> bytes:
        """Encode a command frame.

        Args:
            seq: Sequence number of the target channel.
            command_class: Command class byte.
            method: Method byte within the class.
            *payload: Extra payload bytes.

        Returns:
            bytes: The complete frame.
        """
        return bytes(
            [
                DATA_TYPE_DATA,
                seq & 0xFF,
                DEVICE_TYPE_MINIDRONE,
                command_class,
                method,
                *(b & 0xFF for b in payload),
            ]
        )

    @staticmethod
    def encode_trim(seq: int) -> bytes:
        """Encode a flat trim command."""
        return MiniDroneProtocol.encode_command(seq, CLASS_PILOTING, METHOD_TRIM, 0x00)

    @staticmethod
    def encode_takeoff(seq: int) -> bytes:
        """Encode a takeoff command.

        Protocol: [0x02, seq, 0x02, 0x00, 0x01, 0x00]
        """
        return MiniDroneProtocol.encode_command(
            seq, CLASS_PILOTING, METHOD_TAKEOFF, 0x00
        )

    @staticmethod
    def encode_land(seq: int) -> bytes:
        """Encode a land command.

        Protocol: [0x02, seq, 0x02, 0x00, 0x03, 0x00]
        """
        return MiniDroneProtocol.encode_command(seq, CLASS_PILOTING, METHOD_LAND, 0x00)

    @staticmethod
    def encode_emergency(seq: int) -> bytes:
        """Encode an emergency command (cuts the motors).

        Written to the emergency characteristic, not the command one.
        """
        return MiniDroneProtocol.encode_command(
            seq, CLASS_PILOTING, METHOD_EMERGENCY, 0x00
        )

    @staticmethod
    def encode_take_picture(seq: int) -> bytes:
        """Encode a take picture command.

        Protocol: [0x02, seq, 0x02, 0x06, 0x01, 0x00]
        """
        return MiniDroneProtocol.encode_command(
            seq, CLASS_MEDIA_RECORD, METHOD_PICTURE, 0x00
        )

    @staticmethod
    def encode_animation(seq: int, direction: str) -> bytes | None:
        """Encode a flip animation command.

        Args:
            seq: Sequence number of the command channel.
            direction: flip_front, flip_back, flip_right or flip_left. The
                short (front) and camelCase (flipFront) spellings work too.

        Returns:
            bytes: The frame, or None if the direction is not known.

        The zero byte between the method and the direction has no
        documented meaning.
        """
        code = MiniDroneProtocol.animation_code(direction)
        if code is None:
            return None
        return MiniDroneProtocol.encode_flip(seq, code)

    @staticmethod
    def animation_code(direction: str) -> int | None:
        """Return the flip direction byte for a name, or None if unknown."""
        return MiniDroneProtocol._ANIMATIONS.get(direction)

    @staticmethod
    def encode_flip(seq: int, code: int) -> bytes:
        """Encode a flip animation from its direction byte (0-3)."""
        return MiniDroneProtocol.encode_command(
            seq, CLASS_ANIMATION, METHOD_FLIP, 0x00, code, 0x00, 0x00, 0x00
        )

    @staticmethod
    def encode_max_altitude(seq: int, altitude: int) -> bytes:
        """Encode a max altitude setting (meters).

        Protocol: [0x02, seq, 0x02, 0x08, 0x00, 0x00, altitude, 0x00]
        """
        return MiniDroneProtocol.encode_command(
            seq, CLASS_PILOTING_SETTINGS, METHOD_MAX_ALTITUDE, 0x00, altitude, 0x00
        )

    @staticmethod
    def encode_max_tilt(seq: int, tilt: int) -> bytes:
        """Encode a max tilt setting (0-100)."""
        return MiniDroneProtocol.encode_command(
            seq, CLASS_PILOTING_SETTINGS, METHOD_MAX_TILT, 0x00, tilt, 0x00
        )

    @staticmethod
    def encode_max_vertical_speed(seq: int, speed: int) -> bytes:
        """Encode a max vertical speed setting (m/s)."""
        return MiniDroneProtocol.encode_command(
            seq, CLASS_SPEED_SETTINGS, METHOD_MAX_VERTICAL_SPEED, 0x00, speed, 0x00
        )

    @staticmethod
    def encode_max_rotation_speed(seq: int, speed: int) -> bytes:
        """Encode a max rotation speed setting (degrees/s)."""
        return MiniDroneProtocol.encode_command(
            seq, CLASS_SPEED_SETTINGS, METHOD_MAX_ROTATION_SPEED, 0x00, speed, 0x00
        )

    @staticmethod
    def encode_flight_params(seq: int, params: FlightParams) -> bytes:
        """Encode the roll/pitch/yaw/altitude frame.

        Args:
            seq: Sequence number of the flight params channel.
            params: Values to send. Each axis is sent as a single signed
                byte; values outside -128..127 are truncated to their low
                byte, not clamped.

        Returns:
            bytes: A 19-byte frame.
        """
        return _FLIGHT_PARAMS_STRUCT.pack(
            DATA_TYPE_DATA,
            seq & 0xFF,
            DEVICE_TYPE_MINIDRONE,
            0,
            2,
            0,
            1,  # roll/pitch enabled
            params.roll & 0xFF,
            params.pitch & 0xFF,
            params.yaw & 0xFF,
            params.altitude & 0xFF,
            0.0,
        )

    @staticmethod
    def decode_flight_status(data: bytes, is_notification: bool) -> FlightStatus | None:
        """Decode a flight status notification.

        Args:
            data: Raw notification bytes.
            is_notification: Whether the transport flagged a notification.

        Returns:
            FlightStatus, or None if the frame is not a status update.

        Raises:
            FrameDecodeError: If the frame is a status update but is
                truncated or carries an unknown status index.
        """
        if not is_notification:
            return None
        if len(data) <= STATUS_FRAME_MARKER_OFFSET:
            raise FrameDecodeError("Flight status frame too short", data)
        if data[STATUS_FRAME_MARKER_OFFSET] != STATUS_FRAME_MARKER:
            return None
        if len(data) <= STATUS_INDEX_OFFSET:
            raise FrameDecodeError("Flight status frame too short", data)
        try:
            return FlightStatus.from_index(data[STATUS_INDEX_OFFSET])
        except FrameDecodeError as err:
            raise FrameDecodeError(str(err), data) from err

    @staticmethod
    def decode_battery(data: bytes, is_notification: bool) -> int | None:
        """Decode a battery notification.

        Returns:
            Battery percentage (last byte of the frame), or None if the
            data was not a notification.

        Raises:
            FrameDecodeError: If the payload is empty.
        """
        if not is_notification:
            return None
        if not data:
            raise FrameDecodeError("Empty battery frame", data)
        return data[-1]
