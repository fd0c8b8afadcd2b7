"""Per-channel sequence numbers for outbound frames."""

from __future__ import annotations

from collections.abc import Iterable

from .const import SEQUENCED_CHANNELS


class SequenceRegistry:
    """One-byte sequence counter per writable characteristic.

    Counters start at 0 and are incremented before each write, so the first
    frame on a channel carries 1 and the frame after 255 carries 0.
    """

    def __init__(self, channels: Iterable[str] = SEQUENCED_CHANNELS) -> None:
        self._counters: dict[str, int] = dict.fromkeys(channels, 0)

    def next(self, channel: str) -> int:
        """Advance the counter of a channel and return the new value."""
        value = (self._counters[channel] + 1) & 0xFF
        self._counters[channel] = value
        return value

    def current(self, channel: str) -> int:
        """Return the last value handed out for a channel."""
        return self._counters[channel]
