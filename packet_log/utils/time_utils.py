from __future__ import annotations

from datetime import datetime

CAPTURE_TIME_FORMAT = "%H:%M:%S"


class CaptureClock:
    """Wall-clock helpers for stamping captured packets.

    Timestamps are taken in the local system time zone at the moment of
    capture and rendered later, so a delayed flush never shifts them.
    """

    @staticmethod
    def now() -> datetime:
        """Return the current local time as an aware datetime."""
        return datetime.now().astimezone()


def format_capture_time(timestamp: datetime) -> str:
    """Render ``HH:MM:SS:mmm`` in the local time zone."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone()
    millis = timestamp.microsecond // 1000
    return f"{timestamp.strftime(CAPTURE_TIME_FORMAT)}:{millis:03d}"


__all__ = ["CaptureClock", "format_capture_time", "CAPTURE_TIME_FORMAT"]
