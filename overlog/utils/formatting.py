"""
Display formatting and frame-clock helpers.

Units are SI everywhere else; conversion for display happens only here.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, TypeVar

from overlog.models.telemetry import as_utc
from overlog.utils.geo import ms_to_kmh


T = TypeVar("T", int, float)


def format_duration(seconds: float) -> str:
    """
    Format seconds as M:SS, or H:MM:SS from one hour up.

    >>> format_duration(65.0)
    '1:05'
    >>> format_duration(3661.0)
    '1:01:01'
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_speed(speed_ms: float) -> str:
    speed_kmh = ms_to_kmh(speed_ms)
    if speed_kmh >= 100.0:
        return f"{speed_kmh:.0f} km/h"
    return f"{speed_kmh:.1f} km/h"


def format_distance(meters: float) -> str:
    if meters >= 1000.0:
        return f"{meters / 1000.0:.2f} km"
    return f"{meters:.0f} m"


def timestamp_string(now: Optional[datetime] = None) -> str:
    """Compact UTC timestamp for file names, e.g. 20240115_100000."""
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    return now.strftime("%Y%m%d_%H%M%S")


def timestamp_to_frame(timestamp: datetime, start_time: datetime, fps: float) -> int:
    """Frame index showing `timestamp` on a clock that starts at `start_time`."""
    elapsed_ms = (as_utc(timestamp) - as_utc(start_time)) // timedelta(milliseconds=1)
    return int(elapsed_ms * fps / 1000.0)


def frame_to_timestamp(frame: int, start_time: datetime, fps: float) -> datetime:
    """Timestamp of `frame`, truncated to whole milliseconds."""
    millis = int(frame * 1000.0 / fps)
    return as_utc(start_time) + timedelta(milliseconds=millis)


def clamp(value: T, lo: T, hi: T) -> T:
    if value < lo:
        return lo
    if value > hi:
        return hi
    return value


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t
