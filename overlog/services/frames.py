"""
Frame clock and per-frame sampling.

The video side owns an evenly spaced clock (start time, fps, frame count)
and asks the series for one point per frame.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Optional

from overlog.errors import InvalidInput
from overlog.models.telemetry import TelemetryPoint, TelemetrySeries, as_utc
from overlog.utils.formatting import frame_to_timestamp


logger = logging.getLogger(__name__)


DEFAULT_DURATION_S = 30.0


@dataclass(frozen=True)
class FrameClock:
    """Evenly spaced frame timestamps."""

    start: datetime
    fps: float
    total_frames: int

    def __post_init__(self):
        if self.fps <= 0:
            raise InvalidInput(f"fps must be positive, got {self.fps}")
        if self.total_frames < 0:
            raise InvalidInput(f"total_frames must not be negative, got {self.total_frames}")
        object.__setattr__(self, "start", as_utc(self.start))

    @classmethod
    def for_series(
        cls,
        series: TelemetrySeries,
        fps: float,
        duration: Optional[float] = None,
    ) -> "FrameClock":
        """
        Clock covering `series`.

        Duration defaults to the series duration (30 s if unknown). An empty
        series starts at the current time.
        """
        if duration is None:
            duration = series.metadata.duration
            if duration is None:
                duration = DEFAULT_DURATION_S
        if duration < 0:
            raise InvalidInput(f"duration must not be negative, got {duration}")
        if fps <= 0:
            raise InvalidInput(f"fps must be positive, got {fps}")

        start = series.metadata.start_time
        if start is None:
            start = datetime.now(timezone.utc)

        return cls(start=start, fps=fps, total_frames=int(duration * fps))

    @property
    def duration(self) -> float:
        return self.total_frames / self.fps

    def timestamp_for(self, frame: int) -> datetime:
        return frame_to_timestamp(frame, self.start, self.fps)

    def __len__(self) -> int:
        return self.total_frames

    def __iter__(self) -> Iterator[datetime]:
        for frame in range(self.total_frames):
            yield self.timestamp_for(frame)


@dataclass(frozen=True)
class FrameSample:
    """The point shown on one frame."""

    index: int
    timestamp: datetime
    point: TelemetryPoint
    interpolated: bool  # False when the held fallback point is shown


def sample_frames(series: TelemetrySeries, clock: FrameClock) -> Iterator[FrameSample]:
    """
    Yield one sample per frame.

    Frames outside the series hold its first point; an empty series yields
    timestamp-only points.
    """
    fallback = series.points[0] if len(series) else None
    held = 0

    for index, timestamp in enumerate(clock):
        point = series.interpolate_at(timestamp)
        if point is not None:
            yield FrameSample(index, timestamp, point, True)
            continue

        held += 1
        yield FrameSample(index, timestamp, fallback or TelemetryPoint(timestamp=timestamp), False)

    if held:
        logger.debug(f"{held} of {len(clock)} frames had no telemetry and held the first point")
