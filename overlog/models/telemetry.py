"""
Canonical telemetry data model.

Every input format is normalized into this structure:
- one TelemetryPoint per sample, SI units, absolute UTC timestamps
- optional channels stay absent (None) rather than zero
- a TelemetryMetadata summary that is always derivable from the points

A TelemetrySeries is immutable once built. Points are held sorted by
timestamp, which is what the binary-search lookups rely on.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator, Optional

import numpy as np
from numpy.typing import NDArray

from overlog.utils.geo import g_force_magnitude, haversine_distance


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MICROSECOND = timedelta(microseconds=1)

# Optional numeric channels, in schema order. Interpolation and
# serialization iterate over this tuple so every channel is treated alike.
NUMERIC_FIELDS = (
    "latitude",
    "longitude",
    "altitude",
    "speed",
    "heading",
    "g_force_x",
    "g_force_y",
    "g_force_z",
    "acceleration",
    "rpm",
    "throttle",
    "brake",
    "steering",
)


def as_utc(timestamp: datetime) -> datetime:
    """Return `timestamp` as an aware UTC datetime (naive input is taken as UTC)."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def to_micros(timestamp: datetime) -> int:
    """Microseconds since the Unix epoch."""
    return (as_utc(timestamp) - EPOCH) // ONE_MICROSECOND


@dataclass(frozen=True)
class TelemetryPoint:
    """One instant of sensor state. Only the timestamp is required."""

    timestamp: datetime

    # Position (WGS84 degrees, meters)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None

    # Motion
    speed: Optional[float] = None      # m/s
    heading: Optional[float] = None    # degrees, 0=N, 90=E

    # Accelerometer (unitless, G)
    g_force_x: Optional[float] = None
    g_force_y: Optional[float] = None
    g_force_z: Optional[float] = None

    # Vehicle channels, passed through uninterpreted
    acceleration: Optional[float] = None
    rpm: Optional[float] = None
    throttle: Optional[float] = None
    brake: Optional[float] = None
    steering: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def g_force(self) -> Optional[float]:
        """Total G-force magnitude, or None unless all three axes are present."""
        if self.g_force_x is None or self.g_force_y is None or self.g_force_z is None:
            return None
        return g_force_magnitude(self.g_force_x, self.g_force_y, self.g_force_z)


@dataclass(frozen=True)
class TelemetryMetadata:
    """Aggregate summary of a series. Derived fields are None when not computable."""

    source: str = ""
    format: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[float] = None        # seconds
    total_distance: Optional[float] = None  # meters
    max_speed: Optional[float] = None       # m/s
    max_g_force: Optional[float] = None


def interpolate_optional(a: Optional[float], b: Optional[float], ratio: float) -> Optional[float]:
    """
    Blend two optional samples.

    Both present: linear blend. One present: carry it unchanged.
    Neither present: absent.
    """
    if a is not None and b is not None:
        return a + (b - a) * ratio
    if a is not None:
        return a
    return b


class TelemetrySeries:
    """
    Ordered telemetry points plus their metadata summary.

    Build with :meth:`from_points` to derive metadata from the points, or
    with the constructor to attach metadata that was produced earlier (the
    canonical JSON round trip). Either way the points are stably sorted by
    timestamp.
    """

    def __init__(
        self,
        points: Iterable[TelemetryPoint] = (),
        metadata: Optional[TelemetryMetadata] = None,
    ):
        # sorted() is stable: equal timestamps keep input order
        self._points: tuple[TelemetryPoint, ...] = tuple(sorted(points, key=lambda p: p.timestamp))
        self._micros: NDArray[np.int64] = np.array(
            [to_micros(p.timestamp) for p in self._points], dtype=np.int64
        )
        if metadata is None:
            metadata = derive_metadata(self._points)
        self._metadata = metadata

    @classmethod
    def from_points(
        cls,
        points: Iterable[TelemetryPoint],
        source: str = "",
        format: str = "",
    ) -> "TelemetrySeries":
        """Sort `points` and derive their metadata, tagged with the given provenance."""
        series = cls(points, TelemetryMetadata(source=source, format=format))
        series._metadata = series.compute_metadata()
        return series

    @property
    def points(self) -> tuple[TelemetryPoint, ...]:
        return self._points

    @property
    def metadata(self) -> TelemetryMetadata:
        return self._metadata

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[TelemetryPoint]:
        return iter(self._points)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TelemetrySeries):
            return NotImplemented
        return self._points == other._points and self._metadata == other._metadata

    def __repr__(self) -> str:
        return f"TelemetrySeries(points={len(self._points)}, metadata={self._metadata!r})"

    def with_points(self, points: Iterable[TelemetryPoint]) -> "TelemetrySeries":
        """New series over `points`, keeping provenance tags and recomputing metadata."""
        return TelemetrySeries.from_points(
            points, source=self._metadata.source, format=self._metadata.format
        )

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def compute_metadata(self) -> TelemetryMetadata:
        """Derive the metadata summary from the current points alone."""
        return derive_metadata(
            self._points, source=self._metadata.source, format=self._metadata.format
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def time_range(self) -> Optional[tuple[datetime, datetime]]:
        if not self._points:
            return None
        return (self._points[0].timestamp, self._points[-1].timestamp)

    def bounding_box(self) -> Optional[tuple[float, float, float, float]]:
        """(min_lat, min_lon, max_lat, max_lon) over position-bearing points."""
        positions = [(p.latitude, p.longitude) for p in self._points if p.has_position]
        if not positions:
            return None
        coords = np.array(positions, dtype=np.float64)
        return (
            float(np.min(coords[:, 0])),
            float(np.min(coords[:, 1])),
            float(np.max(coords[:, 0])),
            float(np.max(coords[:, 1])),
        )

    def point_at(self, timestamp: datetime) -> Optional[TelemetryPoint]:
        """Exact-timestamp lookup. No nearest-match fallback."""
        if not self._points:
            return None
        t = to_micros(timestamp)
        idx = int(np.searchsorted(self._micros, t, side="left"))
        if idx < len(self._points) and self._micros[idx] == t:
            return self._points[idx]
        return None

    def interpolate_at(self, timestamp: datetime) -> Optional[TelemetryPoint]:
        """
        Sample the series at `timestamp`.

        An exact match is returned unmodified. Between two points every
        optional channel is blended independently (see
        :func:`interpolate_optional`). Outside the series there is no
        extrapolation and the result is None.
        """
        exact = self.point_at(timestamp)
        if exact is not None:
            return exact

        t = to_micros(timestamp)
        idx = int(np.searchsorted(self._micros, t, side="left"))
        if idx <= 0 or idx >= len(self._points):
            return None

        p1 = self._points[idx - 1]
        p2 = self._points[idx]

        # Ratio is computed at millisecond resolution
        t1 = float(self._micros[idx - 1] // 1000)
        t2 = float(self._micros[idx] // 1000)
        ratio = (float(t // 1000) - t1) / (t2 - t1) if t2 != t1 else 0.0

        values = {
            name: interpolate_optional(getattr(p1, name), getattr(p2, name), ratio)
            for name in NUMERIC_FIELDS
        }
        return TelemetryPoint(timestamp=timestamp, **values)

    def points_between(self, start: datetime, end: datetime) -> tuple[TelemetryPoint, ...]:
        """Points with start <= timestamp <= end."""
        lo = int(np.searchsorted(self._micros, to_micros(start), side="left"))
        hi = int(np.searchsorted(self._micros, to_micros(end), side="right"))
        if hi <= lo:
            return ()
        return self._points[lo:hi]


def derive_metadata(
    points: tuple[TelemetryPoint, ...],
    source: str = "",
    format: str = "",
) -> TelemetryMetadata:
    """Metadata for points already sorted by timestamp."""
    if not points:
        return TelemetryMetadata(source=source, format=format)

    start = points[0].timestamp
    end = points[-1].timestamp

    speeds = [p.speed for p in points if p.speed is not None]
    g_forces = [g for g in (p.g_force for p in points) if g is not None]

    return TelemetryMetadata(
        source=source,
        format=format,
        start_time=start,
        end_time=end,
        duration=(end - start).total_seconds(),
        total_distance=_total_distance(points),
        max_speed=max(speeds) if speeds else None,
        max_g_force=max(g_forces) if g_forces else None,
    )


def _total_distance(points: tuple[TelemetryPoint, ...]) -> Optional[float]:
    if len(points) < 2:
        return None

    lat = np.array([np.nan if p.latitude is None else p.latitude for p in points], dtype=np.float64)
    lon = np.array([np.nan if p.longitude is None else p.longitude for p in points], dtype=np.float64)
    valid = ~(np.isnan(lat) | np.isnan(lon))

    # Adjacent pairs where both ends carry a position; gaps are skipped
    pairs = valid[:-1] & valid[1:]
    if not np.any(pairs):
        return None

    legs = haversine_distance(lat[:-1][pairs], lon[:-1][pairs], lat[1:][pairs], lon[1:][pairs])
    return float(np.sum(legs))
