"""
Canonical serialized form of a telemetry series (pydantic models).

    {"points": [{"timestamp": "2024-01-15T10:00:00Z", ...}, ...],
     "metadata": {"source": ..., "format": ..., ...}}

Timestamps are RFC 3339 UTC. Absent channels serialize as null; NaN and
infinities are refused both ways.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from overlog.models.telemetry import (
    NUMERIC_FIELDS,
    TelemetryMetadata,
    TelemetryPoint,
    TelemetrySeries,
    as_utc,
)


class TelemetryPointModel(BaseModel):
    """Serialized TelemetryPoint."""
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    timestamp: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    g_force_x: Optional[float] = None
    g_force_y: Optional[float] = None
    g_force_z: Optional[float] = None
    acceleration: Optional[float] = None
    rpm: Optional[float] = None
    throttle: Optional[float] = None
    brake: Optional[float] = None
    steering: Optional[float] = None

    @classmethod
    def from_point(cls, point: TelemetryPoint) -> "TelemetryPointModel":
        return cls(
            timestamp=point.timestamp,
            **{name: getattr(point, name) for name in NUMERIC_FIELDS},
        )

    def to_point(self) -> TelemetryPoint:
        return TelemetryPoint(
            timestamp=as_utc(self.timestamp),
            **{name: getattr(self, name) for name in NUMERIC_FIELDS},
        )


class TelemetryMetadataModel(BaseModel):
    """Serialized TelemetryMetadata."""
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    source: str = ""
    format: str = ""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[float] = None
    total_distance: Optional[float] = None
    max_speed: Optional[float] = None
    max_g_force: Optional[float] = None

    @classmethod
    def from_metadata(cls, metadata: TelemetryMetadata) -> "TelemetryMetadataModel":
        return cls(
            source=metadata.source,
            format=metadata.format,
            start_time=metadata.start_time,
            end_time=metadata.end_time,
            duration=metadata.duration,
            total_distance=metadata.total_distance,
            max_speed=metadata.max_speed,
            max_g_force=metadata.max_g_force,
        )

    def to_metadata(self) -> TelemetryMetadata:
        return TelemetryMetadata(
            source=self.source,
            format=self.format,
            start_time=as_utc(self.start_time) if self.start_time is not None else None,
            end_time=as_utc(self.end_time) if self.end_time is not None else None,
            duration=self.duration,
            total_distance=self.total_distance,
            max_speed=self.max_speed,
            max_g_force=self.max_g_force,
        )


class TelemetryDocument(BaseModel):
    """A full series: points plus the metadata computed when it was written."""

    points: list[TelemetryPointModel]
    metadata: TelemetryMetadataModel

    @classmethod
    def from_series(cls, series: TelemetrySeries) -> "TelemetryDocument":
        return cls(
            points=[TelemetryPointModel.from_point(p) for p in series.points],
            metadata=TelemetryMetadataModel.from_metadata(series.metadata),
        )

    def to_series(self) -> TelemetrySeries:
        # Metadata is trusted as written, not recomputed
        return TelemetrySeries(
            (p.to_point() for p in self.points),
            self.metadata.to_metadata(),
        )
