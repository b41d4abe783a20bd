"""
API schemas (Pydantic models) for request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from overlog.models.document import TelemetryMetadataModel, TelemetryPointModel


# ============================================================================
# Series Schemas
# ============================================================================

class SeriesSummaryResponse(BaseModel):
    """Summary of a telemetry series for listing."""
    id: str
    name: str
    source_file: str
    format: str
    start_time: Optional[datetime] = None
    duration: Optional[float] = None
    point_count: int
    total_distance: Optional[float] = None


class SeriesDetailResponse(BaseModel):
    """Full metadata for a series."""
    id: str
    name: str
    source_file: str
    point_count: int
    metadata: TelemetryMetadataModel
    bounding_box: Optional[tuple[float, float, float, float]] = None  # (min_lat, min_lon, max_lat, max_lon)


class PointsResponse(BaseModel):
    """Points inside a time range."""
    series_id: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    points: list[TelemetryPointModel]


class SampleResponse(BaseModel):
    """Series sampled at one instant; point is null outside the series."""
    series_id: str
    timestamp: datetime
    point: Optional[TelemetryPointModel] = None


# ============================================================================
# Frame Schemas
# ============================================================================

class FrameResponse(BaseModel):
    """The point shown on one video frame."""
    index: int
    timestamp: datetime
    interpolated: bool
    point: TelemetryPointModel


class FramesResponse(BaseModel):
    """Per-frame samples for an overlay clock."""
    series_id: str
    fps: float
    start: datetime
    total_frames: int
    frames: list[FrameResponse]


# ============================================================================
# Parse Schemas
# ============================================================================

class ParseRequest(BaseModel):
    """Raw telemetry text to decode."""
    format: str
    content: str


# ============================================================================
# Folder Management Schemas
# ============================================================================

class SetFolderRequest(BaseModel):
    """Request to set the data folder."""
    path: str


class FolderInfoResponse(BaseModel):
    """Information about the current data folder."""
    path: Optional[str]
    series_count: int
