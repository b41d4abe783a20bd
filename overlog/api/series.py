"""
API routes for telemetry series.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from overlog.api.schemas import (
    FolderInfoResponse,
    FrameResponse,
    FramesResponse,
    ParseRequest,
    PointsResponse,
    SampleResponse,
    SeriesDetailResponse,
    SeriesSummaryResponse,
    SetFolderRequest,
)
from overlog.errors import InvalidInput, ParseError, UnsupportedFormat
from overlog.models.document import (
    TelemetryDocument,
    TelemetryMetadataModel,
    TelemetryPointModel,
)
from overlog.models.telemetry import TelemetrySeries
from overlog.services.adapters import decode
from overlog.services.frames import DEFAULT_DURATION_S, FrameClock, sample_frames
from overlog.services.repository import get_repository


logger = logging.getLogger(__name__)

MAX_FRAMES = 10_000


router = APIRouter(prefix="/series", tags=["series"])


def _get_series_or_404(series_id: str) -> TelemetrySeries:
    repo = get_repository()
    if series_id not in repo:
        raise HTTPException(status_code=404, detail=f"Series not found: {series_id}")

    series = repo.get_series(series_id)
    if series is None:
        raise HTTPException(status_code=500, detail=f"Failed to load series: {series_id}")
    return series


@router.get("", response_model=list[SeriesSummaryResponse])
async def list_series():
    """
    List all available telemetry series.

    Returns summaries sorted by start time (newest first).
    """
    repo = get_repository()
    return [
        SeriesSummaryResponse(
            id=s.id,
            name=s.name,
            source_file=s.source_file,
            format=s.format,
            start_time=s.start_time,
            duration=s.duration,
            point_count=s.point_count,
            total_distance=s.total_distance,
        )
        for s in repo.list_series()
    ]


@router.get("/{series_id}", response_model=SeriesDetailResponse)
async def get_series_detail(series_id: str):
    """Get metadata for a specific series."""
    series = _get_series_or_404(series_id)
    filepath = get_repository().get_path(series_id)

    return SeriesDetailResponse(
        id=series_id,
        name=filepath.stem,
        source_file=filepath.name,
        point_count=len(series),
        metadata=TelemetryMetadataModel.from_metadata(series.metadata),
        bounding_box=series.bounding_box(),
    )


@router.get("/{series_id}/points", response_model=PointsResponse)
async def get_points(
    series_id: str,
    start: Optional[datetime] = Query(None, description="Range start (inclusive), defaults to series start"),
    end: Optional[datetime] = Query(None, description="Range end (inclusive), defaults to series end"),
):
    """Points whose timestamps fall inside [start, end]."""
    series = _get_series_or_404(series_id)

    time_range = series.time_range()
    if time_range is None:
        return PointsResponse(series_id=series_id, start=start, end=end, points=[])

    start = start or time_range[0]
    end = end or time_range[1]
    points = series.points_between(start, end)

    return PointsResponse(
        series_id=series_id,
        start=start,
        end=end,
        points=[TelemetryPointModel.from_point(p) for p in points],
    )


@router.get("/{series_id}/sample", response_model=SampleResponse)
async def sample_series(
    series_id: str,
    t: datetime = Query(..., description="Instant to sample"),
):
    """
    Sample the series at one instant.

    Exact matches are returned as stored; between points each channel is
    interpolated. Outside the series the point is null.
    """
    series = _get_series_or_404(series_id)
    point = series.interpolate_at(t)

    return SampleResponse(
        series_id=series_id,
        timestamp=t,
        point=TelemetryPointModel.from_point(point) if point is not None else None,
    )


@router.get("/{series_id}/frames", response_model=FramesResponse)
async def get_frames(
    series_id: str,
    fps: float = Query(30.0, gt=0, description="Frames per second"),
    duration: Optional[float] = Query(None, ge=0, description="Clock length in seconds (defaults to series duration)"),
    start: Optional[datetime] = Query(None, description="Clock start (defaults to series start)"),
):
    """
    Sample the series once per frame of an overlay clock.

    Frames outside the series hold its first point.
    """
    series = _get_series_or_404(series_id)

    try:
        if start is None:
            clock = FrameClock.for_series(series, fps, duration)
        else:
            if duration is None:
                duration = series.metadata.duration
                if duration is None:
                    duration = DEFAULT_DURATION_S
            clock = FrameClock(start=start, fps=fps, total_frames=int(duration * fps))
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))

    if clock.total_frames > MAX_FRAMES:
        raise HTTPException(
            status_code=400,
            detail=f"Too many frames requested ({clock.total_frames}, max {MAX_FRAMES})",
        )

    frames = [
        FrameResponse(
            index=sample.index,
            timestamp=sample.timestamp,
            interpolated=sample.interpolated,
            point=TelemetryPointModel.from_point(sample.point),
        )
        for sample in sample_frames(series, clock)
    ]

    return FramesResponse(
        series_id=series_id,
        fps=clock.fps,
        start=clock.start,
        total_frames=clock.total_frames,
        frames=frames,
    )


# ============================================================================
# Parse Route
# ============================================================================

parse_router = APIRouter(prefix="/parse", tags=["parse"])


@parse_router.post("", response_model=TelemetryDocument)
async def parse_content(request: ParseRequest):
    """Decode raw telemetry text and return the canonical document."""
    try:
        series = decode(request.content, request.format)
    except (ParseError, UnsupportedFormat) as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Parsed {len(series)} points ({request.format})")
    return TelemetryDocument.from_series(series)


# ============================================================================
# Folder Management Routes
# ============================================================================

folder_router = APIRouter(prefix="/folder", tags=["folder"])


@folder_router.get("", response_model=FolderInfoResponse)
async def get_folder_info():
    """Get information about the current data folder."""
    repo = get_repository()

    return FolderInfoResponse(
        path=str(repo.data_folder) if repo.data_folder else None,
        series_count=repo.series_count,
    )


@folder_router.post("", response_model=FolderInfoResponse)
async def set_folder(request: SetFolderRequest):
    """
    Set the data folder to scan for telemetry files.

    This will clear the current cache and re-scan.
    """
    repo = get_repository()

    path = Path(request.path)
    if not path.exists():
        raise HTTPException(status_code=400, detail=f"Folder does not exist: {request.path}")
    if not path.is_dir():
        raise HTTPException(status_code=400, detail=f"Path is not a directory: {request.path}")

    count = repo.set_data_folder(path)

    return FolderInfoResponse(path=str(path), series_count=count)


@folder_router.post("/rescan", response_model=FolderInfoResponse)
async def rescan_folder():
    """Rescan the current data folder for new telemetry files."""
    repo = get_repository()

    if repo.data_folder is None:
        raise HTTPException(status_code=400, detail="No data folder set")

    count = repo.set_data_folder(repo.data_folder)

    return FolderInfoResponse(path=str(repo.data_folder), series_count=count)
