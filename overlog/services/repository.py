"""
Series Repository - manages loading and caching of telemetry files.

Indexes a folder of GPX/CSV/JSON telemetry files and decodes them on
demand, keeping decoded series in memory.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from overlog.errors import OverlogError
from overlog.models.telemetry import TelemetrySeries
from overlog.services.adapters import FILE_EXTENSIONS, load_telemetry_file


logger = logging.getLogger(__name__)


@dataclass
class SeriesSummary:
    """Lightweight listing entry for one telemetry file."""
    id: str
    name: str
    source_file: str
    format: str
    start_time: Optional[datetime]
    duration: Optional[float]
    point_count: int
    total_distance: Optional[float]

    @classmethod
    def from_series(cls, series_id: str, filepath: Path, series: TelemetrySeries) -> "SeriesSummary":
        metadata = series.metadata
        return cls(
            id=series_id,
            name=filepath.stem,
            source_file=filepath.name,
            format=metadata.format,
            start_time=metadata.start_time,
            duration=metadata.duration,
            point_count=len(series),
            total_distance=metadata.total_distance,
        )


class SeriesRepository:
    """
    Repository for telemetry series.

    Reads telemetry files from a folder and caches decoded series in memory.
    """

    def __init__(self, data_folder: Optional[Path] = None):
        self._data_folder: Optional[Path] = data_folder
        self._cache: dict[str, TelemetrySeries] = {}
        self._index: dict[str, Path] = {}  # id -> filepath mapping

        if data_folder is not None:
            self.scan_folder(data_folder)

    @property
    def data_folder(self) -> Optional[Path]:
        return self._data_folder

    @property
    def series_count(self) -> int:
        return len(self._index)

    def __contains__(self, series_id: str) -> bool:
        return series_id in self._index

    def set_data_folder(self, folder: Path) -> int:
        """
        Point the repository at a new folder and rescan.

        Returns:
            Number of telemetry files found
        """
        self._data_folder = folder
        self._cache.clear()
        self._index.clear()
        return self.scan_folder(folder)

    def scan_folder(self, folder: Path) -> int:
        """
        Scan a folder for telemetry files and add them to the index.

        Returns:
            Number of telemetry files found
        """
        if not folder.exists():
            logger.warning(f"Data folder does not exist: {folder}")
            return 0

        count = 0
        for filepath in sorted(folder.iterdir()):
            if not filepath.is_file() or filepath.suffix.lower() not in FILE_EXTENSIONS:
                continue
            series_id = self._filepath_to_id(filepath)
            self._index[series_id] = filepath
            count += 1
            logger.debug(f"Indexed series: {series_id} -> {filepath.name}")

        logger.info(f"Scanned {count} telemetry files in {folder}")
        return count

    def list_series(self) -> list[SeriesSummary]:
        """
        List all indexed series that decode.

        Sorted by start time (newest first), then by name. Series without a
        start time sort last.
        """
        summaries = []
        for series_id, filepath in self._index.items():
            series = self.get_series(series_id)
            if series is not None:
                summaries.append(SeriesSummary.from_series(series_id, filepath, series))

        summaries.sort(
            key=lambda s: (s.start_time is not None, s.start_time.timestamp() if s.start_time else 0.0, s.name),
            reverse=True,
        )
        return summaries

    def get_series(self, series_id: str) -> Optional[TelemetrySeries]:
        """Get a series by ID, decoding it on first access."""
        if series_id in self._cache:
            return self._cache[series_id]

        filepath = self._index.get(series_id)
        if filepath is None:
            return None

        try:
            series = load_telemetry_file(filepath)
        except (OverlogError, OSError) as e:
            logger.error(f"Failed to load series {filepath}: {e}")
            return None

        self._cache[series_id] = series
        logger.debug(f"Loaded and cached series: {series_id}")
        return series

    def get_path(self, series_id: str) -> Optional[Path]:
        return self._index.get(series_id)

    def clear_cache(self) -> None:
        """Clear the in-memory cache."""
        self._cache.clear()
        logger.info("Series cache cleared")

    def _filepath_to_id(self, filepath: Path) -> str:
        """Generate a consistent ID from filename, size and mtime."""
        stat = filepath.stat()
        id_string = f"{filepath.name}_{stat.st_size}_{stat.st_mtime}"
        return hashlib.sha256(id_string.encode()).hexdigest()[:16]


# Global repository instance (set up by app initialization)
_repository: Optional[SeriesRepository] = None


def get_repository() -> SeriesRepository:
    """Get the global repository instance."""
    global _repository
    if _repository is None:
        _repository = SeriesRepository()
    return _repository


def init_repository(data_folder: Path) -> SeriesRepository:
    """Initialize the global repository with a data folder."""
    global _repository
    _repository = SeriesRepository(data_folder)
    return _repository
