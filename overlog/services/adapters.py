"""
Telemetry format adapters.

Each adapter decodes raw text of one format into a TelemetrySeries:
- GPX tracks (gpxpy)
- CSV exports with canonical column names (pandas)
- canonical JSON documents written by this tool (pydantic)

A malformed record fails the whole decode with ParseError; there is no
partial or best-effort recovery.
"""

import csv
import dataclasses
import io
import logging
import math
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, Union
from xml.etree import ElementTree

import gpxpy
import gpxpy.gpx
import gpxpy.gpxfield
import numpy as np
import pandas as pd
from pydantic import ValidationError

from overlog.errors import ConfigError, InvalidInput, ParseError, UnsupportedFormat
from overlog.models.document import TelemetryDocument
from overlog.models.telemetry import NUMERIC_FIELDS, TelemetryPoint, TelemetrySeries


logger = logging.getLogger(__name__)


# What to do with GPX points that carry no <time>: "now" or "reject"
UNTIMED_POINTS = os.getenv("OVERLOG_UNTIMED_POINTS", "now").lower()
UNTIMED_POLICIES = ("now", "reject")


class TelemetryFormat(Enum):
    """Supported input formats."""

    GPX = "gpx"    # structured track
    CSV = "csv"    # tabular
    JSON = "json"  # canonical serialized

    @classmethod
    def parse(cls, tag: Union[str, "TelemetryFormat"]) -> "TelemetryFormat":
        if isinstance(tag, cls):
            return tag
        key = str(tag).strip().lower()
        fmt = FORMAT_ALIASES.get(key)
        if fmt is None:
            raise UnsupportedFormat(str(tag))
        return fmt


FORMAT_ALIASES = {
    "gpx": TelemetryFormat.GPX,
    "structured-track": TelemetryFormat.GPX,
    "csv": TelemetryFormat.CSV,
    "tabular": TelemetryFormat.CSV,
    "json": TelemetryFormat.JSON,
    "canonical-serialized": TelemetryFormat.JSON,
}

FILE_EXTENSIONS = {
    ".gpx": TelemetryFormat.GPX,
    ".csv": TelemetryFormat.CSV,
    ".json": TelemetryFormat.JSON,
}


class TelemetryAdapter(Protocol):
    """Adapter interface for raw telemetry sources."""

    name: str

    def decode(self, text: str) -> TelemetrySeries:
        ...


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _finite(value: Optional[float], name: str) -> Optional[float]:
    if value is not None and not math.isfinite(value):
        raise ParseError(f"Non-finite {name}: {value}")
    return value


class GpxAdapter:
    """
    Adapter for GPX track files.

    Track points map to position and altitude only; speed, heading and
    g-force stay absent.
    """

    name = "gpx"

    def __init__(self, untimed: Optional[str] = None):
        untimed = (untimed or UNTIMED_POINTS).lower()
        if untimed not in UNTIMED_POLICIES:
            raise ConfigError(
                f"Unknown untimed point policy: {untimed} (expected one of {', '.join(UNTIMED_POLICIES)})"
            )
        self.untimed = untimed

    def decode(self, text: str) -> TelemetrySeries:
        try:
            gpx = gpxpy.parse(text)
        except (gpxpy.gpx.GPXException, ValueError) as exc:
            raise ParseError(f"Malformed GPX: {exc}") from exc

        self._check_point_times(text)

        # One instant per decode, so untimed points collide and keep document order
        decoded_at = datetime.now(timezone.utc)
        untimed_count = 0
        points: list[TelemetryPoint] = []

        for track in gpx.tracks:
            for segment in track.segments:
                for gpx_point in segment.points:
                    if gpx_point.time is not None:
                        timestamp = gpx_point.time
                    elif self.untimed == "reject":
                        raise ParseError(
                            f"GPX point at ({gpx_point.latitude}, {gpx_point.longitude}) has no time"
                        )
                    else:
                        timestamp = decoded_at
                        untimed_count += 1

                    points.append(TelemetryPoint(
                        timestamp=timestamp,
                        latitude=_finite(gpx_point.latitude, "latitude"),
                        longitude=_finite(gpx_point.longitude, "longitude"),
                        altitude=_finite(gpx_point.elevation, "elevation"),
                    ))

        if untimed_count:
            logger.warning(f"{untimed_count} GPX points had no time; stamped with {decoded_at.isoformat()}")

        logger.debug(f"Decoded {len(points)} GPX track points")
        return TelemetrySeries.from_points(points, source=gpx.creator or "", format=self.name)

    def _check_point_times(self, text: str) -> None:
        """Fail on a <time> that is present but unparsable (gpxpy reads it as no time)."""
        try:
            root = ElementTree.fromstring(text.strip())
        except ElementTree.ParseError as exc:
            raise ParseError(f"Malformed GPX: {exc}") from exc

        for element in root.iter():
            if _local_name(element.tag) != "trkpt":
                continue
            for child in element:
                raw = (child.text or "").strip()
                if _local_name(child.tag) != "time" or not raw:
                    continue
                try:
                    gpxpy.gpxfield.parse_time(raw)
                except (gpxpy.gpx.GPXException, ValueError) as exc:
                    raise ParseError(
                        f"Invalid time {raw!r} on GPX point ({element.get('lat')}, {element.get('lon')})"
                    ) from exc


class CsvAdapter:
    """
    Adapter for CSVs with canonical column names.

    Expected columns (case-sensitive):
    - timestamp (ISO-8601, required)
    - any of latitude, longitude, altitude, speed, heading, g_force_x,
      g_force_y, g_force_z, acceleration, rpm, throttle, brake, steering

    Empty cells are absent values. Unknown columns are ignored.
    """

    name = "csv"

    def decode(self, text: str) -> TelemetrySeries:
        df = self._read_csv(text)

        if "timestamp" not in df.columns:
            raise ParseError("No timestamp column found in CSV")

        ignored = [c for c in df.columns if c != "timestamp" and c not in NUMERIC_FIELDS]
        if ignored:
            logger.debug(f"Ignoring unknown CSV columns: {ignored}")

        timestamps = self._parse_timestamps(df["timestamp"])
        channels = {
            name: self._parse_numeric(df[name], name)
            for name in NUMERIC_FIELDS
            if name in df.columns
        }

        points = [
            TelemetryPoint(
                timestamp=timestamps[i],
                **{name: values[i] for name, values in channels.items()},
            )
            for i in range(len(df))
        ]

        logger.debug(f"Decoded {len(points)} CSV rows ({len(channels)} channels)")
        return TelemetrySeries.from_points(points, format=self.name)

    def _read_csv(self, text: str) -> pd.DataFrame:
        if not text.strip():
            raise ParseError("CSV input is empty")

        self._check_field_counts(text)

        try:
            df = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            raise ParseError(f"Malformed CSV: {exc}") from exc

        df.columns = df.columns.str.strip()
        return df

    def _check_field_counts(self, text: str) -> None:
        """Every row must have exactly as many fields as the header."""
        # pandas pads short rows with "" under keep_default_na=False and
        # promotes an extra leading field to the index, so count up front
        reader = csv.reader(io.StringIO(text))
        header_width = None
        try:
            for fields in reader:
                if not fields:
                    continue
                if header_width is None:
                    header_width = len(fields)
                elif len(fields) != header_width:
                    raise ParseError(
                        f"Malformed CSV: line {reader.line_num} has {len(fields)} fields, "
                        f"header has {header_width}"
                    )
        except csv.Error as exc:
            raise ParseError(f"Malformed CSV: {exc}") from exc

    def _parse_timestamps(self, column: pd.Series) -> list[datetime]:
        values = column.str.strip()
        try:
            parsed = pd.to_datetime(values, utc=True, format="ISO8601")
        except (ValueError, TypeError) as exc:
            raise ParseError(f"Invalid timestamp in CSV: {exc}") from exc

        missing = parsed.isna()
        if missing.any():
            row = int(np.argmax(missing.values))
            raise ParseError(f"Missing timestamp on CSV line {row + 2}")

        return [ts.to_pydatetime() for ts in parsed]

    def _parse_numeric(self, column: pd.Series, name: str) -> list[Optional[float]]:
        values = column.str.strip()
        try:
            numeric = pd.to_numeric(values.mask(values == ""), errors="raise")
        except (ValueError, TypeError) as exc:
            raise ParseError(f"Invalid value in CSV column '{name}': {exc}") from exc

        numeric = numeric.astype(np.float64)
        infinite = np.isinf(numeric.values)
        if infinite.any():
            row = int(np.argmax(infinite))
            raise ParseError(f"Non-finite value in CSV column '{name}' on line {row + 2}")

        return [None if np.isnan(v) else float(v) for v in numeric]


class JsonAdapter:
    """
    Adapter for canonical JSON documents.

    The metadata block is trusted as written; only the point order is
    normalized.
    """

    name = "json"

    def decode(self, text: str) -> TelemetrySeries:
        try:
            document = TelemetryDocument.model_validate_json(text)
        except ValidationError as exc:
            raise ParseError(f"Invalid telemetry document: {exc}") from exc

        series = document.to_series()
        logger.debug(f"Decoded {len(series)} points from canonical JSON")
        return series


ADAPTERS: dict[TelemetryFormat, TelemetryAdapter] = {
    TelemetryFormat.GPX: GpxAdapter(),
    TelemetryFormat.CSV: CsvAdapter(),
    TelemetryFormat.JSON: JsonAdapter(),
}


def _select_adapter(fmt: Union[str, TelemetryFormat]) -> TelemetryAdapter:
    return ADAPTERS[TelemetryFormat.parse(fmt)]


def decode(text: str, fmt: Union[str, TelemetryFormat]) -> TelemetrySeries:
    """Decode raw `text` in the given format."""
    return _select_adapter(fmt).decode(text)


def encode_json(series: TelemetrySeries, indent: Optional[int] = 2) -> str:
    """Write `series` in the canonical JSON form. Non-finite values are refused."""
    try:
        document = TelemetryDocument.from_series(series)
    except ValidationError as exc:
        raise InvalidInput(f"Series cannot be written as JSON: {exc}") from exc
    return document.model_dump_json(indent=indent)


def detect_format(filepath: Path) -> TelemetryFormat:
    """Pick a format from the file extension."""
    fmt = FILE_EXTENSIONS.get(filepath.suffix.lower())
    if fmt is None:
        raise UnsupportedFormat(filepath.suffix.lstrip(".") or "unknown")
    return fmt


def load_telemetry_file(
    filepath: Path,
    fmt: Optional[Union[str, TelemetryFormat]] = None,
) -> TelemetrySeries:
    """
    Read and decode a telemetry file.

    The format is detected from the extension unless given. A series
    without a recorded source is tagged with the file name.
    """
    filepath = Path(filepath)
    if not filepath.is_file():
        raise InvalidInput(f"Input file not found: {filepath}")

    telemetry_format = TelemetryFormat.parse(fmt) if fmt else detect_format(filepath)
    try:
        text = filepath.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError(f"{filepath.name} is not UTF-8 text: {exc}") from exc

    series = decode(text, telemetry_format)
    logger.info(f"Loaded {len(series)} points from {filepath.name} ({telemetry_format.value})")

    if not series.metadata.source:
        series = TelemetrySeries(
            series.points,
            dataclasses.replace(series.metadata, source=filepath.name),
        )
    return series
