"""
Video tool wrapper.

Frame-sequence encoding and overlay compositing are delegated to an
external ffmpeg process; this module builds the command lines and turns
failures into overlog errors.
"""

import json
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from overlog.errors import ConfigError, InvalidInput, VideoToolError
from overlog.models.telemetry import TelemetrySeries
from overlog.services.frames import FrameClock, sample_frames
from overlog.services.renderer import OverlayRenderer


logger = logging.getLogger(__name__)


FFMPEG = os.getenv("OVERLOG_FFMPEG", "ffmpeg")
FFPROBE = os.getenv("OVERLOG_FFPROBE", "ffprobe")

DEFAULT_FPS = 30.0
FRAME_PATTERN = "frame_%06d.png"


@dataclass
class VideoInfo:
    duration: Optional[float]
    width: int
    height: int
    fps: float


def parse_fps(rate: str) -> float:
    """Parse an ffprobe rate such as '30000/1001'. Falls back to 30 fps."""
    num, sep, den = rate.partition("/")
    try:
        numerator = float(num)
        denominator = float(den) if sep else 1.0
    except ValueError:
        return DEFAULT_FPS
    if denominator == 0 or numerator <= 0:
        return DEFAULT_FPS
    return numerator / denominator


class VideoProcessor:
    """Runs ffmpeg/ffprobe to build and burn overlay videos."""

    def __init__(self, ffmpeg: Optional[str] = None, ffprobe: Optional[str] = None):
        self.ffmpeg = ffmpeg or FFMPEG
        self.ffprobe = ffprobe or FFPROBE

        try:
            result = subprocess.run([self.ffmpeg, "-version"], capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise ConfigError(
                "FFmpeg not found. Please install FFmpeg and ensure it's in your PATH."
            ) from exc
        if result.returncode != 0:
            raise ConfigError("FFmpeg is not working properly")

    def _run(self, cmd: list[str], what: str) -> subprocess.CompletedProcess:
        logger.debug(f"Running: {' '.join(cmd)}")
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            stderr = (result.stderr or "").strip().splitlines()
            detail = stderr[-1] if stderr else f"exit status {result.returncode}"
            raise VideoToolError(f"Failed to {what}: {detail}")
        return result

    def render_overlay(
        self,
        renderer: OverlayRenderer,
        series: TelemetrySeries,
        output_path: Path,
        fps: float,
        duration: Optional[float] = None,
    ) -> int:
        """
        Render one overlay frame per clock tick and encode them with alpha.

        Returns:
            Number of frames rendered
        """
        clock = FrameClock.for_series(series, fps, duration)
        if clock.total_frames == 0:
            raise InvalidInput("Overlay would contain no frames; check duration and fps")

        renderer.set_track(series)

        with tempfile.TemporaryDirectory(prefix="overlog_frames_") as tmp:
            frame_dir = Path(tmp)
            for sample in sample_frames(series, clock):
                frame = renderer.render_frame(sample.point, sample.index)
                frame.save(frame_dir / (FRAME_PATTERN % sample.index))

            logger.info(f"Rendered {clock.total_frames} frames, encoding {output_path}")
            self._run(
                [
                    self.ffmpeg,
                    "-y",
                    "-framerate", f"{fps:g}",
                    "-i", str(frame_dir / FRAME_PATTERN),
                    "-c:v", "libvpx-vp9",
                    "-pix_fmt", "yuva420p",  # keep the alpha channel
                    "-crf", "30",
                    "-b:v", "0",
                    str(output_path),
                ],
                "create video from frames",
            )

        return clock.total_frames

    def burn_overlay(
        self,
        video_path: Path,
        overlay_path: Path,
        output_path: Path,
        offset: float = 0.0,
    ) -> None:
        """Composite the overlay onto the video, delayed by `offset` seconds."""
        video_path = Path(video_path)
        overlay_path = Path(overlay_path)
        if not video_path.exists():
            raise InvalidInput(f"Video file not found: {video_path}")
        if not overlay_path.exists():
            raise InvalidInput(f"Overlay file not found: {overlay_path}")

        cmd = [self.ffmpeg, "-y", "-i", str(video_path)]
        if offset:
            cmd.extend(["-itsoffset", f"{offset:.3f}"])
        # VP9 alpha is only decoded by libvpx, not the native decoder
        cmd.extend(["-c:v", "libvpx-vp9", "-i", str(overlay_path)])

        enable = f":enable='gte(t,{offset:.3f})'" if offset else ""
        cmd.extend([
            "-filter_complex", f"[0:v][1:v]overlay=0:0:format=auto{enable}[outv]",
            "-map", "[outv]",
            "-map", "0:a?",
            "-c:a", "copy",
            str(output_path),
        ])

        self._run(cmd, "burn overlay into video")
        logger.info(f"Overlay burned into {output_path}")

    def get_video_info(self, video_path: Path) -> VideoInfo:
        result = self._run(
            [
                self.ffprobe,
                "-v", "quiet",
                "-print_format", "json",
                "-show_format",
                "-show_streams",
                str(video_path),
            ],
            "get video info",
        )

        try:
            info = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise VideoToolError(f"Unreadable ffprobe output: {exc}") from exc

        streams = [s for s in info.get("streams", []) if s.get("codec_type", "video") == "video"]
        stream = streams[0] if streams else {}

        duration = info.get("format", {}).get("duration")
        try:
            duration = float(duration) if duration is not None else None
        except ValueError:
            duration = None

        return VideoInfo(
            duration=duration,
            width=int(stream.get("width", 0)),
            height=int(stream.get("height", 0)),
            fps=parse_fps(stream.get("r_frame_rate", "30/1")),
        )
