"""
Tests for the ffmpeg wrapper. The external tool is mocked.
"""

import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from overlog.errors import ConfigError, InvalidInput, VideoToolError
from overlog.models.telemetry import TelemetryPoint, TelemetrySeries
from overlog.services.renderer import OverlayRenderer
from overlog.services.video import VideoProcessor, parse_fps


T0 = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def mock_run():
    with patch("overlog.services.video.subprocess.run", return_value=completed()) as run:
        yield run


@pytest.fixture
def processor(mock_run):
    return VideoProcessor(ffmpeg="ffmpeg", ffprobe="ffprobe")


@pytest.fixture
def series():
    return TelemetrySeries.from_points([
        TelemetryPoint(timestamp=T0 + timedelta(seconds=i), latitude=45.0 + i * 0.001, longitude=7.0, speed=10.0 + i)
        for i in range(3)
    ])


class TestParseFps:
    """Tests for ffprobe frame-rate strings."""

    @pytest.mark.parametrize("rate,expected", [
        ("30/1", 30.0),
        ("30000/1001", 30000 / 1001),
        ("25", 25.0),
        ("0/0", 30.0),
        ("garbage", 30.0),
    ])
    def test_parse_fps(self, rate, expected):
        assert parse_fps(rate) == pytest.approx(expected)


class TestToolCheck:
    """Tests for the ffmpeg availability check."""

    def test_version_checked(self, mock_run):
        VideoProcessor()
        assert mock_run.call_args.args[0][-1] == "-version"

    def test_missing_ffmpeg(self):
        with patch("overlog.services.video.subprocess.run", side_effect=FileNotFoundError):
            with pytest.raises(ConfigError):
                VideoProcessor()

    def test_broken_ffmpeg(self):
        with patch("overlog.services.video.subprocess.run", return_value=completed(returncode=1)):
            with pytest.raises(ConfigError):
                VideoProcessor()


class TestRenderOverlay:
    """Tests for frame-sequence encoding."""

    def test_renders_frames_and_encodes(self, processor, mock_run, series, tmp_path):
        seen = {}

        def fake_ffmpeg(cmd, **kwargs):
            pattern = Path(cmd[cmd.index("-i") + 1])
            seen["frames"] = sorted(p.name for p in pattern.parent.glob("frame_*.png"))
            return completed()

        mock_run.side_effect = fake_ffmpeg
        output = tmp_path / "overlay.webm"

        frames = processor.render_overlay(OverlayRenderer(64, 48), series, output, fps=5.0)

        assert frames == 10
        assert seen["frames"][0] == "frame_000000.png"
        assert len(seen["frames"]) == 10

        cmd = mock_run.call_args.args[0]
        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-c:v") + 1] == "libvpx-vp9"
        assert cmd[cmd.index("-pix_fmt") + 1] == "yuva420p"
        assert cmd[-1] == str(output)

    def test_explicit_duration(self, processor, series, tmp_path):
        frames = processor.render_overlay(OverlayRenderer(64, 48), series, tmp_path / "o.webm", fps=10.0, duration=0.5)
        assert frames == 5

    def test_no_frames(self, processor, series, tmp_path):
        with pytest.raises(InvalidInput):
            processor.render_overlay(OverlayRenderer(64, 48), series, tmp_path / "o.webm", fps=10.0, duration=0.0)

    def test_encode_failure(self, processor, mock_run, series, tmp_path):
        mock_run.return_value = completed(returncode=1, stderr="Unknown encoder 'libvpx-vp9'")
        with pytest.raises(VideoToolError) as exc_info:
            processor.render_overlay(OverlayRenderer(64, 48), series, tmp_path / "o.webm", fps=5.0)
        assert "libvpx-vp9" in str(exc_info.value)


class TestBurnOverlay:
    """Tests for compositing an overlay onto a video."""

    @pytest.fixture
    def inputs(self, tmp_path):
        video = tmp_path / "video.mp4"
        overlay = tmp_path / "overlay.webm"
        video.write_bytes(b"video")
        overlay.write_bytes(b"overlay")
        return video, overlay

    def test_command(self, processor, mock_run, inputs, tmp_path):
        video, overlay = inputs
        output = tmp_path / "out.mp4"

        processor.burn_overlay(video, overlay, output)

        cmd = mock_run.call_args.args[0]
        assert str(video) in cmd
        assert str(overlay) in cmd
        assert "-itsoffset" not in cmd
        assert "0:a?" in cmd
        assert cmd[-1] == str(output)

    def test_offset_delays_overlay(self, processor, mock_run, inputs, tmp_path):
        video, overlay = inputs

        processor.burn_overlay(video, overlay, tmp_path / "out.mp4", offset=2.5)

        cmd = mock_run.call_args.args[0]
        assert cmd[cmd.index("-itsoffset") + 1] == "2.500"
        # The offset applies to the overlay input, not the source video
        assert cmd.index("-itsoffset") < cmd.index(str(overlay))
        assert cmd.index("-itsoffset") > cmd.index(str(video))
        assert "gte(t,2.500)" in cmd[cmd.index("-filter_complex") + 1]

    def test_missing_video(self, processor, inputs, tmp_path):
        _, overlay = inputs
        with pytest.raises(InvalidInput):
            processor.burn_overlay(tmp_path / "nope.mp4", overlay, tmp_path / "out.mp4")

    def test_missing_overlay(self, processor, inputs, tmp_path):
        video, _ = inputs
        with pytest.raises(InvalidInput):
            processor.burn_overlay(video, tmp_path / "nope.webm", tmp_path / "out.mp4")

    def test_failure(self, processor, mock_run, inputs, tmp_path):
        video, overlay = inputs
        mock_run.return_value = completed(returncode=1, stderr="boom")
        with pytest.raises(VideoToolError):
            processor.burn_overlay(video, overlay, tmp_path / "out.mp4")


class TestVideoInfo:
    """Tests for ffprobe output parsing."""

    def test_get_video_info(self, processor, mock_run):
        mock_run.return_value = completed(stdout="""{
            "streams": [
                {"codec_type": "audio"},
                {"codec_type": "video", "width": 1920, "height": 1080, "r_frame_rate": "30000/1001"}
            ],
            "format": {"duration": "12.5"}
        }""")

        info = processor.get_video_info(Path("clip.mp4"))

        assert info.width == 1920
        assert info.height == 1080
        assert info.duration == 12.5
        assert info.fps == pytest.approx(29.97, rel=1e-3)
        assert mock_run.call_args.args[0][0] == "ffprobe"

    def test_unreadable_output(self, processor, mock_run):
        mock_run.return_value = completed(stdout="not json")
        with pytest.raises(VideoToolError):
            processor.get_video_info(Path("clip.mp4"))
