"""
overlog command line.

Usage:
    overlog parse -i track.gpx [-o track.json] [-f gpx]
    overlog render -i track.json -o overlay.webm [--width 1920] [--height 1080]
                   [--duration S] [--fps 30] [--style default]
    overlog burn -v video.mp4 --overlay overlay.webm -o output.mp4 [--offset 0.0]
    overlog serve [data_folder] [--port PORT] [--host HOST] [--debug]
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from overlog import config
from overlog.errors import OverlogError
from overlog.services.adapters import encode_json, load_telemetry_file
from overlog.services.renderer import STYLES, OverlayRenderer
from overlog.services.video import VideoProcessor
from overlog.utils.formatting import format_distance, format_duration


logger = logging.getLogger(__name__)


def cmd_parse(args: argparse.Namespace) -> None:
    series = load_telemetry_file(Path(args.input), args.format)
    document = encode_json(series)

    if args.output:
        Path(args.output).write_text(document + "\n", encoding="utf-8")
        print(f"Telemetry data parsed and saved to {args.output}")
    else:
        print(document)


def cmd_render(args: argparse.Namespace) -> None:
    series = load_telemetry_file(Path(args.input))
    metadata = series.metadata
    if metadata.duration is not None:
        logger.info(f"Series duration {format_duration(metadata.duration)}")
    if metadata.total_distance is not None:
        logger.info(f"Series distance {format_distance(metadata.total_distance)}")

    renderer = OverlayRenderer(args.width, args.height, args.style)
    processor = VideoProcessor()
    frames = processor.render_overlay(renderer, series, Path(args.output), args.fps, args.duration)

    print(f"Overlay rendered to: {args.output} ({frames} frames)")


def cmd_burn(args: argparse.Namespace) -> None:
    processor = VideoProcessor()
    processor.burn_overlay(Path(args.video), Path(args.overlay), Path(args.output), args.offset)

    print(f"Overlay burned into video: {args.output}")


def cmd_serve(args: argparse.Namespace) -> None:
    data_folder = Path(args.data_folder)

    print("overlog service")
    print("=" * 40)
    print(f"Data folder: {data_folder.absolute()}")
    print(f"Server: http://{args.host}:{args.port}")
    print("=" * 40)

    if data_folder.exists():
        # Picked up by the FastAPI lifespan
        os.environ[config.DATA_FOLDER_ENV] = str(data_folder)
    else:
        print(f"\nWarning: Data folder does not exist: {data_folder}")
        print("You can set it later via POST /folder")

    import uvicorn

    uvicorn.run(
        "overlog.main:app",
        host=args.host,
        port=args.port,
        reload=args.debug,
        log_level=args.log_level.lower(),
    )


def positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="overlog",
        description="Overlay telemetry data onto video files",
    )
    parser.add_argument(
        "--log-level",
        default=config.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help=f"Logging level (default: {config.LOG_LEVEL})",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subparsers.add_parser("parse", help="Parse telemetry data from various formats")
    parse_cmd.add_argument("--input", "-i", required=True, help="Input file path")
    parse_cmd.add_argument("--output", "-o", help="Output file path (defaults to stdout)")
    parse_cmd.add_argument("--format", "-f", help="Input format (detected from extension if not given)")
    parse_cmd.set_defaults(func=cmd_parse)

    render_cmd = subparsers.add_parser("render", help="Render telemetry overlay video")
    render_cmd.add_argument("--input", "-i", required=True, help="Input telemetry file")
    render_cmd.add_argument("--output", "-o", required=True, help="Output video file")
    render_cmd.add_argument("--width", type=positive_int, default=1920, help="Video width (default: 1920)")
    render_cmd.add_argument("--height", type=positive_int, default=1080, help="Video height (default: 1080)")
    render_cmd.add_argument("--duration", type=float, help="Video duration in seconds (default: series duration)")
    render_cmd.add_argument("--fps", type=positive_float, default=30.0, help="Frame rate (default: 30)")
    render_cmd.add_argument("--style", default="default", choices=sorted(STYLES), help="Overlay style")
    render_cmd.set_defaults(func=cmd_render)

    burn_cmd = subparsers.add_parser("burn", help="Burn overlay into video file")
    burn_cmd.add_argument("--video", "-v", required=True, help="Input video file")
    burn_cmd.add_argument("--overlay", required=True, help="Input overlay file")
    burn_cmd.add_argument("--output", "-o", required=True, help="Output video file")
    burn_cmd.add_argument("--offset", type=float, default=0.0, help="Sync offset in seconds (default: 0.0)")
    burn_cmd.set_defaults(func=cmd_burn)

    serve_cmd = subparsers.add_parser("serve", help="Run the HTTP service")
    serve_cmd.add_argument(
        "data_folder",
        nargs="?",
        default=str(config.DEFAULT_DATA_FOLDER),
        help=f"Folder containing telemetry files (default: {config.DEFAULT_DATA_FOLDER})",
    )
    serve_cmd.add_argument("--port", "-p", type=int, default=8000, help="Port to run server on (default: 8000)")
    serve_cmd.add_argument(
        "--host", "-H",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for all interfaces)",
    )
    serve_cmd.add_argument("--debug", "-d", action="store_true", help="Run with auto-reload")
    serve_cmd.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config.configure_logging(args.log_level)

    try:
        args.func(args)
    except OverlogError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
