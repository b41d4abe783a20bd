"""
Overlay renderer.

Draws one telemetry point onto a transparent RGBA frame with Pillow.
Channels the point does not carry are simply not drawn.
"""

import logging
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from overlog.errors import ConfigError, InvalidInput
from overlog.models.telemetry import TelemetryPoint, TelemetrySeries
from overlog.utils.formatting import clamp, format_speed
from overlog.utils.geo import wgs84_to_local


logger = logging.getLogger(__name__)


HIGH_G_THRESHOLD = 2.0

STYLES: dict[str, dict[str, tuple[int, int, int, int]]] = {
    "default": {
        "text": (255, 255, 255, 255),
        "muted": (200, 200, 200, 255),
        "time": (150, 150, 150, 255),
        "alert": (255, 0, 0, 255),
        "ring": (255, 255, 255, 160),
        "track": (255, 255, 255, 140),
        "marker": (255, 196, 0, 255),
        "panel": (0, 0, 0, 0),
    },
    "minimal": {
        "text": (255, 255, 255, 230),
        "muted": (255, 255, 255, 160),
        "time": (255, 255, 255, 120),
        "alert": (255, 90, 90, 230),
        "ring": (255, 255, 255, 90),
        "track": (255, 255, 255, 90),
        "marker": (255, 255, 255, 230),
        "panel": (0, 0, 0, 0),
    },
    "race": {
        "text": (255, 255, 255, 255),
        "muted": (180, 220, 255, 255),
        "time": (180, 180, 180, 255),
        "alert": (255, 40, 40, 255),
        "ring": (0, 200, 255, 200),
        "track": (0, 200, 255, 170),
        "marker": (255, 40, 40, 255),
        "panel": (10, 14, 20, 170),
    },
}


class OverlayRenderer:
    """Renders telemetry overlay frames of a fixed size."""

    def __init__(self, width: int, height: int, style: str = "default", font_size: int = 24):
        if width <= 0 or height <= 0:
            raise InvalidInput(f"Frame size must be positive, got {width}x{height}")
        if style not in STYLES:
            raise ConfigError(f"Unknown overlay style: {style} (available: {', '.join(STYLES)})")

        self.width = width
        self.height = height
        self.style = style
        self.colors = STYLES[style]
        self.font = ImageFont.load_default(size=font_size)
        self.small_font = ImageFont.load_default(size=max(font_size * 2 // 3, 8))

        # Track minimap polyline in local meters, set by set_track()
        self._track_origin: Optional[tuple[float, float]] = None
        self._track_xy: list[tuple[float, float]] = []
        self._track_min = (0.0, 0.0)
        self._track_span = 1.0

    # ------------------------------------------------------------------
    # Track minimap
    # ------------------------------------------------------------------

    def set_track(self, series: TelemetrySeries) -> None:
        """Project the positions of `series` onto a local plane for the minimap."""
        positions = [(p.latitude, p.longitude) for p in series if p.has_position]
        if len(positions) < 2:
            self._track_origin = None
            self._track_xy = []
            return

        ref_lat, ref_lon = positions[0]
        self._track_origin = (ref_lat, ref_lon)
        self._track_xy = [wgs84_to_local(lat, lon, ref_lat, ref_lon) for lat, lon in positions]

        xs = [x for x, _ in self._track_xy]
        ys = [y for _, y in self._track_xy]
        self._track_min = (min(xs), min(ys))
        self._track_span = max(max(xs) - min(xs), max(ys) - min(ys), 1.0)
        logger.debug(f"Track minimap built from {len(self._track_xy)} positions")

    def _minimap_box(self) -> tuple[int, int, int, int]:
        size = min(self.width, self.height) // 4
        margin = 40
        return (margin, self.height - margin - size, margin + size, self.height - margin)

    def _to_minimap(self, x: float, y: float) -> tuple[float, float]:
        min_x, min_y = self._track_min
        left, _, right, bottom = self._minimap_box()
        scale = (right - left) / self._track_span
        # Screen Y grows downward, north grows upward
        return (left + (x - min_x) * scale, bottom - (y - min_y) * scale)

    # ------------------------------------------------------------------
    # Frame rendering
    # ------------------------------------------------------------------

    def render_frame(self, point: TelemetryPoint, frame_number: int) -> Image.Image:
        """Render `point` on a transparent frame."""
        image = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)

        if self.colors["panel"][3] > 0:
            draw.rectangle((30, 30, 420, 240), fill=self.colors["panel"])

        if point.speed is not None:
            draw.text((50, 50), format_speed(point.speed), font=self.font, fill=self.colors["text"])

        g_force = point.g_force
        if g_force is not None:
            color = self.colors["alert"] if g_force > HIGH_G_THRESHOLD else self.colors["text"]
            draw.text((50, 100), f"G: {g_force:.2f}", font=self.font, fill=color)
            self._draw_g_force_ring(draw, point.g_force_x, point.g_force_y)

        if point.has_position:
            draw.text(
                (50, 150),
                f"GPS: {point.latitude:.6f}, {point.longitude:.6f}",
                font=self.small_font,
                fill=self.colors["muted"],
            )

        if point.altitude is not None:
            draw.text((50, 200), f"Alt: {point.altitude:.0f}m", font=self.font, fill=self.colors["text"])

        draw.text(
            (self.width - 150, 50),
            point.timestamp.strftime("%H:%M:%S"),
            font=self.font,
            fill=self.colors["time"],
        )

        if self._track_xy:
            self._draw_minimap(draw, point)

        return image

    def _draw_g_force_ring(self, draw: ImageDraw.ImageDraw, gx: float, gy: float) -> None:
        radius = min(self.width, self.height) // 10
        cx = self.width - radius - 40
        cy = self.height - radius - 40

        draw.ellipse((cx - radius, cy - radius, cx + radius, cy + radius), outline=self.colors["ring"], width=2)
        draw.ellipse(
            (cx - radius // 2, cy - radius // 2, cx + radius // 2, cy + radius // 2),
            outline=self.colors["ring"],
            width=1,
        )

        # Full ring = 2 g; lateral on X, longitudinal on Y (forward is up)
        scale = radius / 2.0
        dx = clamp(gx * scale, -radius, radius)
        dy = clamp(gy * scale, -radius, radius)
        dot = max(radius // 10, 3)
        draw.ellipse(
            (cx + dx - dot, cy - dy - dot, cx + dx + dot, cy - dy + dot),
            fill=self.colors["marker"],
        )

    def _draw_minimap(self, draw: ImageDraw.ImageDraw, point: TelemetryPoint) -> None:
        path = [self._to_minimap(x, y) for x, y in self._track_xy]
        draw.line(path, fill=self.colors["track"], width=2)

        if point.has_position and self._track_origin is not None:
            ref_lat, ref_lon = self._track_origin
            px, py = self._to_minimap(*wgs84_to_local(point.latitude, point.longitude, ref_lat, ref_lon))
            draw.ellipse((px - 5, py - 5, px + 5, py + 5), fill=self.colors["marker"])
