"""Text overlay rendering with FFmpeg drawtext.

Each text overlay becomes its own transparent canvas sized to the text box,
with the text drawn centered on it and an optional rotation. The resulting
pad is later overlaid onto the composite like any other layer.
"""

import math
import re
from dataclasses import dataclass

from scenepipe.render.color import resolve_color
from scenepipe.render.filter_graph import FilterProgram
from scenepipe.render.geometry import clamp_position, format_number, round_half_up, to_pixels, to_radians
from scenepipe.render.scene import Canvas, TextOverlaySpec

LINE_BREAK_PATTERN = re.compile(r"<br\s*/?>", re.IGNORECASE)

# Baseline: a 400x200 box renders at 24px
BASE_BOX_WIDTH = 400
BASE_BOX_HEIGHT = 200
BASE_FONT_SIZE = 24
MIN_FONT_SIZE = 8
LINE_SPACING_RATIO = 0.8


@dataclass
class PreparedText:
    escaped: str
    lines: int


@dataclass
class TextLayout:
    """Resolved geometry of one text box."""

    x: float
    y: float
    box_width: int
    box_height: int
    font_size: int
    line_spacing: int
    lines: int


def escape_text(text: str) -> str:
    """Escape text for a single-quoted drawtext ``text`` option."""
    return (
        text.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace(":", "\\:")
        .replace("'", "'\\''")
    )


def escape_path(path: str) -> str:
    """Escape a file path for a single-quoted filter option."""
    return path.replace("\\", "\\\\").replace(":", "\\:").replace("'", "\\'")


def prepare_text(raw: str) -> PreparedText:
    """Turn ``<br>`` tokens into newlines, count lines and escape."""
    normalized = LINE_BREAK_PATTERN.sub("\n", raw)
    return PreparedText(escaped=escape_text(normalized), lines=len(normalized.split("\n")))


def calculate_font_size(box_width: int, canvas_height: int) -> int:
    scale_factor = min(box_width / BASE_BOX_WIDTH, canvas_height / BASE_BOX_HEIGHT)
    return max(MIN_FONT_SIZE, math.floor(BASE_FONT_SIZE * scale_factor))


def layout_text(overlay: TextOverlaySpec, canvas: Canvas, lines: int, padding: int) -> TextLayout:
    """Compute placement, box size and font metrics for a text overlay."""
    x, y = clamp_position(
        to_pixels(overlay.x, canvas.width),
        to_pixels(overlay.y, canvas.height),
        canvas.width,
        canvas.height,
    )
    raw_box_width = max(1, round_half_up(to_pixels(overlay.width, canvas.width)))
    font_size = calculate_font_size(raw_box_width, canvas.height)
    line_spacing = math.floor(font_size * LINE_SPACING_RATIO)
    raw_box_height = font_size * lines + line_spacing * (lines - 1)
    return TextLayout(
        x=x,
        y=y,
        box_width=raw_box_width + padding * 2,
        box_height=raw_box_height + padding * 2,
        font_size=font_size,
        line_spacing=line_spacing,
        lines=lines,
    )


class TextRenderer:
    """Builds the drawtext statements for text overlays."""

    def __init__(self, canvas: Canvas, padding: int, frame_rate: int | None = None):
        self.canvas = canvas
        self.padding = padding
        # Set for video so the text canvas carries the composite frame rate
        self.frame_rate = frame_rate

    def build(
        self,
        program: FilterProgram,
        overlay: TextOverlaySpec,
        index: int,
        font_path: str,
    ) -> tuple[str, TextLayout]:
        """Append the statements for one overlay.

        Args:
            program: Program to append to
            overlay: Text overlay specification
            index: Overlay index, used to name its pads
            font_path: Resolved font file

        Returns:
            Final pad name of the overlay and its layout
        """
        prepared = prepare_text(overlay.text)
        layout = layout_text(overlay, self.canvas, prepared.lines, self.padding)

        canvas_pad = f"tc{index}"
        source = f"color=c=black@0:s={layout.box_width}x{layout.box_height}"
        if self.frame_rate:
            source += f":r={self.frame_rate}"
        program.add((), source, canvas_pad)

        text_pad = f"tt{index}"
        program.add((canvas_pad,), self.build_drawtext(prepared, layout, overlay, font_path), text_pad)

        rotation = overlay.rotation or 0
        if rotation == 0:
            return text_pad, layout

        rotated_pad = f"tr{index}"
        program.add(
            (text_pad,),
            f"rotate={format_number(to_radians(rotation))}:ow=rotw(iw):oh=roth(ih):c=black@0",
            rotated_pad,
        )
        return rotated_pad, layout

    def build_drawtext(
        self,
        prepared: PreparedText,
        layout: TextLayout,
        overlay: TextOverlaySpec,
        font_path: str,
    ) -> str:
        """Build the drawtext filter for a prepared text."""
        size = layout.font_size
        spacing = layout.line_spacing
        lines = layout.lines
        params = [
            f"drawtext=fontfile='{escape_path(font_path)}'",
            f"text='{prepared.escaped}'",
            f"fontsize={size}",
            f"fontcolor={resolve_color(overlay.color)}",
            "x=(w-text_w)/2",
            f"y=(h - (({size} * {lines}) + ({spacing} * ({lines} - 1)))) / 2",
            f"line_spacing={spacing}",
        ]

        if overlay.background_color:
            params.extend([
                "box=1",
                f"boxcolor={resolve_color(overlay.background_color)}",
                f"boxborderw={self.padding}",
            ])

        return ":".join(params)
