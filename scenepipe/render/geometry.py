"""Canvas geometry helpers.

All functions here are total: out-of-range, NaN or infinite input is
clamped into range rather than rejected, so the compiler can always place
a layer somewhere on the canvas.
"""

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

_FOUR_PLACES = Decimal("0.0001")


@dataclass(frozen=True)
class Box:
    """Integer rectangle fully contained in the canvas."""

    x: int
    y: int
    width: int
    height: int


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties towards +infinity."""
    return math.floor(value + 0.5)


def clamp(value: float, min_value: float, max_value: float) -> float:
    """Clamp ``value`` into ``[min_value, max_value]``."""
    return min(max_value, max(min_value, value))


def clamp_handling_nan(value: float, min_value: float, max_value: float) -> float:
    """Float clamp used for overlay coordinates.

    Fractional positions are kept so sub-pixel placement survives into the
    overlay expression.
    """
    if value is None or math.isnan(value):
        return min_value
    return min(max_value, max(min_value, value))


def clamp_to_int(value: float, min_value: int, max_value: int) -> int:
    """Round then clamp into ``[min_value, max_value]``."""
    if math.isnan(value):
        return min_value
    if math.isinf(value):
        return max_value if value > 0 else min_value
    return max(min_value, min(max_value, round_half_up(value)))


def to_pixels(value: float, total: float) -> float:
    """Interpret ``value`` as a ratio of ``total`` when ``<= 1``, else as pixels."""
    if value is None or not math.isfinite(value):
        return 0.0
    return value * total if value <= 1 else value


def to_expression(value: float) -> str:
    """Render a number for a filter expression.

    Integral values print without decimals, everything else with exactly
    four decimal places (ties rounded away from zero).
    """
    if float(value).is_integer():
        return str(int(value))
    return str(Decimal(value).quantize(_FOUR_PLACES, rounding=ROUND_HALF_UP))


def format_number(value: float) -> str:
    """Shortest round-trip form; integral values without a fraction."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def to_radians(degrees: float) -> float:
    return degrees * math.pi / 180


def clamp_box_to_canvas(
    x: float,
    y: float,
    width: float,
    height: float,
    canvas_width: int,
    canvas_height: int,
) -> Box:
    """Clamp a box so its size fits the canvas and its origin keeps it inside."""
    w = clamp_to_int(width, 1, canvas_width)
    h = clamp_to_int(height, 1, canvas_height)
    return Box(
        x=clamp_to_int(x, 0, canvas_width - w),
        y=clamp_to_int(y, 0, canvas_height - h),
        width=w,
        height=h,
    )


def clamp_position(x: float, y: float, canvas_width: int, canvas_height: int) -> tuple[float, float]:
    """Clamp an overlay origin into the canvas, keeping fractional pixels."""
    return (
        clamp_handling_nan(x, 0, canvas_width),
        clamp_handling_nan(y, 0, canvas_height),
    )
