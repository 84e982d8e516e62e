"""Color conversion to FFmpeg color literals (``0xRRGGBB@alpha``)."""

import re

from scenepipe.render.geometry import format_number, round_half_up

DEFAULT_COLOR = "0xFFFFFF@1"

_RGBA_PATTERN = re.compile(
    r"rgba?\s*\(\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)(?:\s*,\s*([\d.]+))?\s*\)",
    re.IGNORECASE,
)
_HEX_PATTERN = re.compile(r"^#?[0-9a-fA-F]{6}$")


def _clamp255(value: float) -> int:
    return max(0, min(255, round_half_up(value)))


def _clamp_alpha(value: float) -> float:
    return max(0.0, min(1.0, value))


def _parse_number(raw: str) -> float | None:
    try:
        return float(raw)
    except ValueError:
        return None


def resolve_color(value: str | None) -> str:
    """Convert ``rgba(r,g,b,a)``, ``rgb(r,g,b)`` or hex into an FFmpeg color.

    Channels are clamped to 0-255 and alpha to 0-1 independently. Anything
    unparseable falls back to opaque white.
    """
    if not value:
        return DEFAULT_COLOR

    match = _RGBA_PATTERN.search(value)
    if match:
        channels = [_parse_number(match.group(i)) for i in (1, 2, 3)]
        alpha_raw = match.group(4)
        alpha = _parse_number(alpha_raw) if alpha_raw is not None else 1.0
        if any(c is None for c in channels) or alpha is None:
            return DEFAULT_COLOR
        r, g, b = (_clamp255(c) for c in channels)
        return f"0x{r:02X}{g:02X}{b:02X}@{format_number(_clamp_alpha(alpha))}"

    stripped = value.strip()
    if _HEX_PATTERN.match(stripped):
        return f"0x{stripped.lstrip('#').upper()}@1"

    return DEFAULT_COLOR
