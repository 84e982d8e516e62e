"""Parse FFmpeg output lines into progress messages.

Two shapes are understood:

* ``-progress pipe:1`` blocks on stdout: one ``key=value`` per line, closed
  by ``progress=continue`` or ``progress=end``.
* Classic stats lines on stderr:
  ``frame=  120 fps= 30 q=28.0 size= 256kB time=00:00:04.00 bitrate= 524.3kbits/s speed=1.99x``

Anything else is passed through as the raw line.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

PROGRESS_KEYS = {
    "frame",
    "fps",
    "bitrate",
    "total_size",
    "out_time_us",
    "out_time_ms",
    "out_time",
    "dup_frames",
    "drop_frames",
    "speed",
    "progress",
}

_PROGRESS_LINE = re.compile(r"^([a-z0-9_]+)=\s*(\S*)$")
_TIME = re.compile(r"time=\s*(\S+)")
_SPEED = re.compile(r"speed=\s*(\S+)")
_FRAME = re.compile(r"frame=\s*(\d+)")
_FPS = re.compile(r"fps=\s*([\d.]+)")
_BITRATE = re.compile(r"bitrate=\s*(\S+)")

# stream_0_0_q=28.0 and friends
_STREAM_KEY = re.compile(r"^stream_\d+_\d+_q$")

_CAMEL = {
    "total_size": "totalSize",
    "out_time_us": "outTimeUs",
    "out_time_ms": "outTimeMs",
    "out_time": "outTime",
    "dup_frames": "dupFrames",
    "drop_frames": "dropFrames",
}


@dataclass
class ParsedLine:
    message: str
    data: Optional[dict[str, Any]] = None


@dataclass
class EngineOutputParser:
    """Stateful parser; one instance per engine invocation."""

    _block: dict[str, str] = field(default_factory=dict)

    def feed(self, line: str) -> Optional[ParsedLine]:
        """Parse one line. Returns None for blank lines and mid-block keys."""
        line = line.strip()
        if not line:
            return None

        match = _PROGRESS_LINE.match(line)
        if match and (match.group(1) in PROGRESS_KEYS or _STREAM_KEY.match(match.group(1))):
            key, value = match.groups()
            self._block[key] = value
            if key != "progress":
                return None
            block, self._block = self._block, {}
            return _summarize_block(block)

        return parse_stats_line(line)


def parse_engine_line(line: str) -> Optional[ParsedLine]:
    """Parse a single line without block context.

    A lone ``-progress`` key/value line yields its value as structured data.
    """
    line = line.strip()
    if not line:
        return None
    match = _PROGRESS_LINE.match(line)
    if match and match.group(1) in PROGRESS_KEYS:
        return _summarize_block({match.group(1): match.group(2)})
    return parse_stats_line(line)


def parse_stats_line(line: str) -> ParsedLine:
    """Parse a stderr stats line, falling back to the raw line."""
    if "time=" in line:
        time_match = _TIME.search(line)
        speed_match = _SPEED.search(line)
        if time_match and speed_match:
            data: dict[str, Any] = {"time": time_match.group(1), "speed": speed_match.group(1)}
            frame_match = _FRAME.search(line)
            if frame_match:
                data["frame"] = int(frame_match.group(1))
            fps_match = _FPS.search(line)
            if fps_match:
                data["fps"] = _to_number(fps_match.group(1))
            bitrate_match = _BITRATE.search(line)
            if bitrate_match:
                data["bitrate"] = bitrate_match.group(1)
            return ParsedLine(
                message=f"Processing... Time: {data['time']}, Speed: {data['speed']}",
                data=data,
            )
        return ParsedLine(message=line)

    if "frame=" in line:
        frame_match = _FRAME.search(line)
        if frame_match:
            frame = int(frame_match.group(1))
            return ParsedLine(message=f"Processing frame {frame}...", data={"frame": frame})

    return ParsedLine(message=line)


def _summarize_block(block: dict[str, str]) -> ParsedLine:
    data: dict[str, Any] = {}
    for key, value in block.items():
        if _STREAM_KEY.match(key):
            continue
        if key in ("frame", "out_time_us", "out_time_ms", "dup_frames", "drop_frames", "total_size"):
            number = _to_number(value)
            data[_CAMEL.get(key, key)] = int(number) if isinstance(number, float) else number
        elif key == "fps":
            data["fps"] = _to_number(value)
        else:
            data[_CAMEL.get(key, key)] = value

    if block.get("progress") == "end":
        return ParsedLine(message="Encoding finished", data=data)

    out_time = block.get("out_time")
    speed = block.get("speed")
    if out_time and speed:
        return ParsedLine(message=f"Processing... Time: {out_time}, Speed: {speed}", data=data)
    if "frame" in block:
        return ParsedLine(message=f"Processing frame {block['frame']}...", data=data)
    return ParsedLine(message="Processing...", data=data)


def _to_number(value: str) -> Any:
    try:
        return float(value)
    except ValueError:
        # "N/A" before the first frame
        return value
