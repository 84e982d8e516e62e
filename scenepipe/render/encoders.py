"""Encoding profiles and the fallback selector.

A profile is the codec-specific tail of one engine invocation. Videos try
an ordered chain (NVENC when enabled, x264 with copied audio, x264 with AAC)
and stop at the first success; stills have a single MJPEG profile.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from scenepipe.config import Settings, get_settings
from scenepipe.exceptions import EncodingExhaustedError, EngineInvocationError
from scenepipe.render.engine import EngineResult, LineCallback
from scenepipe.render.geometry import clamp, format_number, round_half_up

logger = logging.getLogger(__name__)

# Shared by every video profile, placed after the graph mapping
VIDEO_OUTPUT_ARGS = [
    "-map", "1:a?",
    "-pix_fmt", "yuv420p",
    "-movflags", "+faststart",
    "-threads", "0",
    "-filter_threads", "2",
    "-shortest",
]

PROGRESS_ARGS = ["-progress", "pipe:1"]


class EngineRunner(Protocol):
    async def run(
        self,
        args: list[str],
        on_line: Optional[LineCallback] = None,
        timeout: Optional[float] = None,
    ) -> EngineResult: ...


@dataclass(frozen=True)
class EncodingProfile:
    """One concrete engine invocation strategy."""

    name: str
    engine_args: tuple[str, ...]
    is_hardware_accelerated: bool = False


@dataclass
class EncodingResult:
    profile: EncodingProfile
    attempts: list[str] = field(default_factory=list)
    duration_ms: int = 0


# =============================================================================
# Quality mapping
# =============================================================================


def x264_crf(quality: float) -> int:
    """Three tiers: >=90 -> 18, >=80 -> 20, else 23."""
    if quality >= 90:
        return 18
    if quality >= 80:
        return 20
    return 23


def nvenc_cq(quality: float) -> int:
    """Three tiers: >=90 -> 19, >=80 -> 21, else 24."""
    if quality >= 90:
        return 19
    if quality >= 80:
        return 21
    return 24


def mjpeg_qscale(quality: float) -> int:
    """Map 1-100 quality onto the MJPEG ``-q:v`` scale (2 is best)."""
    q = clamp(quality, 1, 100)
    return round_half_up((100 - min(99, q)) / 3) + 2


# =============================================================================
# Profiles
# =============================================================================


def video_profiles(quality: float, settings: Optional[Settings] = None) -> list[EncodingProfile]:
    """Ordered fallback chain for video output."""
    settings = settings or get_settings()
    crf = str(x264_crf(quality))
    profiles = []

    if settings.video_encoder == "nvenc":
        profiles.append(
            EncodingProfile(
                name="nvenc",
                engine_args=(
                    "-c:v", "h264_nvenc",
                    "-preset", settings.nvenc_preset,
                    "-rc", "vbr",
                    "-cq", str(nvenc_cq(quality)),
                    "-b:v", "0",
                    "-c:a", "copy",
                ),
                is_hardware_accelerated=True,
            )
        )

    profiles.append(
        EncodingProfile(
            name="x264-copy-audio",
            engine_args=(
                "-c:v", "libx264",
                "-preset", settings.x264_preset,
                "-crf", crf,
                "-c:a", "copy",
            ),
        )
    )
    profiles.append(
        EncodingProfile(
            name="x264-aac",
            engine_args=(
                "-c:v", "libx264",
                "-preset", settings.x264_preset,
                "-crf", crf,
                "-c:a", "aac",
                "-b:a", settings.aac_bitrate,
            ),
        )
    )
    return profiles


def image_profile(quality: float) -> EncodingProfile:
    return EncodingProfile(
        name="mjpeg",
        engine_args=("-frames:v", "1", "-q:v", str(mjpeg_qscale(quality))),
    )


def build_command(
    base_args: list[str],
    profile: EncodingProfile,
    output_path: str,
    progress: bool = True,
) -> list[str]:
    """Assemble ``base + profile + [-progress pipe:1] + output``.

    ``base_args`` starts with the executable and already carries inputs,
    the filter program and the output mapping.
    """
    args = [*base_args, *profile.engine_args]
    if progress:
        args.extend(PROGRESS_ARGS)
    args.append(output_path)
    return args


# =============================================================================
# Standalone compression
# =============================================================================

DEFAULT_COMPRESS_BITRATE_KBPS = 500
COMPRESS_MAX_WIDTH = 854
COMPRESS_MAX_HEIGHT = 480


def compression_qscale(quality: float) -> int:
    """Map 1-100 quality onto ``-q:v`` 31-1."""
    return max(1, min(31, round_half_up((100 - quality) * 31 / 100)))


def compress_video_args(
    ffmpeg_path: str,
    input_path: str,
    output_path: str,
    bitrate_kbps: float = DEFAULT_COMPRESS_BITRATE_KBPS,
) -> list[str]:
    """Fast re-encode capped at 480p and the given bitrate."""
    return [
        ffmpeg_path,
        "-i", input_path,
        "-c:v", "libx264",
        "-preset", "ultrafast",
        "-tune", "fastdecode",
        "-crf", "28",
        "-maxrate", f"{format_number(bitrate_kbps)}k",
        "-bufsize", f"{format_number(bitrate_kbps * 1.5)}k",
        "-vf",
        f"scale='min({COMPRESS_MAX_WIDTH},iw)':'min({COMPRESS_MAX_HEIGHT},ih)'"
        ":force_original_aspect_ratio=decrease:force_divisible_by=2",
        "-c:a", "aac",
        "-b:a", "96k",
        "-ac", "2",
        "-ar", "44100",
        "-movflags", "+faststart",
        "-threads", "0",
        *PROGRESS_ARGS,
        "-y",
        output_path,
    ]


def compress_image_args(
    ffmpeg_path: str,
    input_path: str,
    output_path: str,
    quality: float,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
) -> list[str]:
    """Single-frame re-encode, optionally bounded to ``max_width`` x ``max_height``."""
    args = [ffmpeg_path, "-i", input_path]
    if max_width or max_height:
        width = max_width or -1
        height = max_height or -1
        args.extend([
            "-vf",
            f"scale='min({width},iw)':'min({height},ih)':force_original_aspect_ratio=decrease",
        ])
    args.extend([
        "-q:v", str(compression_qscale(quality)),
        "-frames:v", "1",
        "-update", "1",
        "-y",
        output_path,
    ])
    return args


class EncodingStrategySelector:
    """Tries profiles in order until one succeeds."""

    def __init__(self, runner: EngineRunner):
        self.runner = runner

    async def encode(
        self,
        base_args: list[str],
        profiles: list[EncodingProfile],
        output_path: str,
        on_line: Optional[LineCallback] = None,
        on_attempt: Optional[Callable[[EncodingProfile], None]] = None,
        timeout: Optional[float] = None,
    ) -> EncodingResult:
        """Run the fallback chain.

        Each profile is attempted at most once; the first success ends the
        chain. ``on_attempt`` is called before each invocation; ``timeout``
        bounds each one and defaults to the runner's own limit.

        Raises:
            EncodingExhaustedError: Every profile failed
        """
        if not profiles:
            raise EncodingExhaustedError()

        attempts: list[str] = []
        last_error: Optional[EngineInvocationError] = None

        for profile in profiles:
            attempts.append(profile.name)
            if on_attempt is not None:
                on_attempt(profile)
            logger.info(f"[ENCODE] Trying profile {profile.name} ({len(attempts)}/{len(profiles)})")
            try:
                result = await self.runner.run(build_command(base_args, profile, output_path), on_line, timeout)
            except EngineInvocationError as e:
                last_error = e
                logger.warning(f"[ENCODE] Profile {profile.name} failed: {e.message}")
                if e.stderr_tail:
                    logger.debug(f"[ENCODE] stderr tail:\n{e.stderr_tail}")
                continue

            logger.info(f"[ENCODE] Profile {profile.name} succeeded")
            return EncodingResult(profile=profile, attempts=attempts, duration_ms=result.duration_ms)

        logger.error(f"[ENCODE] All {len(attempts)} encoding attempts exhausted")
        raise EncodingExhaustedError(attempts=attempts, last_error=last_error)
