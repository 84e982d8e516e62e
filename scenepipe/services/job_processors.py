"""Handlers for each job kind.

Every handler downloads its source, runs the engine and returns the
completion data published with the COMPLETED event.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from scenepipe.config import Settings, get_settings
from scenepipe.exceptions import EngineInvocationError
from scenepipe.render.encoders import (
    DEFAULT_COMPRESS_BITRATE_KBPS,
    VIDEO_OUTPUT_ARGS,
    EncodingProfile,
    EncodingStrategySelector,
    EngineRunner,
    compress_image_args,
    compress_video_args,
    image_profile,
    video_profiles,
)
from scenepipe.render.geometry import clamp
from scenepipe.render.layer_compositor import AssetResolver, LayerCompositor
from scenepipe.render.progress_parser import EngineOutputParser, parse_stats_line
from scenepipe.render.scene import MediaKind, Scene
from scenepipe.services.job_service import JobContext, JobHandler, JobKind
from scenepipe.services.media_service import MediaService, format_file_size
from scenepipe.services.progress_stream import ProgressPhase

logger = logging.getLogger(__name__)

OUTPUT_EXTENSIONS = {MediaKind.IMAGE: ".jpg", MediaKind.VIDEO: ".mp4"}
COMPRESSED_SUBDIR = "compressed"


@dataclass
class ComposeJob:
    scene: Scene
    media_kind: MediaKind
    source_url: str


@dataclass
class CompressVideoJob:
    url: str
    bitrate_kbps: float = DEFAULT_COMPRESS_BITRATE_KBPS


@dataclass
class CompressImageJob:
    url: str
    quality: int = 80
    max_width: Optional[int] = None
    max_height: Optional[int] = None


def output_stats(output_path: Path, started: float) -> dict[str, Any]:
    size = output_path.stat().st_size
    return {
        "outputPath": str(output_path),
        "size": size,
        "sizeHuman": format_file_size(size),
        "durationMs": int((time.monotonic() - started) * 1000),
    }


def reduction_ratio(original_size: int, compressed_size: int) -> float:
    """Percentage saved, two decimals."""
    if original_size <= 0:
        return 0.0
    return round((original_size - compressed_size) / original_size * 100, 2)


class EngineProgressRelay:
    """Turns engine output lines into PROCESSING events for one invocation."""

    def __init__(self, ctx: JobContext):
        self.ctx = ctx
        self.parser = EngineOutputParser()

    def __call__(self, stream_name: str, line: str) -> None:
        if stream_name == "stdout":
            parsed = self.parser.feed(line)
        else:
            parsed = parse_stats_line(line) if line.strip() else None
        if parsed is not None:
            self.ctx.emit(ProgressPhase.PROCESSING, parsed.message, parsed.data)


class JobProcessors:
    """Owns the collaborators the handlers need."""

    def __init__(
        self,
        media: MediaService,
        assets: AssetResolver,
        runner: EngineRunner,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.media = media
        self.runner = runner
        self.compositor = LayerCompositor(assets, self.settings)
        self.selector = EncodingStrategySelector(runner)
        self.output_dir = Path(self.settings.output_dir)

    def handlers(self) -> dict[JobKind, JobHandler]:
        return {
            JobKind.COMPOSE: self.compose,
            JobKind.COMPRESS_VIDEO: self.compress_video,
            JobKind.COMPRESS_IMAGE: self.compress_image,
        }

    async def compose(self, job: ComposeJob, ctx: JobContext) -> dict[str, Any]:
        started = time.monotonic()

        # Compile before downloading; asset errors fail fast
        compiled = self.compositor.compile(job.scene, job.media_kind)
        ctx.emit(
            ProgressPhase.PROCESSING,
            "Filter graph compiled",
            {"statements": len(compiled.program.statements), "stickers": len(compiled.sticker_paths)},
        )

        source = await self.media.download_media(
            job.source_url,
            on_event=lambda message: ctx.emit(ProgressPhase.DOWNLOAD, message),
        )

        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.output_dir / f"{job.media_kind.value}_{ctx.job_id}{OUTPUT_EXTENSIONS[job.media_kind]}"

        base_args = [self.settings.ffmpeg_path, *compiled.input_args(str(source.path)), *compiled.graph_args()]
        quality = clamp(job.scene.quality, 1, 100)
        if job.media_kind.capabilities.single_frame:
            profiles = [image_profile(quality)]
            timeout = self.settings.image_processing_timeout_s
        else:
            base_args.extend(VIDEO_OUTPUT_ARGS)
            profiles = video_profiles(quality, self.settings)
            timeout = None

        def on_attempt(profile: EncodingProfile) -> None:
            ctx.emit(
                ProgressPhase.PROCESSING,
                f"Encoding with {profile.name}",
                {"profile": profile.name, "hardware": profile.is_hardware_accelerated},
            )

        result = await self.selector.encode(
            base_args,
            profiles,
            str(output_path),
            on_line=EngineProgressRelay(ctx),
            on_attempt=on_attempt,
            timeout=timeout,
        )

        stats = output_stats(output_path, started)
        stats["profile"] = result.profile.name
        ctx.emit(
            ProgressPhase.PROCESSING,
            f"Output written: {output_path.name} ({stats['sizeHuman']})",
            stats,
        )
        return stats

    async def compress_video(self, job: CompressVideoJob, ctx: JobContext) -> dict[str, Any]:
        started = time.monotonic()
        source = await self.media.download_media(
            job.url,
            on_event=lambda message: ctx.emit(ProgressPhase.DOWNLOAD, message),
        )
        output_path = self._compressed_path(source.filename)
        args = compress_video_args(self.settings.ffmpeg_path, str(source.path), str(output_path), job.bitrate_kbps)
        return await self._run_compression(args, source.path, output_path, ctx, started)

    async def compress_image(self, job: CompressImageJob, ctx: JobContext) -> dict[str, Any]:
        started = time.monotonic()
        source = await self.media.download_media(
            job.url,
            on_event=lambda message: ctx.emit(ProgressPhase.DOWNLOAD, message),
        )
        output_path = self._compressed_path(source.filename)
        args = compress_image_args(
            self.settings.ffmpeg_path,
            str(source.path),
            str(output_path),
            job.quality,
            job.max_width,
            job.max_height,
        )
        return await self._run_compression(
            args, source.path, output_path, ctx, started, timeout=self.settings.image_processing_timeout_s
        )

    def _compressed_path(self, filename: str) -> Path:
        directory = self.output_dir / COMPRESSED_SUBDIR
        directory.mkdir(parents=True, exist_ok=True)
        name = Path(filename)
        return directory / f"compressed_{name.stem}{name.suffix}"

    async def _run_compression(
        self,
        args: list[str],
        source_path: Path,
        output_path: Path,
        ctx: JobContext,
        started: float,
        timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        if output_path.is_file():
            logger.info(f"Skipping compression - file already exists: {output_path}")
            ctx.emit(ProgressPhase.PROCESSING, f"Compressed file already exists: {output_path.name}")
        else:
            ctx.emit(ProgressPhase.PROCESSING, "Starting compression")
            await self.runner.run(args, EngineProgressRelay(ctx), timeout)
            if not output_path.is_file():
                raise EngineInvocationError("Compression completed but output file not found")

        original_size = source_path.stat().st_size
        stats = output_stats(output_path, started)
        stats["originalSize"] = original_size
        stats["reductionPercent"] = reduction_ratio(original_size, stats["size"])
        ctx.emit(
            ProgressPhase.PROCESSING,
            f"Compression complete! Reduced from {format_file_size(original_size)} to "
            f"{stats['sizeHuman']} ({stats['reductionPercent']:.2f}% reduction)",
            stats,
        )
        logger.info(f"[FFMPEG] Final result: {output_path}")
        return stats
