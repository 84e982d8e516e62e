"""Job submission endpoints."""

import logging

from fastapi import APIRouter

from scenepipe.api.deps import JobServiceDep
from scenepipe.render.encoders import DEFAULT_COMPRESS_BITRATE_KBPS
from scenepipe.schemas.envelope import ApiResponse
from scenepipe.schemas.job import CompressImageRequest, CompressVideoRequest
from scenepipe.schemas.scene import ComposeRequest
from scenepipe.services.job_processors import ComposeJob, CompressImageJob, CompressVideoJob
from scenepipe.services.job_service import JobKind

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/compose", response_model=ApiResponse)
async def compose_media(request: ComposeRequest, jobs: JobServiceDep) -> ApiResponse:
    """Compose a scene onto an image or video. Returns the job id."""
    logger.info(
        f"Compose {request.media_type} requested: {len(request.stickers)} stickers, "
        f"{len(request.text_overlays or [])} text overlays"
    )
    if request.filters.order:
        logger.info(f"Filter order (informational): {request.filters.order}")

    job_id = jobs.submit(
        JobKind.COMPOSE,
        ComposeJob(scene=request.to_scene(), media_kind=request.media_kind, source_url=request.source_url),
    )
    return ApiResponse(
        success=True,
        message=f"Submitted {request.media_type} composition. Track it with the job id provided as data",
        data=job_id,
    )


@router.post("/compress-video", response_model=ApiResponse)
async def compress_video(request: CompressVideoRequest, jobs: JobServiceDep) -> ApiResponse:
    logger.info(f"Compress video requested: {request.url}")
    job_id = jobs.submit(
        JobKind.COMPRESS_VIDEO,
        CompressVideoJob(url=request.url, bitrate_kbps=request.bitrate or DEFAULT_COMPRESS_BITRATE_KBPS),
    )
    return ApiResponse(
        success=True,
        message="Submitted task for compressing video. Track it with the job id provided as data",
        data=job_id,
    )


@router.post("/compress-image", response_model=ApiResponse)
async def compress_image(request: CompressImageRequest, jobs: JobServiceDep) -> ApiResponse:
    logger.info(f"Compress image requested: {request.url} (quality {request.quality})")
    job_id = jobs.submit(
        JobKind.COMPRESS_IMAGE,
        CompressImageJob(
            url=request.url,
            quality=request.quality,
            max_width=request.max_width,
            max_height=request.max_height,
        ),
    )
    return ApiResponse(
        success=True,
        message="Submitted task for compressing image. Track it with the job id provided as data",
        data=job_id,
    )
