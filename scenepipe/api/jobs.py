"""Job status and live progress (Server-Sent Events)."""

import logging
import time
from collections.abc import AsyncGenerator

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from scenepipe.api.deps import JobServiceDep, SettingsDep
from scenepipe.schemas.envelope import ApiResponse
from scenepipe.services.job_service import JobService
from scenepipe.services.progress_stream import (
    ProgressSubscription,
    create_connected_message,
    create_heartbeat_message,
    create_progress_message,
    to_sse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/status", response_model=ApiResponse)
async def get_job_status(
    jobs: JobServiceDep,
    ids: str = Query(default="", description="Comma-separated job ids"),
) -> ApiResponse:
    """Map each known job id to its state label; unknown ids are omitted."""
    job_ids = [job_id.strip() for job_id in ids.split(",") if job_id.strip()]
    if not job_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No job IDs provided. Use ?ids=your-job-id or ?ids=id1,id2,id3",
        )

    logger.info(f"Get job status for IDs: {job_ids}")
    return ApiResponse(
        success=True,
        message="Fetched status for provided job ids",
        data=jobs.query_state(job_ids),
    )


@router.get("/{job_id}/progress")
async def stream_job_progress(
    job_id: str,
    request: Request,
    jobs: JobServiceDep,
    settings: SettingsDep,
) -> StreamingResponse:
    """Stream progress events until the job completes or fails.

    Frames are ``data: <json>\\n\\n``. The first is ``connected``; a
    ``heartbeat`` is sent every ``heartbeat_interval_s`` whether or not the
    job is reporting; the last is ``completion``, after which the stream
    closes.
    """
    # Raises JobNotFoundError (404) before any headers are sent
    subscription = jobs.subscribe(job_id)
    logger.info(f"SSE connection opened for job: {job_id}")

    return StreamingResponse(
        _event_stream(job_id, subscription, jobs, request, settings.heartbeat_interval_s),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def _event_stream(
    job_id: str,
    subscription: ProgressSubscription,
    jobs: JobService,
    request: Request,
    heartbeat_interval: float,
) -> AsyncGenerator[str, None]:
    try:
        yield to_sse(create_connected_message(job_id))
        next_heartbeat = time.monotonic() + heartbeat_interval
        while True:
            if await request.is_disconnected():
                logger.info(f"SSE client disconnected for job: {job_id}")
                break

            # Heartbeats run on their own clock, not on job silence
            remaining = next_heartbeat - time.monotonic()
            if remaining <= 0:
                yield to_sse(create_heartbeat_message(job_id))
                next_heartbeat = time.monotonic() + heartbeat_interval
                continue

            event = await subscription.next_event(timeout=remaining)
            if event is None:
                continue

            yield to_sse(create_progress_message(job_id, event))
            if event.is_terminal:
                logger.info(f"Job {job_id} finished, closing SSE connection")
                break
    finally:
        jobs.unsubscribe(job_id, subscription)
