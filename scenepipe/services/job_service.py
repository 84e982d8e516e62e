"""Asynchronous job execution.

Jobs move QUEUED -> RUNNING -> COMPLETED | FAILED. Each job runs as one
asyncio task and reports through its own ProgressStream. The registry is
owned by the service instance; records are removed when the job is terminal
and its last observer detaches, or after ``job_retention_s`` when nobody
ever observed it.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from scenepipe.config import Settings, get_settings
from scenepipe.exceptions import JobNotFoundError, ScenePipeError
from scenepipe.services.progress_stream import (
    ProgressEvent,
    ProgressPhase,
    ProgressStream,
    ProgressSubscription,
)

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})


class JobKind(Enum):
    """Closed set of job types; every kind needs a registered handler."""

    COMPOSE = "compose"
    COMPRESS_VIDEO = "compress_video"
    COMPRESS_IMAGE = "compress_image"


@dataclass
class Job:
    id: str
    kind: JobKind
    payload: Any
    stream: ProgressStream
    state: JobState = JobState.QUEUED
    created_at: float = field(default_factory=time.monotonic)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class JobContext:
    """What a handler sees of its job: the id and a way to report progress."""

    def __init__(self, job: Job):
        self._job = job

    @property
    def job_id(self) -> str:
        return self._job.id

    def emit(self, phase: ProgressPhase, message: str, data: Optional[dict[str, Any]] = None) -> None:
        if phase in (ProgressPhase.COMPLETED, ProgressPhase.FAILED):
            raise ValueError("Terminal events are published by the job service")
        self._job.stream.publish(ProgressEvent(phase=phase, message=message, data=data))


JobHandler = Callable[[Any, JobContext], Awaitable[dict[str, Any]]]


class JobRegistry:
    """Job records keyed by id."""

    def __init__(self, retention_s: float = 3600.0):
        self.retention_s = retention_s
        self._jobs: dict[str, Job] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def add(self, job: Job) -> None:
        self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def remove(self, job_id: str) -> None:
        if self._jobs.pop(job_id, None) is not None:
            logger.debug(f"Released job record {job_id}")

    def active(self) -> list[Job]:
        return [job for job in self._jobs.values() if not job.is_terminal]

    def snapshot(self, job_ids: list[str]) -> dict[str, str]:
        """State labels for known ids; unknown ids are omitted."""
        return {job_id: self._jobs[job_id].state.value for job_id in job_ids if job_id in self._jobs}

    def reap_expired(self, now: Optional[float] = None) -> int:
        """Drop terminal, unobserved jobs older than the retention window."""
        now = time.monotonic() if now is None else now
        expired = [
            job.id
            for job in self._jobs.values()
            if job.is_terminal
            and job.stream.observer_count == 0
            and job.finished_at is not None
            and now - job.finished_at >= self.retention_s
        ]
        for job_id in expired:
            self.remove(job_id)
        return len(expired)


class JobService:
    """Submits jobs and drives them to a terminal state."""

    def __init__(
        self,
        handlers: dict[JobKind, JobHandler],
        registry: Optional[JobRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        missing = [kind.name for kind in JobKind if kind not in handlers]
        if missing:
            raise ValueError(f"No handler registered for job kinds: {', '.join(missing)}")

        self.settings = settings or get_settings()
        self._handlers = dict(handlers)
        if registry is None:
            registry = JobRegistry(retention_s=self.settings.job_retention_s)
        self.registry = registry
        self._tasks: set[asyncio.Task] = set()

    def submit(self, kind: JobKind, payload: Any) -> str:
        """Create a job and schedule it. Returns immediately with the job id."""
        self.registry.reap_expired()

        job_id = str(uuid.uuid4())
        job = Job(
            id=job_id,
            kind=kind,
            payload=payload,
            stream=ProgressStream(job_id, queue_size=self.settings.progress_queue_size),
        )
        self.registry.add(job)
        job.stream.publish(ProgressEvent(phase=ProgressPhase.QUEUE, message="Job queued"))
        logger.info(f"Job {job_id} ({kind.value}) queued")

        task = asyncio.get_running_loop().create_task(self._run(job), name=f"job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job_id

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.registry.get(job_id)

    def query_state(self, job_ids: list[str]) -> dict[str, str]:
        self.registry.reap_expired()
        return self.registry.snapshot(job_ids)

    def subscribe(self, job_id: str) -> ProgressSubscription:
        """Attach an observer to a job's progress stream.

        Raises:
            JobNotFoundError: Unknown or released job id
        """
        job = self.registry.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job.stream.attach()

    def unsubscribe(self, job_id: str, subscription: ProgressSubscription) -> None:
        """Detach an observer; idempotent. The last detach of a finished job frees it."""
        job = self.registry.get(job_id)
        if job is None:
            return
        job.stream.detach(subscription)
        self._release_if_done(job)

    async def shutdown(self) -> None:
        """Cancel running jobs; each still ends with a FAILED event."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        # Tasks cancelled before their first step never reach _run's handler
        for job in self.registry.active():
            self._fail(job, "Job cancelled")

    async def _run(self, job: Job) -> None:
        job.state = JobState.RUNNING
        job.started_at = time.monotonic()
        job.stream.publish(ProgressEvent(phase=ProgressPhase.PROCESSING, message="Job started"))
        logger.info(f"Job {job.id} started")

        handler = self._handlers[job.kind]
        try:
            result = await handler(job.payload, JobContext(job))
        except asyncio.CancelledError:
            self._fail(job, "Job cancelled")
            raise
        except Exception as e:
            logger.exception(f"Job {job.id} failed")
            data = None
            if isinstance(e, ScenePipeError):
                data = {"code": e.code}
            job.stream.publish(
                ProgressEvent(phase=ProgressPhase.ERROR, message=f"Failed: {e}", data=data)
            )
            self._fail(job, str(e) or e.__class__.__name__, data)
        else:
            job.state = JobState.COMPLETED
            job.result = result
            job.finished_at = time.monotonic()
            job.stream.publish(
                ProgressEvent(phase=ProgressPhase.COMPLETED, message="Job completed", data=result)
            )
            logger.info(f"Job {job.id} completed")

    def _fail(self, job: Job, message: str, data: Optional[dict[str, Any]] = None) -> None:
        job.state = JobState.FAILED
        job.error = message
        job.finished_at = time.monotonic()
        job.stream.publish(ProgressEvent(phase=ProgressPhase.FAILED, message=message, data=data))

    def _release_if_done(self, job: Job) -> None:
        if job.is_terminal and job.stream.ever_observed and job.stream.observer_count == 0:
            self.registry.remove(job.id)
