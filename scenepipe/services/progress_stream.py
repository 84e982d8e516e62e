"""Per-job progress broadcast.

One producer (the job task) publishes events; any number of observers each
get their own bounded queue. Publishing never blocks: an observer whose
queue is full loses intermediate events, but the terminal event is always
delivered.
"""

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ProgressPhase(str, Enum):
    QUEUE = "QUEUE"
    DOWNLOAD = "DOWNLOAD"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ERROR = "ERROR"


TERMINAL_PHASES = frozenset({ProgressPhase.COMPLETED, ProgressPhase.FAILED})


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ProgressEvent:
    """One lifecycle or progress notification."""

    phase: ProgressPhase
    message: str
    data: Optional[dict[str, Any]] = None
    timestamp: int = field(default_factory=now_ms)

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": self.timestamp,
            "phase": self.phase.value,
            "message": self.message,
        }
        if self.data is not None:
            payload["data"] = self.data
        return payload


class ProgressSubscription:
    """An observer's handle on a stream."""

    def __init__(self, stream: "ProgressStream", queue: "asyncio.Queue[ProgressEvent]"):
        self.stream = stream
        self.queue = queue

    @property
    def job_id(self) -> str:
        return self.stream.job_id

    async def next_event(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """Wait for the next event; None when ``timeout`` elapses first."""
        if timeout is None:
            return await self.queue.get()
        try:
            return await asyncio.wait_for(self.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        """Iterate until the terminal event, which is yielded last."""
        while True:
            event = await self.queue.get()
            yield event
            if event.is_terminal:
                return


class ProgressStream:
    """Fan-out channel for one job."""

    def __init__(self, job_id: str, queue_size: int = 256):
        self.job_id = job_id
        self.queue_size = queue_size
        self._subscribers: set[asyncio.Queue[ProgressEvent]] = set()
        self.terminal_event: Optional[ProgressEvent] = None
        # Set once anyone attached; unobserved terminal jobs are reaped by age
        self.ever_observed = False

    @property
    def is_closed(self) -> bool:
        return self.terminal_event is not None

    @property
    def observer_count(self) -> int:
        return len(self._subscribers)

    def attach(self) -> ProgressSubscription:
        """Register an observer. A closed stream replays its terminal event."""
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        self.ever_observed = True
        if self.terminal_event is not None:
            queue.put_nowait(self.terminal_event)
        logger.info(f"New observer for job {self.job_id}. Total: {len(self._subscribers)}")
        return ProgressSubscription(self, queue)

    def detach(self, subscription: ProgressSubscription) -> bool:
        """Remove an observer. Safe to call more than once."""
        if subscription.queue not in self._subscribers:
            return False
        self._subscribers.discard(subscription.queue)
        logger.info(f"Observer removed for job {self.job_id}. Remaining: {len(self._subscribers)}")
        return True

    def publish(self, event: ProgressEvent) -> int:
        """Deliver an event to every observer without blocking.

        Returns:
            Number of observers the event reached
        """
        if self.terminal_event is not None:
            logger.warning(f"Dropping {event.phase.value} event for closed stream {self.job_id}")
            return 0
        if event.is_terminal:
            self.terminal_event = event

        notified = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
                notified += 1
            except asyncio.QueueFull:
                if not event.is_terminal:
                    logger.warning(f"Queue full for observer of job {self.job_id}, event dropped")
                    continue
                # Make room so the terminal event is never lost
                queue.get_nowait()
                queue.put_nowait(event)
                notified += 1

        logger.debug(f"Published {event.phase.value} to {notified} observers for job {self.job_id}")
        return notified


# =============================================================================
# Wire messages
# =============================================================================


def create_connected_message(job_id: str) -> dict[str, Any]:
    return {
        "type": "connected",
        "jobId": job_id,
        "timestamp": now_ms(),
        "message": "Connected to job progress stream",
    }


def create_progress_message(job_id: str, event: ProgressEvent) -> dict[str, Any]:
    """``completion`` for terminal events, ``progress`` otherwise."""
    return {
        "type": "completion" if event.is_terminal else "progress",
        "jobId": job_id,
        **event.to_dict(),
    }


def create_heartbeat_message(job_id: str) -> dict[str, Any]:
    return {"type": "heartbeat", "jobId": job_id, "timestamp": now_ms()}


def to_sse(message: dict[str, Any]) -> str:
    """Format a message as one SSE frame."""
    return f"data: {json.dumps(message)}\n\n"
