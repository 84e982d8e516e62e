"""Tests for per-job progress fan-out and SSE message builders."""

import json

import pytest

from scenepipe.services.progress_stream import (
    ProgressEvent,
    ProgressPhase,
    ProgressStream,
    create_connected_message,
    create_heartbeat_message,
    create_progress_message,
    to_sse,
)


def event(phase=ProgressPhase.PROCESSING, message="tick", data=None) -> ProgressEvent:
    return ProgressEvent(phase=phase, message=message, data=data, timestamp=1700000000000)


class TestProgressStream:
    """Tests for ProgressStream."""

    @pytest.mark.asyncio
    async def test_fan_out_preserves_order(self):
        """Test every observer receives every event in publish order."""
        stream = ProgressStream("job-1")
        first = stream.attach()
        second = stream.attach()

        assert stream.publish(event(message="a")) == 2
        assert stream.publish(event(message="b")) == 2

        for sub in (first, second):
            assert (await sub.next_event(timeout=1)).message == "a"
            assert (await sub.next_event(timeout=1)).message == "b"

    @pytest.mark.asyncio
    async def test_no_observers(self):
        """Test publishing with nobody attached is not an error."""
        stream = ProgressStream("job-1")
        assert stream.publish(event()) == 0
        assert not stream.ever_observed

    @pytest.mark.asyncio
    async def test_full_queue_drops_intermediate_events(self):
        """Test a slow observer loses events once its queue is full."""
        stream = ProgressStream("job-1", queue_size=2)
        slow = stream.attach()

        assert stream.publish(event(message="1")) == 1
        assert stream.publish(event(message="2")) == 1
        assert stream.publish(event(message="3")) == 0

        assert slow.queue.qsize() == 2
        assert (await slow.next_event(timeout=1)).message == "1"

    @pytest.mark.asyncio
    async def test_terminal_event_delivered_when_full(self):
        """Test the terminal event evicts the oldest item instead of being dropped."""
        stream = ProgressStream("job-1", queue_size=2)
        slow = stream.attach()
        stream.publish(event(message="1"))
        stream.publish(event(message="2"))

        assert stream.publish(event(ProgressPhase.COMPLETED, "done")) == 1

        received = [e async for e in slow]
        assert [e.message for e in received] == ["2", "done"]
        assert received[-1].is_terminal

    @pytest.mark.asyncio
    async def test_publish_after_close_dropped(self):
        """Test nothing is delivered after the terminal event."""
        stream = ProgressStream("job-1")
        sub = stream.attach()
        stream.publish(event(ProgressPhase.FAILED, "boom"))

        assert stream.is_closed
        assert stream.publish(event(message="late")) == 0
        assert sub.queue.qsize() == 1

    @pytest.mark.asyncio
    async def test_attach_after_close_replays_terminal(self):
        """Test late observers still see how the job ended."""
        stream = ProgressStream("job-1")
        stream.publish(event(ProgressPhase.COMPLETED, "done", {"size": 1}))

        late = stream.attach()
        replay = await late.next_event(timeout=1)
        assert replay.phase == ProgressPhase.COMPLETED
        assert replay.data == {"size": 1}

    @pytest.mark.asyncio
    async def test_detach_idempotent(self):
        """Test detaching twice is harmless and stops delivery."""
        stream = ProgressStream("job-1")
        sub = stream.attach()

        assert stream.detach(sub) is True
        assert stream.detach(sub) is False
        assert stream.observer_count == 0
        assert stream.ever_observed
        assert stream.publish(event()) == 0

    @pytest.mark.asyncio
    async def test_next_event_timeout(self):
        """Test next_event returns None when nothing arrives in time."""
        stream = ProgressStream("job-1")
        sub = stream.attach()
        assert await sub.next_event(timeout=0.01) is None


class TestMessages:
    """Tests for the wire message builders."""

    def test_connected(self):
        """Test the connected message."""
        message = create_connected_message("job-1")
        assert message["type"] == "connected"
        assert message["jobId"] == "job-1"
        assert isinstance(message["timestamp"], int)

    def test_progress(self):
        """Test a non-terminal event becomes a progress message."""
        message = create_progress_message("job-1", event(ProgressPhase.DOWNLOAD, "Fetching"))
        assert message == {
            "type": "progress",
            "jobId": "job-1",
            "timestamp": 1700000000000,
            "phase": "DOWNLOAD",
            "message": "Fetching",
        }

    def test_completion(self):
        """Test terminal events become completion messages carrying data."""
        message = create_progress_message("job-1", event(ProgressPhase.COMPLETED, "Job completed", {"size": 10}))
        assert message["type"] == "completion"
        assert message["phase"] == "COMPLETED"
        assert message["data"] == {"size": 10}

    def test_heartbeat(self):
        """Test the heartbeat message."""
        assert create_heartbeat_message("job-1")["type"] == "heartbeat"

    def test_to_sse(self):
        """Test SSE framing."""
        frame = to_sse({"type": "heartbeat", "jobId": "job-1"})
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == {"type": "heartbeat", "jobId": "job-1"}
