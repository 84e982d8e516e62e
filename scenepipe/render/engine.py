"""FFmpeg process runner.

Spawns the engine as an asyncio subprocess, streams stdout and stderr line
by line to a callback and enforces a wall-clock timeout.
"""

import asyncio
import codecs
import logging
import re
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from scenepipe.config import Settings, get_settings
from scenepipe.exceptions import EngineInvocationError

logger = logging.getLogger(__name__)

# FFmpeg rewrites its stats line with carriage returns
_LINE_SPLIT = re.compile(r"[\r\n]")
_READ_CHUNK = 4096
STDERR_TAIL_LINES = 20

LineCallback = Callable[[str, str], None]


@dataclass
class EngineResult:
    returncode: int
    duration_ms: int


class FFmpegRunner:
    """Runs engine invocations."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    async def run(
        self,
        args: list[str],
        on_line: Optional[LineCallback] = None,
        timeout: Optional[float] = None,
    ) -> EngineResult:
        """Run one invocation to completion.

        Args:
            args: Full command line, executable first
            on_line: Called with ``(stream_name, line)`` for every output line
            timeout: Seconds before the process is killed; defaults to
                ``processing_timeout_s``

        Returns:
            EngineResult on a zero exit status

        Raises:
            EngineInvocationError: Spawn failure, non-zero exit or timeout
        """
        timeout = timeout if timeout is not None else self.settings.processing_timeout_s
        logger.info(f"[FFMPEG] Starting {args[0]} with {len(args) - 1} arguments")
        logger.debug(f"[FFMPEG] Command: {' '.join(args)}")

        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EngineInvocationError(f"Failed to spawn {args[0]}: {e}") from e

        logger.info(f"[FFMPEG] Process spawned, PID: {proc.pid}")
        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

        def handle(stream_name: str, line: str) -> None:
            if stream_name == "stderr":
                stderr_tail.append(line)
            logger.debug(f"[FFMPEG {stream_name}] {line}")
            if on_line is not None:
                on_line(stream_name, line)

        try:
            await asyncio.wait_for(
                asyncio.gather(
                    _pump(proc.stdout, "stdout", handle),
                    _pump(proc.stderr, "stderr", handle),
                    proc.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await _kill(proc)
            logger.error(f"[FFMPEG] Process {proc.pid} timed out after {timeout}s")
            raise EngineInvocationError(
                f"FFmpeg timed out after {timeout:g}s",
                timed_out=True,
                stderr_tail="\n".join(stderr_tail),
            )
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        duration_ms = int((time.monotonic() - start) * 1000)
        if proc.returncode != 0:
            logger.error(f"[FFMPEG] Process exited with code: {proc.returncode}")
            raise EngineInvocationError(
                f"FFmpeg exited with code: {proc.returncode}",
                returncode=proc.returncode,
                stderr_tail="\n".join(stderr_tail),
            )

        logger.info(f"[FFMPEG] Process completed in {duration_ms}ms")
        return EngineResult(returncode=proc.returncode, duration_ms=duration_ms)

    async def is_available(self) -> bool:
        """Check that the engine binary runs."""
        try:
            await self.run([self.settings.ffmpeg_path, "-version"], timeout=5)
        except EngineInvocationError:
            return False
        return True


async def _pump(stream: Optional[asyncio.StreamReader], name: str, handle: LineCallback) -> None:
    if stream is None:
        return
    # Multi-byte characters may straddle reads
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            buffer += decoder.decode(b"", final=True)
            break
        buffer += decoder.decode(chunk)
        *lines, buffer = _LINE_SPLIT.split(buffer)
        for line in lines:
            if line.strip():
                handle(name, line.strip())
    if buffer.strip():
        handle(name, buffer.strip())


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
