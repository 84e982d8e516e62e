"""
Pytest fixtures for scenepipe tests.

Nothing here needs a real FFmpeg binary or network access:
- ``asset_root`` builds a temporary sticker/font tree
- ``FakeRunner`` stands in for the engine and records every invocation
- ``media_transport`` serves source media through ``httpx.MockTransport``
"""

from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

from scenepipe.config import Settings
from scenepipe.exceptions import EngineInvocationError
from scenepipe.render.engine import EngineResult
from scenepipe.services.asset_service import AssetService
from scenepipe.services.media_service import MediaService

SOURCE_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 2048


class FakeRunner:
    """Engine runner double with the same ``run(args, on_line)`` coroutine.

    ``fail_on`` holds 1-based call numbers that should fail. Successful calls
    write a small file at the last argument (the output path) unless
    ``write_output`` is off.
    """

    def __init__(
        self,
        fail_on: Optional[set[int]] = None,
        lines: Optional[list[tuple[str, str]]] = None,
        write_output: bool = True,
        output_bytes: bytes = b"x" * 512,
    ):
        self.fail_on = fail_on or set()
        self.lines = lines or []
        self.write_output = write_output
        self.output_bytes = output_bytes
        self.calls: list[list[str]] = []
        self.timeouts: list[Optional[float]] = []

    async def run(self, args, on_line=None, timeout=None) -> EngineResult:
        self.calls.append(list(args))
        self.timeouts.append(timeout)
        for stream_name, line in self.lines:
            if on_line is not None:
                on_line(stream_name, line)
        if len(self.calls) in self.fail_on:
            raise EngineInvocationError(
                f"FFmpeg exited with code: 1 (call {len(self.calls)})",
                returncode=1,
                stderr_tail="Unknown encoder",
            )
        if self.write_output:
            Path(args[-1]).write_bytes(self.output_bytes)
        return EngineResult(returncode=0, duration_ms=5)

    async def is_available(self) -> bool:
        return True


@pytest.fixture
def asset_root(tmp_path: Path) -> Path:
    """Temporary assets directory with stickers and fonts."""
    root = tmp_path / "assets"
    stickers = root / "stickers"
    fonts = root / "fonts"
    stickers.mkdir(parents=True)
    fonts.mkdir(parents=True)

    (stickers / "star.png").write_bytes(b"png")
    (stickers / "heart.webp").write_bytes(b"webp")
    (stickers / "heart.png").write_bytes(b"png")
    (stickers / "notes.txt").write_text("ignored")

    (fonts / "Poppins-Medium.ttf").write_bytes(b"ttf")
    (fonts / "Poppins-Bold.ttf").write_bytes(b"ttf")
    (fonts / "Inter.ttf").write_bytes(b"ttf")
    return root


@pytest.fixture
def settings(tmp_path: Path, asset_root: Path) -> Settings:
    """Settings pointing every directory into the test's tmp_path."""
    return Settings(
        _env_file=None,
        assets_dir=str(asset_root),
        output_dir=str(tmp_path / "outputs"),
        download_dir=str(tmp_path / "downloads"),
        video_encoder="x264",
        heartbeat_interval_s=0.05,
        job_retention_s=3600.0,
    )


@pytest.fixture
def assets(settings: Settings) -> AssetService:
    return AssetService(settings)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


def make_media_handler(
    body: bytes = SOURCE_BYTES,
    content_type: str = "video/mp4",
    status_code: int = 200,
    headers: Optional[dict[str, str]] = None,
) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        response_headers = {"content-type": content_type}
        response_headers.update(headers or {})
        return httpx.Response(status_code, content=body, headers=response_headers)

    return handler


@pytest.fixture
def media_transport() -> httpx.MockTransport:
    return httpx.MockTransport(make_media_handler())


@pytest.fixture
def media_service(settings: Settings, media_transport: httpx.MockTransport) -> MediaService:
    return MediaService(settings, transport=media_transport)
