"""Source media download.

The filename comes from ``Content-Disposition`` when the server sends one,
otherwise from the URL path. A file already present in the download
directory is reused instead of being fetched again.
"""

import logging
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

import httpx

from scenepipe.config import Settings, get_settings
from scenepipe.exceptions import MediaDownloadError

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "download"
MAX_FILENAME_LENGTH = 255
_CHUNK_SIZE = 64 * 1024

_INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_FILENAME_STAR = re.compile(r"filename\*=UTF-8''([^;]+)", re.IGNORECASE)
_FILENAME = re.compile(r"filename=([^;]+)", re.IGNORECASE)

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_file_size(num_bytes: int) -> str:
    """Human-readable size with up to two decimals, e.g. ``1.5 KB``."""
    if num_bytes <= 0:
        return "0 Bytes"
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[unit]}"


def sanitize_filename(filename: str) -> str:
    """Replace path and control characters, drop leading dots, cap length."""
    cleaned = _INVALID_FILENAME_CHARS.sub("_", filename)
    cleaned = cleaned.lstrip(".")
    return cleaned[:MAX_FILENAME_LENGTH].strip()


def filename_from_content_disposition(header: Optional[str]) -> Optional[str]:
    """Extract a filename, preferring the RFC 5987 ``filename*`` form."""
    if not header:
        return None

    match = _FILENAME_STAR.search(header)
    if match:
        try:
            return unquote(match.group(1), errors="strict")
        except UnicodeDecodeError:
            pass

    match = _FILENAME.search(header)
    if match:
        return match.group(1).strip().strip('"').strip()
    return None


def resolve_filename(url: str, content_type: Optional[str], content_disposition: Optional[str]) -> str:
    """Pick the local filename for a download response."""
    mime = (content_type or "").split(";")[0].strip()
    ext = mimetypes.guess_extension(mime) if mime else None

    from_header = filename_from_content_disposition(content_disposition)
    if from_header:
        filename = from_header
    else:
        filename = Path(unquote(urlparse(url).path)).name or DEFAULT_FILENAME

    if not ext:
        ext = Path(filename).suffix
    if ext and not filename.endswith(ext):
        filename += ext

    filename = sanitize_filename(filename)
    if not filename or filename == ext:
        filename = f"{DEFAULT_FILENAME}{ext or ''}"
    return filename


@dataclass
class DownloadResult:
    path: Path
    filename: str
    size: int
    # True when an existing file was reused
    reused: bool = False


class MediaService:
    """Downloads source media into the download directory."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.download_dir = Path(self.settings.download_dir)
        self.max_bytes = self.settings.max_download_size_mb * 1024 * 1024
        self._transport = transport

    async def download_media(
        self,
        url: str,
        on_event: Optional[Callable[[str], None]] = None,
    ) -> DownloadResult:
        """Download ``url`` into the download directory.

        Args:
            url: Source media URL
            on_event: Called with a human-readable message at each step

        Returns:
            DownloadResult with the local path

        Raises:
            MediaDownloadError: Network failure, non-2xx status or oversize body
        """
        notify = on_event or (lambda message: None)
        self.download_dir.mkdir(parents=True, exist_ok=True)
        notify(f"Starting download from URL: {url}")

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.download_timeout_s,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise MediaDownloadError(
                            f"Download failed with HTTP {response.status_code}: {url}"
                        )

                    filename = resolve_filename(
                        url,
                        response.headers.get("content-type"),
                        response.headers.get("content-disposition"),
                    )
                    notify(f"Fetched media metadata: {filename}")
                    path = self.download_dir / filename

                    if path.is_file():
                        logger.info(f"Skipping download - file already exists: {path}")
                        notify(f"File already exists, skipping download: {filename}")
                        return DownloadResult(path=path, filename=filename, size=path.stat().st_size, reused=True)

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > self.max_bytes:
                        raise MediaDownloadError(
                            f"Media too large: {format_file_size(int(declared))} "
                            f"exceeds {self.settings.max_download_size_mb} MB"
                        )

                    notify(f"Streaming media to: {filename}")
                    size = await self._stream_to_file(response, path)
        except httpx.HTTPError as e:
            raise MediaDownloadError(f"Download failed: {e}") from e

        logger.info(f"Media downloaded successfully: {path} ({format_file_size(size)})")
        notify(f"Successfully downloaded: {filename}")
        return DownloadResult(path=path, filename=filename, size=size)

    async def _stream_to_file(self, response: httpx.Response, path: Path) -> int:
        # Partial downloads never take the final name
        partial = path.with_name(path.name + ".part")
        size = 0
        try:
            with open(partial, "wb") as f:
                async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise MediaDownloadError(
                            f"Media too large: exceeds {self.settings.max_download_size_mb} MB"
                        )
                    f.write(chunk)
            partial.replace(path)
        finally:
            partial.unlink(missing_ok=True)
        return size
