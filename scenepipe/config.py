import json
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Scenepipe Media Processor API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "*"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from pipe/comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        if "|" in v:
            return [origin.strip() for origin in v.split("|") if origin.strip()]
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Directories
    assets_dir: str = "assets"
    output_dir: str = "outputs"
    download_dir: str = "temp"

    @property
    def stickers_dir(self) -> Path:
        return Path(self.assets_dir) / "stickers"

    @property
    def fonts_dir(self) -> Path:
        return Path(self.assets_dir) / "fonts"

    # Composition
    target_fps: int = 60
    text_box_padding_px: int = 28
    default_font_family: str = "Poppins"
    default_font_weight: str = "Medium"

    # Encoding
    video_encoder: Literal["nvenc", "x264"] = "x264"
    nvenc_preset: str = "p5"
    x264_preset: str = "medium"
    aac_bitrate: str = "160k"
    # Wall-clock limit for one engine invocation
    processing_timeout_s: float = 600.0
    image_processing_timeout_s: float = 120.0

    # Progress streaming
    heartbeat_interval_s: float = 30.0
    progress_queue_size: int = 256
    # Terminal jobs nobody is watching are kept this long for status polling
    job_retention_s: float = 3600.0

    # Media download
    download_timeout_s: float = 120.0
    max_download_size_mb: int = 500


@lru_cache
def get_settings() -> Settings:
    return Settings()
