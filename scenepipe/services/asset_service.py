"""Sticker and font lookup under the assets directory.

Layout:
- ``<assets_dir>/stickers/<name>.webp`` or ``<name>.png``
- ``<assets_dir>/fonts/<Family>-<Weight>.ttf``
"""

import logging
import re
from pathlib import Path
from typing import Optional

from scenepipe.config import Settings, get_settings
from scenepipe.exceptions import AssetNotFoundError, InvalidAssetNameError

logger = logging.getLogger(__name__)

ASSET_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
STICKER_EXTENSIONS = (".webp", ".png")
FONT_EXTENSION = ".ttf"
DEFAULT_FONT_WEIGHT = "Medium"


def validate_asset_name(name: str, kind: str = "asset") -> str:
    """Reject names that could escape the asset directory."""
    if not name or not ASSET_NAME_PATTERN.match(name):
        raise InvalidAssetNameError(name, kind)
    return name


class AssetService:
    """Resolves logical asset names to files."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.stickers_dir = Path(settings.stickers_dir)
        self.fonts_dir = Path(settings.fonts_dir)

    def resolve_sticker_path(self, name: str) -> str:
        """Resolve a sticker name, preferring ``.webp`` over ``.png``."""
        validate_asset_name(name, "sticker")
        for ext in STICKER_EXTENSIONS:
            path = self.stickers_dir / f"{name}{ext}"
            if path.is_file():
                return str(path)
        raise AssetNotFoundError(
            f"Sticker not found: {name} (expected {name}.webp or {name}.png)",
            asset_name=name,
        )

    def resolve_sticker_paths(self, names: list[str]) -> list[str]:
        return [self.resolve_sticker_path(name) for name in names]

    def resolve_font_path(self, font_family: str, font_weight: Optional[str] = None) -> str:
        """Resolve ``<family>-<weight>.ttf``."""
        font_weight = font_weight or DEFAULT_FONT_WEIGHT
        if not ASSET_NAME_PATTERN.match(font_family or "") or not ASSET_NAME_PATTERN.match(font_weight):
            raise InvalidAssetNameError(f"{font_family}-{font_weight}", "font")

        file_name = f"{font_family}-{font_weight}{FONT_EXTENSION}"
        path = self.fonts_dir / file_name
        if path.is_file():
            return str(path)
        raise AssetNotFoundError(f"Font not found: {file_name}", asset_name=file_name)

    def list_stickers(self) -> list[str]:
        """Unique sticker names, sorted."""
        try:
            entries = sorted(self.stickers_dir.iterdir())
        except OSError as e:
            logger.warning(f"Could not list stickers in {self.stickers_dir}: {e}")
            return []

        names: list[str] = []
        for entry in entries:
            if entry.suffix in STICKER_EXTENSIONS and entry.stem not in names:
                names.append(entry.stem)
        return names

    def list_fonts(self) -> list[dict[str, str]]:
        """Available fonts as ``{"family", "weight"}`` pairs."""
        try:
            entries = sorted(self.fonts_dir.iterdir())
        except OSError as e:
            logger.warning(f"Could not list fonts in {self.fonts_dir}: {e}")
            return []

        fonts = []
        for entry in entries:
            if entry.suffix != FONT_EXTENSION:
                continue
            parts = entry.stem.split("-")
            fonts.append({
                "family": parts[0] or "Unknown",
                "weight": parts[1] if len(parts) > 1 and parts[1] else "Regular",
            })
        return fonts
