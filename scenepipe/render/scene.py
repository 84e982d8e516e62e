"""Scene description consumed by the compiler.

A scene is one canvas, one main media item and any number of sticker and
text layers. Stickers and text share a single z-order.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

CANVAS_REEL = (1080, 1920)  # 9:16
CANVAS_POST = (1080, 1350)  # 4:5


@dataclass(frozen=True)
class Canvas:
    """Output frame size in pixels."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Canvas dimensions must be positive, got {self.width}x{self.height}")

    @classmethod
    def for_post(cls, post: bool = False) -> "Canvas":
        """4:5 post canvas when ``post`` is set, 9:16 reel canvas otherwise."""
        width, height = CANVAS_POST if post else CANVAS_REEL
        return cls(width=width, height=height)


class MediaKind(Enum):
    """Kind of output being composed."""

    IMAGE = "image"
    VIDEO = "video"

    @property
    def capabilities(self) -> "MediaCapabilities":
        return _CAPABILITIES[self]


@dataclass(frozen=True)
class MediaCapabilities:
    """What differs between still and moving output."""

    # Overlays end with the main stream (shortest=1)
    duration_bounded: bool
    # Final pad goes through fps=<target> for constant frame rate
    lock_frame_rate: bool
    # Canvas and text sources carry a rate, sticker images are looped
    frame_rate_tagged: bool
    single_frame: bool


_CAPABILITIES = {
    MediaKind.IMAGE: MediaCapabilities(
        duration_bounded=False,
        lock_frame_rate=False,
        frame_rate_tagged=False,
        single_frame=True,
    ),
    MediaKind.VIDEO: MediaCapabilities(
        duration_bounded=True,
        lock_frame_rate=True,
        frame_rate_tagged=True,
        single_frame=False,
    ),
}


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Size:
    width: float
    height: float


@dataclass
class CropRegion:
    x: float = 0.0
    y: float = 0.0
    width: Optional[float] = None
    height: Optional[float] = None


@dataclass
class ContentSpec:
    """Main media item placement and transforms."""

    position: Position = field(default_factory=Position)
    size: Optional[Size] = None
    rotation: float = 0.0
    crop: Optional[CropRegion] = None
    # Raw FFmpeg filter expression appended verbatim to the main chain
    raw_filter: str = ""


@dataclass
class StickerSpec:
    name: str
    position: Position = field(default_factory=Position)
    size: Optional[Size] = None
    scale: float = 1.0
    rotation: float = 0.0
    z: int = 0
    opacity: float = 1.0


@dataclass
class TextOverlaySpec:
    """Text box; x/y/width/height are pixels when > 1, canvas ratios otherwise."""

    text: str
    x: float
    y: float
    width: float
    height: float
    font_family: str
    color: str = "rgba(255, 255, 255, 1)"
    rotation: Optional[float] = None
    font_weight: Optional[str] = None
    background_color: Optional[str] = None
    z: int = 0


LayerSpec = Union[StickerSpec, TextOverlaySpec]


@dataclass
class Scene:
    canvas: Canvas
    content: ContentSpec = field(default_factory=ContentSpec)
    stickers: list[StickerSpec] = field(default_factory=list)
    text_overlays: list[TextOverlaySpec] = field(default_factory=list)
    background_color: str = "#000000"
    # Requested output quality, 1-100
    quality: int = 90
