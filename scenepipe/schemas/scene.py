"""Composition request schema.

Wire names are camelCase (``mediaType``, ``textOverlays``); ``to_scene()``
converts a validated request into the compiler's scene dataclasses.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from scenepipe.render.scene import (
    Canvas,
    ContentSpec,
    CropRegion,
    MediaKind,
    Position,
    Scene,
    Size,
    StickerSpec,
    TextOverlaySpec,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PositionSchema(CamelModel):
    x: float = Field(ge=0)
    y: float = Field(ge=0)


class SizeSchema(CamelModel):
    width: float = Field(ge=1, le=2000)
    height: float = Field(ge=1, le=2000)


class CropSchema(CamelModel):
    x: float = Field(default=0, ge=0)
    y: float = Field(default=0, ge=0)
    width: float | None = Field(default=None, ge=1)
    height: float | None = Field(default=None, ge=1)


class BackgroundSchema(CamelModel):
    aspect_ratio: Literal["9:16", "4:5"] = "9:16"
    color: str = "#000000"


class ContentSchema(CamelModel):
    position: PositionSchema = Field(default_factory=lambda: PositionSchema(x=0, y=0))
    size: SizeSchema | None = None
    rotation: float = Field(default=0, ge=-180, le=180)
    crop: CropSchema = Field(default_factory=CropSchema)


class FiltersSchema(CamelModel):
    # A complete FFmpeg filter expression, appended to the main content chain
    ffmpeg: str | None = None
    # Informational only, logged with the job
    order: list[str] | None = None


class StickerSchema(CamelModel):
    name: str
    position: PositionSchema
    size: SizeSchema | None = None
    scale: float = Field(default=1, gt=0)
    rotation: float = Field(default=0, ge=-180, le=180)
    z: int = 0
    opacity: float = Field(default=1, ge=0, le=1)


class TextOverlaySchema(CamelModel):
    text: str
    x: float
    y: float
    width: float
    height: float
    rotation: float | None = None
    font_family: str
    font_weight: str | None = None
    color: str = "rgba(255, 255, 255, 1)"
    background_color: str | None = None
    z: int = 0


class OutputSchema(CamelModel):
    quality: float = Field(default=90, ge=1, le=100)


class ComposeRequest(CamelModel):
    """Scene composition request."""

    source_url: str = Field(min_length=1, description="URL of the main image or video")
    post: bool = False
    media_type: Literal["image", "video"]
    background: BackgroundSchema = Field(default_factory=BackgroundSchema)
    content: ContentSchema = Field(default_factory=ContentSchema)
    filters: FiltersSchema = Field(default_factory=FiltersSchema)
    stickers: list[StickerSchema] = Field(default_factory=list)
    text_overlays: list[TextOverlaySchema] | None = None
    output: OutputSchema = Field(default_factory=OutputSchema)

    @property
    def media_kind(self) -> MediaKind:
        return MediaKind(self.media_type)

    def to_scene(self) -> Scene:
        content = self.content
        crop = content.crop
        return Scene(
            canvas=Canvas.for_post(self.post),
            content=ContentSpec(
                position=Position(x=content.position.x, y=content.position.y),
                size=Size(width=content.size.width, height=content.size.height) if content.size else None,
                rotation=content.rotation,
                crop=CropRegion(x=crop.x, y=crop.y, width=crop.width, height=crop.height),
                raw_filter=self.filters.ffmpeg or "",
            ),
            stickers=[
                StickerSpec(
                    name=s.name,
                    position=Position(x=s.position.x, y=s.position.y),
                    size=Size(width=s.size.width, height=s.size.height) if s.size else None,
                    scale=s.scale,
                    rotation=s.rotation,
                    z=s.z,
                    opacity=s.opacity,
                )
                for s in self.stickers
            ],
            text_overlays=[
                TextOverlaySpec(
                    text=t.text,
                    x=t.x,
                    y=t.y,
                    width=t.width,
                    height=t.height,
                    font_family=t.font_family,
                    color=t.color,
                    rotation=t.rotation,
                    font_weight=t.font_weight,
                    background_color=t.background_color,
                    z=t.z,
                )
                for t in self.text_overlays or []
            ],
            background_color=self.background.color,
            quality=self.output.quality,
        )
