from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CompressVideoRequest(BaseModel):
    url: str = Field(min_length=1)
    bitrate: float | None = Field(default=None, gt=0, description="Target bitrate in kbps (default 500)")


class CompressImageRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str = Field(min_length=1)
    quality: int = Field(default=80, ge=1, le=100)
    max_width: int | None = Field(default=None, ge=1)
    max_height: int | None = Field(default=None, ge=1)


class FontInfo(BaseModel):
    family: str
    weight: str


class HealthResponse(BaseModel):
    status: str
    version: str
    ffmpeg: bool
