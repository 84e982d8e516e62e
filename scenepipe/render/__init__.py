from scenepipe.render.encoders import (
    EncodingProfile,
    EncodingStrategySelector,
    image_profile,
    video_profiles,
)
from scenepipe.render.engine import FFmpegRunner
from scenepipe.render.filter_graph import FilterProgram
from scenepipe.render.layer_compositor import CompiledScene, LayerCompositor
from scenepipe.render.scene import Canvas, MediaKind, Scene

__all__ = [
    "LayerCompositor",
    "CompiledScene",
    "FilterProgram",
    "FFmpegRunner",
    "EncodingProfile",
    "EncodingStrategySelector",
    "image_profile",
    "video_profiles",
    "Canvas",
    "MediaKind",
    "Scene",
]
