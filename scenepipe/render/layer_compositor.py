"""Scene compositing with FFmpeg filter_complex.

Input layout (engine ``-i`` order):
[0]   synthetic background canvas (lavfi color source)
[1]   main content (image or video)
[2..] sticker images, one input per sticker in declaration order

Graph layout, bottom to top:
canvas -> main content -> stickers and text boxes merged by z (stable)

Images and videos share one compiler; ``MediaKind`` capabilities switch on
duration-bounded overlays, frame-rate tagged sources and the final
constant-frame-rate lock.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Union

from scenepipe.config import Settings, get_settings
from scenepipe.render.color import resolve_color
from scenepipe.render.filter_graph import FilterProgram
from scenepipe.render.geometry import (
    clamp_box_to_canvas,
    clamp_position,
    clamp_to_int,
    format_number,
    round_half_up,
    to_expression,
    to_radians,
)
from scenepipe.render.scene import (
    Canvas,
    ContentSpec,
    MediaKind,
    Scene,
    StickerSpec,
    TextOverlaySpec,
)
from scenepipe.render.text_renderer import TextRenderer

logger = logging.getLogger(__name__)

CANVAS_INPUT = "0:v"
MAIN_INPUT = "1:v"
STICKER_INPUT_OFFSET = 2

MAIN_PAD = "main"
BASE_PAD = "base0"
FINAL_PAD = "vout"


class AssetResolver(Protocol):
    """Maps logical asset names to files; raises AssetNotFoundError when absent."""

    def resolve_sticker_path(self, name: str) -> str: ...

    def resolve_font_path(self, font_family: str, font_weight: Optional[str] = None) -> str: ...


@dataclass
class Layer:
    """A sticker or text box waiting to be overlaid onto the composite."""

    z: int
    pad: str
    x: float
    y: float
    spec: Union[StickerSpec, TextOverlaySpec]


@dataclass
class CompiledScene:
    """Everything needed to invoke the engine for a scene."""

    media_kind: MediaKind
    canvas: Canvas
    canvas_source: str
    program: FilterProgram
    sticker_paths: list[str] = field(default_factory=list)
    frame_rate: Optional[int] = None

    @property
    def output_pad(self) -> str:
        return self.program.output_pad or BASE_PAD

    @property
    def filter_complex(self) -> str:
        return self.program.render()

    def input_args(self, main_input: str) -> list[str]:
        """``-i`` arguments in the order the program's stream selectors expect."""
        args = ["-y", "-f", "lavfi", "-i", self.canvas_source, "-i", main_input]
        for path in self.sticker_paths:
            if self.media_kind.capabilities.frame_rate_tagged:
                args.extend(["-loop", "1", "-framerate", str(self.frame_rate), "-i", path])
            else:
                args.extend(["-i", path])
        return args

    def graph_args(self) -> list[str]:
        return ["-filter_complex", self.filter_complex, "-map", f"[{self.output_pad}]"]


def order_layers(layers: list[Layer]) -> list[Layer]:
    """Sort by z ascending; equal z keeps declaration order."""
    return sorted(layers, key=lambda layer: layer.z)


class LayerCompositor:
    """Compiles a scene into a filter program."""

    def __init__(self, assets: AssetResolver, settings: Optional[Settings] = None):
        self.assets = assets
        self.settings = settings or get_settings()

    def compile(self, scene: Scene, media_kind: MediaKind) -> CompiledScene:
        """Compile a scene into a validated filter program.

        Args:
            scene: Scene description
            media_kind: Image or video output

        Returns:
            CompiledScene with the program, the canvas source and sticker inputs

        Raises:
            AssetNotFoundError: A sticker or font could not be resolved
            InvalidAssetNameError: A sticker or font name is malformed
            GraphIntegrityError: The generated program is not well formed
        """
        caps = media_kind.capabilities
        canvas = scene.canvas
        fps = self.settings.target_fps if caps.frame_rate_tagged else None

        # Resolve every asset before building anything; no partial programs
        sticker_paths = [self.assets.resolve_sticker_path(s.name) for s in scene.stickers]
        font_paths = [self._resolve_font(t) for t in scene.text_overlays]

        program = FilterProgram()

        self._build_main_content(program, scene.content, canvas)
        current = self._build_canvas_overlay(program, scene.content, canvas, caps.duration_bounded)

        layers = self._build_sticker_layers(program, scene.stickers, canvas)
        layers.extend(self._build_text_layers(program, scene.text_overlays, canvas, font_paths, fps))

        for index, layer in enumerate(order_layers(layers)):
            current = program.add(
                (current, layer.pad),
                self._overlay_filter(layer.x, layer.y, caps.duration_bounded),
                f"layer{index}",
            )

        if caps.lock_frame_rate:
            program.add((current,), f"fps={fps}", FINAL_PAD)

        compiled = CompiledScene(
            media_kind=media_kind,
            canvas=canvas,
            canvas_source=self._canvas_source(canvas, scene.background_color, fps),
            program=program,
            sticker_paths=sticker_paths,
            frame_rate=fps,
        )
        program.validate(input_count=STICKER_INPUT_OFFSET + len(sticker_paths))

        logger.debug(
            f"Compiled {media_kind.value} scene: {len(program.statements)} statements, "
            f"{len(layers)} layers, output [{compiled.output_pad}]"
        )
        logger.debug(f"filter_complex:\n{compiled.filter_complex}")
        return compiled

    def _resolve_font(self, overlay: TextOverlaySpec) -> str:
        return self.assets.resolve_font_path(
            overlay.font_family or self.settings.default_font_family,
            overlay.font_weight or self.settings.default_font_weight,
        )

    def _canvas_source(self, canvas: Canvas, color: str, fps: Optional[int]) -> str:
        parts = [f"color=size={canvas.width}x{canvas.height}"]
        if fps:
            parts.append(f"rate={fps}")
        parts.append(f"color={resolve_color(color)}")
        return ":".join(parts)

    def _build_main_content(self, program: FilterProgram, content: ContentSpec, canvas: Canvas) -> str:
        """crop -> rotate -> scale (explicit or cover) -> raw filter, into [main]."""
        steps = []

        crop = content.crop
        if crop is not None and crop.width and crop.height:
            steps.append(
                f"crop={round_half_up(crop.width)}:{round_half_up(crop.height)}"
                f":{round_half_up(crop.x or 0)}:{round_half_up(crop.y or 0)}"
            )

        if content.rotation:
            steps.append(f"rotate={format_number(to_radians(content.rotation))}:ow=rotw(iw):oh=roth(ih)")

        if content.size is not None and content.size.width and content.size.height:
            box = clamp_box_to_canvas(
                content.position.x,
                content.position.y,
                content.size.width,
                content.size.height,
                canvas.width,
                canvas.height,
            )
            steps.append(f"scale={box.width}:{box.height}:flags=bicubic")
        else:
            steps.append(f"scale={canvas.width}:{canvas.height}:force_original_aspect_ratio=increase")
            steps.append(f"crop={canvas.width}:{canvas.height}")

        if content.raw_filter and content.raw_filter.strip():
            steps.append(content.raw_filter)

        return program.add((MAIN_INPUT,), ",".join(steps), MAIN_PAD)

    def _build_canvas_overlay(
        self,
        program: FilterProgram,
        content: ContentSpec,
        canvas: Canvas,
        duration_bounded: bool,
    ) -> str:
        x, y = clamp_position(content.position.x, content.position.y, canvas.width, canvas.height)
        return program.add(
            (CANVAS_INPUT, MAIN_PAD),
            self._overlay_filter(x, y, duration_bounded),
            BASE_PAD,
        )

    def _build_sticker_layers(
        self,
        program: FilterProgram,
        stickers: list[StickerSpec],
        canvas: Canvas,
    ) -> list[Layer]:
        layers = []
        for index, sticker in enumerate(stickers):
            steps = ["format=rgba"]

            if sticker.size is not None and sticker.size.width and sticker.size.height:
                width = str(clamp_to_int(sticker.size.width, 1, canvas.width))
                height = str(clamp_to_int(sticker.size.height, 1, canvas.height))
            else:
                scale = format_number(sticker.scale or 1)
                width, height = f"iw*{scale}", f"ih*{scale}"
            steps.append(f"scale={width}:{height}")

            if sticker.rotation:
                steps.append(f"rotate={format_number(to_radians(sticker.rotation))}:ow=rotw(iw):oh=roth(ih):c=black@0")

            if 0 <= sticker.opacity < 1:
                steps.append(f"colorchannelmixer=aa={format_number(sticker.opacity)}")

            pad = program.add((f"{STICKER_INPUT_OFFSET + index}:v",), ",".join(steps), f"s{index}")
            x, y = clamp_position(sticker.position.x, sticker.position.y, canvas.width, canvas.height)
            layers.append(Layer(z=sticker.z, pad=pad, x=x, y=y, spec=sticker))
        return layers

    def _build_text_layers(
        self,
        program: FilterProgram,
        overlays: list[TextOverlaySpec],
        canvas: Canvas,
        font_paths: list[str],
        fps: Optional[int],
    ) -> list[Layer]:
        renderer = TextRenderer(canvas, padding=self.settings.text_box_padding_px, frame_rate=fps)
        layers = []
        for index, (overlay, font_path) in enumerate(zip(overlays, font_paths)):
            pad, layout = renderer.build(program, overlay, index, font_path)
            layers.append(Layer(z=overlay.z, pad=pad, x=layout.x, y=layout.y, spec=overlay))
        return layers

    def _overlay_filter(self, x: float, y: float, duration_bounded: bool) -> str:
        """Generate overlay filter string."""
        overlay = f"overlay={to_expression(x)}:{to_expression(y)}:format=auto"
        if duration_bounded:
            overlay += ":shortest=1"
        return overlay
