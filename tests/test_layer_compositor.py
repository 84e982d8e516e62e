"""Tests for scene compilation into a filter program."""

import pytest

from scenepipe.exceptions import AssetNotFoundError, InvalidAssetNameError
from scenepipe.render.layer_compositor import Layer, LayerCompositor, order_layers
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


def assert_closed_dag(program, input_count: int) -> None:
    """Every consumed pad is produced earlier or is an existing input stream."""
    produced = set()
    for statement in program.statements:
        for pad in statement.inputs:
            head, _, tail = pad.partition(":")
            if head.isdigit() and tail == "v":
                assert int(head) < input_count
            else:
                assert pad in produced
        produced.add(statement.output)
    assert program.output_pad == program.statements[-1].output


@pytest.fixture
def compositor(assets, settings) -> LayerCompositor:
    return LayerCompositor(assets, settings)


def reel_scene(**overrides) -> Scene:
    values = dict(canvas=Canvas.for_post(False))
    values.update(overrides)
    return Scene(**values)


class TestOrderLayers:
    """Tests for z-ordering."""

    def test_stable_by_z(self):
        """Test ascending z with declaration order kept for ties."""
        layers = [Layer(z=z, pad=f"p{i}", x=0, y=0, spec=None) for i, z in enumerate([5, 3, 5, 1])]
        assert [layer.pad for layer in order_layers(layers)] == ["p3", "p1", "p0", "p2"]


class TestMainContent:
    """Tests for canvas and main content statements."""

    def test_image_minimal_scene(self, compositor):
        """Test the smallest image scene: cover-scaled main overlaid on the canvas."""
        compiled = compositor.compile(reel_scene(), MediaKind.IMAGE)

        assert compiled.filter_complex == (
            "[1:v]scale=1080:1920:force_original_aspect_ratio=increase,crop=1080:1920[main];"
            "[0:v][main]overlay=0:0:format=auto[base0]"
        )
        assert compiled.output_pad == "base0"
        assert compiled.canvas_source == "color=size=1080x1920:color=0x000000@1"
        assert compiled.frame_rate is None

    def test_post_canvas(self, compositor):
        """Test the post canvas is 1080x1350."""
        compiled = compositor.compile(Scene(canvas=Canvas.for_post(True)), MediaKind.IMAGE)
        assert compiled.canvas_source.startswith("color=size=1080x1350")

    def test_video_minimal_scene(self, compositor):
        """Test video output adds shortest=1, a rate-tagged canvas and fps lock."""
        compiled = compositor.compile(reel_scene(background_color="rgb(10, 20, 30)"), MediaKind.VIDEO)

        assert compiled.filter_complex == (
            "[1:v]scale=1080:1920:force_original_aspect_ratio=increase,crop=1080:1920[main];"
            "[0:v][main]overlay=0:0:format=auto:shortest=1[base0];"
            "[base0]fps=60[vout]"
        )
        assert compiled.output_pad == "vout"
        assert compiled.canvas_source == "color=size=1080x1920:rate=60:color=0x0A141E@1"

    def test_content_transforms_order(self, compositor):
        """Test crop, rotate, explicit scale and raw filter run in that order."""
        content = ContentSpec(
            position=Position(100, 50.5),
            size=Size(600, 400),
            rotation=90,
            crop=CropRegion(x=10, y=20, width=300, height=200),
            raw_filter="eq=brightness=0.1",
        )
        compiled = compositor.compile(reel_scene(content=content), MediaKind.IMAGE)

        main = compiled.program.statements[0]
        steps = main.chain.split(",")
        assert steps[0] == "crop=300:200:10:20"
        assert steps[1].startswith("rotate=1.5707")
        assert steps[2] == "scale=600:400:flags=bicubic"
        assert steps[3] == "eq=brightness=0.1"
        assert compiled.program.statements[1].chain == "overlay=100:50.5000:format=auto"

    def test_blank_raw_filter_ignored(self, compositor):
        """Test whitespace-only raw filters add nothing."""
        compiled = compositor.compile(reel_scene(content=ContentSpec(raw_filter="   ")), MediaKind.IMAGE)
        assert compiled.program.statements[0].chain.endswith("crop=1080:1920")


class TestLayers:
    """Tests for sticker and text layers."""

    def test_sticker_chain(self, compositor, asset_root):
        """Test sizing, rotation and opacity on a sticker."""
        sticker = StickerSpec(name="star", size=Size(200, 100), rotation=90, opacity=0.5, position=Position(10, 20))
        compiled = compositor.compile(reel_scene(stickers=[sticker]), MediaKind.IMAGE)

        chain = compiled.program.statements[2]
        assert chain.inputs == ("2:v",)
        assert chain.output == "s0"
        assert chain.chain.startswith("format=rgba,scale=200:100,rotate=1.5707")
        assert chain.chain.endswith(":ow=rotw(iw):oh=roth(ih):c=black@0,colorchannelmixer=aa=0.5")
        assert compiled.sticker_paths == [str(asset_root / "stickers" / "star.png")]
        assert compiled.program.statements[-1].chain == "overlay=10:20:format=auto"

    def test_sticker_scale_factor(self, compositor):
        """Test stickers without a size use the scale factor."""
        compiled = compositor.compile(reel_scene(stickers=[StickerSpec(name="star", scale=1.5)]), MediaKind.IMAGE)
        assert compiled.program.statements[2].chain == "format=rgba,scale=iw*1.5:ih*1.5"

    def test_layers_merge_by_z(self, compositor):
        """Test stickers and text share one stable z order."""
        stickers = [StickerSpec(name="star", z=5), StickerSpec(name="heart", z=3), StickerSpec(name="star", z=5)]
        text = TextOverlaySpec(text="Hi", x=0.1, y=0.1, width=0.5, height=100, font_family="Poppins", z=1)
        compiled = compositor.compile(reel_scene(stickers=stickers, text_overlays=[text]), MediaKind.IMAGE)

        overlays = [s for s in compiled.program.statements if s.output.startswith("layer")]
        assert [s.inputs[1] for s in overlays] == ["tt0", "s1", "s0", "s2"]
        assert [s.output for s in overlays] == ["layer0", "layer1", "layer2", "layer3"]
        assert overlays[0].inputs[0] == "base0"
        assert compiled.output_pad == "layer3"
        assert_closed_dag(compiled.program, input_count=2 + len(stickers))

    def test_video_layers(self, compositor, asset_root):
        """Test video stickers are looped and every overlay is duration bounded."""
        text = TextOverlaySpec(text="Hi", x=0.1, y=0.1, width=0.5, height=100, font_family="Poppins")
        scene = reel_scene(stickers=[StickerSpec(name="heart")], text_overlays=[text])
        compiled = compositor.compile(scene, MediaKind.VIDEO)

        heart = str(asset_root / "stickers" / "heart.webp")
        assert compiled.input_args("/tmp/in.mp4") == [
            "-y", "-f", "lavfi", "-i", compiled.canvas_source,
            "-i", "/tmp/in.mp4",
            "-loop", "1", "-framerate", "60", "-i", heart,
        ]
        overlays = [s for s in compiled.program.statements if s.chain.startswith("overlay=")]
        assert all(s.chain.endswith(":shortest=1") for s in overlays)
        assert compiled.program.statements[-1].render() == "[layer1]fps=60[vout]"
        assert ":r=60" in next(s.chain for s in compiled.program.statements if s.output == "tc0")
        assert_closed_dag(compiled.program, input_count=3)

    def test_image_inputs_not_looped(self, compositor):
        """Test image stickers are plain inputs."""
        compiled = compositor.compile(reel_scene(stickers=[StickerSpec(name="star")]), MediaKind.IMAGE)
        args = compiled.input_args("/tmp/in.jpg")
        assert "-loop" not in args
        assert args[-2] == "-i"
        assert "shortest=1" not in compiled.filter_complex
        assert "fps=" not in compiled.filter_complex

    def test_graph_args(self, compositor):
        """Test graph arguments map the output pad."""
        compiled = compositor.compile(reel_scene(), MediaKind.VIDEO)
        assert compiled.graph_args() == ["-filter_complex", compiled.filter_complex, "-map", "[vout]"]


class TestAssetErrors:
    """Tests for asset resolution failures."""

    def test_missing_sticker(self, compositor):
        """Test an unknown sticker fails compilation."""
        with pytest.raises(AssetNotFoundError, match="Sticker not found: ghost"):
            compositor.compile(reel_scene(stickers=[StickerSpec(name="ghost")]), MediaKind.IMAGE)

    def test_invalid_sticker_name(self, compositor):
        """Test path-like sticker names are rejected."""
        with pytest.raises(InvalidAssetNameError):
            compositor.compile(reel_scene(stickers=[StickerSpec(name="../secret")]), MediaKind.IMAGE)

    def test_missing_font(self, compositor):
        """Test an unknown font weight fails compilation."""
        text = TextOverlaySpec(text="Hi", x=0, y=0, width=100, height=50, font_family="Poppins", font_weight="Black")
        with pytest.raises(AssetNotFoundError, match="Poppins-Black.ttf"):
            compositor.compile(reel_scene(text_overlays=[text]), MediaKind.IMAGE)
