"""Tests for drawtext escaping, text layout and text box statements."""

import pytest

from scenepipe.render.filter_graph import FilterProgram
from scenepipe.render.scene import Canvas, TextOverlaySpec
from scenepipe.render.text_renderer import (
    TextRenderer,
    calculate_font_size,
    escape_path,
    escape_text,
    layout_text,
    prepare_text,
)

REEL = Canvas(1080, 1920)
FONT = "/srv/assets/fonts/Poppins-Medium.ttf"


def make_overlay(**overrides) -> TextOverlaySpec:
    values = dict(text="Hello<br>World", x=0.5, y=0.25, width=0.5, height=100, font_family="Poppins")
    values.update(overrides)
    return TextOverlaySpec(**values)


class TestEscaping:
    """Tests for text and path escaping."""

    def test_escape_text_special_characters(self):
        """Test backslash, percent, colon and quote escaping."""
        assert escape_text("a:b'c%d\\e") == "a\\:b'\\''c\\%d\\\\e"

    def test_backslash_escaped_before_others(self):
        """Test escapes introduced for ':' are not doubled again."""
        assert escape_text("12:30") == "12\\:30"

    def test_plain_text_untouched(self):
        """Test text without special characters is unchanged."""
        assert escape_text("Hello world!") == "Hello world!"

    def test_escape_path(self):
        """Test path escaping touches only backslash, colon and quote."""
        assert escape_path("C:\\fonts\\it's.ttf") == "C\\:\\\\fonts\\\\it\\'s.ttf"
        assert escape_path("/srv/fonts/a b%.ttf") == "/srv/fonts/a b%.ttf"


class TestPrepareText:
    """Tests for line-break handling."""

    def test_line_break_tokens(self):
        """Test <br>, <BR/> and <br /> all become newlines."""
        prepared = prepare_text("One<br>Two<BR/>Three<br />Four")
        assert prepared.lines == 4
        assert prepared.escaped == "One\nTwo\nThree\nFour"

    def test_single_line(self):
        """Test text without breaks is one line."""
        assert prepare_text("Solo").lines == 1


class TestLayout:
    """Tests for font size and text box geometry."""

    @pytest.mark.parametrize(
        "box_width,canvas_height,expected",
        [
            (400, 1920, 24),
            (540, 1920, 32),
            (100, 1920, 8),
            (4000, 200, 24),
        ],
    )
    def test_calculate_font_size(self, box_width, canvas_height, expected):
        """Test font size scales from the 400x200 -> 24px baseline, minimum 8."""
        assert calculate_font_size(box_width, canvas_height) == expected

    def test_layout_two_lines(self):
        """Test box size includes padding, line count and 80% line spacing."""
        layout = layout_text(make_overlay(), REEL, lines=2, padding=28)
        assert layout.font_size == 32
        assert layout.line_spacing == 25
        assert layout.box_width == 540 + 56
        assert layout.box_height == (32 * 2 + 25) + 56
        assert (layout.x, layout.y) == (540, 480)

    def test_layout_clamps_position(self):
        """Test positions outside the canvas are clamped."""
        layout = layout_text(make_overlay(x=5000, y=-20), REEL, lines=1, padding=28)
        assert (layout.x, layout.y) == (1080, 0)


class TestTextRenderer:
    """Tests for the text box statement sequence."""

    def test_statements_without_rotation(self):
        """Test a transparent canvas then drawtext, ending at tt{i}."""
        program = FilterProgram()
        pad, layout = TextRenderer(REEL, padding=28).build(program, make_overlay(), 0, FONT)

        assert pad == "tt0"
        assert [s.output for s in program.statements] == ["tc0", "tt0"]
        assert program.statements[0].inputs == ()
        assert program.statements[0].chain == "color=c=black@0:s=596x145"
        drawtext = program.statements[1].chain
        assert drawtext.startswith(f"drawtext=fontfile='{FONT}':text='Hello\nWorld'")
        assert ":fontsize=32:" in drawtext
        assert ":fontcolor=0xFFFFFF@1:" in drawtext
        assert ":x=(w-text_w)/2:" in drawtext
        assert ":y=(h - ((32 * 2) + (25 * (2 - 1)))) / 2:" in drawtext
        assert drawtext.endswith(":line_spacing=25")

    def test_rotation_adds_statement(self):
        """Test a rotated overlay ends at tr{i}."""
        program = FilterProgram()
        pad, _ = TextRenderer(REEL, padding=28).build(program, make_overlay(rotation=45), 3, FONT)

        assert pad == "tr3"
        rotate = program.statements[-1]
        assert rotate.inputs == ("tt3",)
        assert rotate.chain.startswith("rotate=0.785398")
        assert rotate.chain.endswith(":ow=rotw(iw):oh=roth(ih):c=black@0")

    def test_background_box(self):
        """Test backgroundColor adds a padded box."""
        program = FilterProgram()
        TextRenderer(REEL, padding=28).build(
            program, make_overlay(background_color="rgba(0,0,0,0.5)"), 0, FONT
        )
        assert program.statements[1].chain.endswith(
            ":line_spacing=25:box=1:boxcolor=0x000000@0.5:boxborderw=28"
        )

    def test_frame_rate_tagged_canvas(self):
        """Test video text canvases carry the frame rate."""
        program = FilterProgram()
        TextRenderer(REEL, padding=28, frame_rate=60).build(program, make_overlay(), 0, FONT)
        assert program.statements[0].chain.endswith(":r=60")
