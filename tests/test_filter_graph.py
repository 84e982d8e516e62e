"""Tests for FilterProgram rendering and validation."""

import pytest

from scenepipe.exceptions import GraphIntegrityError
from scenepipe.render.filter_graph import FilterProgram, FilterStatement


def simple_program() -> FilterProgram:
    program = FilterProgram()
    program.add(("1:v",), "scale=1080:1920", "main")
    program.add(("0:v", "main"), "overlay=0:0:format=auto", "base0")
    return program


class TestFilterStatement:
    """Tests for statement rendering."""

    def test_render_with_inputs(self):
        """Test labels wrap inputs and output."""
        statement = FilterStatement(inputs=("0:v", "main"), chain="overlay=0:0", output="base0")
        assert statement.render() == "[0:v][main]overlay=0:0[base0]"

    def test_render_source(self):
        """Test source statements have no input labels."""
        statement = FilterStatement(inputs=(), chain="color=c=black@0:s=10x10", output="tc0")
        assert statement.render() == "color=c=black@0:s=10x10[tc0]"


class TestFilterProgram:
    """Tests for program assembly and validation."""

    def test_render_joins_with_semicolons(self):
        """Test statements are joined in order."""
        assert simple_program().render() == (
            "[1:v]scale=1080:1920[main];[0:v][main]overlay=0:0:format=auto[base0]"
        )

    def test_add_tracks_output_pad(self):
        """Test the most recent statement becomes the output."""
        program = simple_program()
        assert program.output_pad == "base0"
        assert program.produced_pads == ["main", "base0"]

    def test_valid_program(self):
        """Test a well-formed program validates."""
        simple_program().validate(input_count=2)

    def test_forward_reference(self):
        """Test consuming a pad before it is produced fails."""
        program = FilterProgram()
        program.add(("0:v", "main"), "overlay=0:0", "base0")
        program.add(("1:v",), "scale=10:10", "main")
        program.output_pad = "main"
        with pytest.raises(GraphIntegrityError, match="before it is produced"):
            program.validate(input_count=2)

    def test_stream_index_out_of_range(self):
        """Test stream selectors must address an existing input."""
        program = simple_program()
        program.add(("base0", "2:v"), "overlay=0:0", "layer0")
        with pytest.raises(GraphIntegrityError, match="only 2 inputs"):
            program.validate(input_count=2)

    def test_pad_produced_twice(self):
        """Test duplicate output labels are rejected."""
        program = simple_program()
        program.add(("base0",), "fps=60", "main")
        with pytest.raises(GraphIntegrityError, match="produced twice"):
            program.validate(input_count=2)

    def test_pad_consumed_twice(self):
        """Test a pad can feed only one statement."""
        program = simple_program()
        program.add(("main",), "fps=60", "vout")
        with pytest.raises(GraphIntegrityError, match="consumed more than once"):
            program.validate(input_count=2)

    def test_dangling_pad(self):
        """Test pads other than the output must be consumed."""
        program = FilterProgram()
        program.add(("1:v",), "scale=10:10", "main")
        program.add(("0:v",), "format=rgba", "base0")
        with pytest.raises(GraphIntegrityError, match="never consumed: main"):
            program.validate(input_count=2)

    def test_output_must_be_last(self):
        """Test the declared output is the last statement."""
        program = simple_program()
        program.output_pad = "main"
        with pytest.raises(GraphIntegrityError, match="last produced pad"):
            program.validate(input_count=2)

    def test_empty_program(self):
        """Test an empty program has no valid output."""
        with pytest.raises(GraphIntegrityError):
            FilterProgram().validate(input_count=2)
