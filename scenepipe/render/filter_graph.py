"""Filter program model: ordered ``filter_complex`` statements over named pads."""

from dataclasses import dataclass, field

from scenepipe.exceptions import GraphIntegrityError


@dataclass(frozen=True)
class FilterStatement:
    """One chain ``[in1][in2]op=params,...[out]``.

    Inputs are either pads produced earlier in the program or external
    stream selectors such as ``0:v``. Source statements (``color=...``)
    have no inputs.
    """

    inputs: tuple[str, ...]
    chain: str
    output: str

    def render(self) -> str:
        labels = "".join(f"[{pad}]" for pad in self.inputs)
        return f"{labels}{self.chain}[{self.output}]"


@dataclass
class FilterProgram:
    """Ordered statements plus the pad selected as the program output."""

    statements: list[FilterStatement] = field(default_factory=list)
    output_pad: str | None = None

    def add(self, inputs: tuple[str, ...] | list[str], chain: str, output: str) -> str:
        """Append a statement and make its pad the declared output."""
        self.statements.append(FilterStatement(inputs=tuple(inputs), chain=chain, output=output))
        self.output_pad = output
        return output

    @property
    def produced_pads(self) -> list[str]:
        return [s.output for s in self.statements]

    def render(self) -> str:
        return ";".join(statement.render() for statement in self.statements)

    def validate(self, input_count: int) -> None:
        """Check every consumed pad exists before use and the output is unique.

        Args:
            input_count: Number of ``-i`` inputs; stream selectors ``N:v`` must
                address one of them.

        Raises:
            GraphIntegrityError: On a forward/unknown pad reference, a pad
                produced twice, or an output pad that is not the last one.
        """
        produced: set[str] = set()
        consumed: set[str] = set()
        for index, statement in enumerate(self.statements):
            for pad in statement.inputs:
                if _is_stream_selector(pad):
                    stream_index = int(pad.split(":", 1)[0])
                    if stream_index >= input_count:
                        raise GraphIntegrityError(
                            f"Statement {index} reads input stream {pad} but only {input_count} inputs exist"
                        )
                elif pad not in produced:
                    raise GraphIntegrityError(
                        f"Statement {index} references pad '{pad}' before it is produced"
                    )
                elif pad in consumed:
                    raise GraphIntegrityError(f"Pad '{pad}' is consumed more than once")
                else:
                    consumed.add(pad)
            if statement.output in produced:
                raise GraphIntegrityError(f"Pad '{statement.output}' is produced twice")
            produced.add(statement.output)

        if not self.statements or self.output_pad != self.statements[-1].output:
            raise GraphIntegrityError("Program output must be the last produced pad")

        dangling = produced - consumed - {self.output_pad}
        if dangling:
            raise GraphIntegrityError(f"Pads produced but never consumed: {', '.join(sorted(dangling))}")


def _is_stream_selector(pad: str) -> bool:
    head, _, tail = pad.partition(":")
    return head.isdigit() and tail in ("v", "a")
