"""Plain-text and JSON output for the agent-pool CLI."""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

_COLUMN_GAP = "  "


class CLIRenderer:
    """Writes command output to stdout (or an injected stream)."""

    def __init__(self, *, stream: TextIO | None = None) -> None:
        self._stream = stream

    def _out(self, line: str) -> None:
        print(line, file=self._stream if self._stream is not None else sys.stdout)

    def text(self, line: str) -> None:
        self._out(line)

    def json(self, payload: object) -> None:
        """One JSON document per call, keys sorted so output diffs cleanly."""

        self._out(json.dumps(payload, sort_keys=True, ensure_ascii=False))

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        """Left-aligned columns under a dashed rule; prints nothing for zero rows."""

        if not rows:
            return
        cells = [[str(cell) for cell in row[: len(headers)]] for row in rows]
        widths = [
            max([len(header), *(len(row[col]) for row in cells if col < len(row))])
            for col, header in enumerate(headers)
        ]
        self._out(_join_row(headers, widths))
        self._out(_COLUMN_GAP.join("-" * width for width in widths))
        for row in cells:
            self._out(_join_row(row, widths))


def _join_row(cells: Sequence[str], widths: Sequence[int]) -> str:
    padded = [
        (cells[col] if col < len(cells) else "").ljust(width) for col, width in enumerate(widths)
    ]
    return _COLUMN_GAP.join(padded).rstrip()


__all__ = ["CLIRenderer"]
