"""BF-Lang extension: dump the tape when a program finishes.

Writes the used region of the tape (everything up to the last non-zero cell,
or up to the pointer when that lies further right) to stderr, sixteen cells
per row, with the pointer's cell bracketed.
"""

from __future__ import annotations

import sys
from typing import Any, List

import numpy as np

from extensions import Hooks

ROW_WIDTH = 16


def render_tape(tape: Any) -> str:
    nonzero = np.flatnonzero(tape.cells)
    end = max(int(nonzero[-1]) if nonzero.size else 0, tape.pointer) + 1
    lines: List[str] = []
    for start in range(0, end, ROW_WIDTH):
        row = tape.cells[start:min(start + ROW_WIDTH, end)].tolist()
        cells: List[str] = []
        for offset, value in enumerate(row):
            text = f"{value:3d}"
            cells.append(f"[{text}]" if start + offset == tape.pointer else f" {text} ")
        lines.append(f"{start:05d}:" + "".join(cells))
    return "\n".join(lines)


def _dump(interpreter: Any, tape: Any) -> None:
    print(f"pointer={tape.pointer}", file=sys.stderr)
    print(render_tape(tape), file=sys.stderr)


def register(hooks: Hooks) -> None:
    hooks.on("program_end", _dump)
