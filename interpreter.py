from __future__ import annotations
import json
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import numpy as np
from numpy.typing import NDArray

from lexer import BFError
from extensions import Hooks
from parser import (
    Decrement,
    Increment,
    InputReplace,
    Instruction,
    Loop,
    MoveLeft,
    MoveRight,
    Output,
    Program,
    SourceLocation,
    parse_source,
)


TAPE_LENGTH = 30000
CELL_MAX = 255

SNAPSHOT_RADIUS = 8


@dataclass(eq=False)
class Tape:
    length: int = TAPE_LENGTH
    cells: NDArray[np.uint8] = field(init=False, repr=False)
    pointer: int = 0

    def __post_init__(self) -> None:
        if self.length <= 0:
            raise ValueError("Tape length must be positive")
        if not 0 <= self.pointer < self.length:
            raise ValueError(f"Pointer {self.pointer} outside tape of length {self.length}")
        self.cells = np.zeros(self.length, dtype=np.uint8)

    @property
    def current(self) -> int:
        return int(self.cells[self.pointer])

    def window(self, radius: int = SNAPSHOT_RADIUS) -> NDArray[np.uint8]:
        # Indices wrap exactly like pointer motion does.
        indices = (self.pointer + np.arange(-radius, radius + 1)) % self.length
        return np.take(self.cells, indices)

    def snapshot(self, radius: int = SNAPSHOT_RADIUS) -> Dict[str, str]:
        rendered: List[str] = []
        for offset, value in enumerate(self.window(radius).tolist()):
            rendered.append(f"[{value}]" if offset == radius else str(value))
        return {"pointer": str(self.pointer), "cell": str(self.current), "window": " ".join(rendered)}


class BFRuntimeError(BFError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rule = rule
        self.step_index: Optional[int] = None


class ExitSignal(Exception):
    def __init__(self, code: int = 0) -> None:
        super().__init__(code)
        self.code = code


@dataclass
class Frame:
    """The program itself, or one active loop, with the instruction it is on."""

    name: str
    location: Optional[SourceLocation]
    current: Optional[Instruction] = None

    @property
    def position(self) -> Optional[SourceLocation]:
        return self.current.location if self.current is not None else self.location


def _stdout_sink(text: str) -> None:
    sys.stdout.write(text)


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str,
        verbose: bool = False,
        hooks: Optional[Hooks] = None,
        output_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.source = source
        self.filename = filename if filename.startswith("<") else os.path.abspath(filename)
        self.verbose = verbose
        self.hooks = hooks or Hooks()
        self.output_sink = output_sink or _stdout_sink

        self.steps = 0
        self.call_stack: List[Frame] = []
        self.tape: Optional[Tape] = None

    def parse(self) -> Program:
        return parse_source(self.source, self.filename)

    def run(self, tape: Optional[Tape] = None) -> Tape:
        """
        Parses the whole source first, then executes it on ``tape`` (a fresh
        zeroed tape when omitted). A parse failure means nothing runs.
        """
        program = self.parse()
        tape = tape if tape is not None else Tape()
        self.tape = tape
        self.call_stack = [Frame("<top-level>", program.location)]
        self._notify("program_start", self, program, tape)
        try:
            self.execute(program.statements, tape)
        except ExitSignal:
            raise
        except BFRuntimeError as error:
            error.step_index = self.steps
            self._notify("on_error", self, error)
            raise
        except Exception as exc:
            # Deep nesting hitting the recursion limit, unencodable output and
            # the like still surface as a traceback over the loop frames.
            wrapped = BFRuntimeError(
                f"Internal interpreter error: {exc}",
                location=self._position(),
                rule="internal",
            )
            wrapped.step_index = self.steps
            self._notify("on_error", self, wrapped)
            raise wrapped from exc
        self._notify("program_end", self, tape)
        self.call_stack.pop()
        return tape

    def execute(self, statements: List[Instruction], tape: Tape) -> None:
        frame = self.call_stack[-1] if self.call_stack else None
        traced = not self.hooks.idle
        execute_instruction = self._execute_instruction
        for statement in statements:
            self.steps += 1
            if frame is not None:
                frame.current = statement
            if traced:
                self._notify("before_instruction", self, statement, tape)
                self._call_hooks("Extension step rule", self.hooks.step, self, self.steps)
            execute_instruction(statement, tape)
            if traced:
                self._notify("after_instruction", self, statement, tape)

    def _execute_instruction(self, statement: Instruction, tape: Tape) -> None:
        cells = tape.cells
        if isinstance(statement, MoveRight):
            if tape.pointer == tape.length - 1:
                tape.pointer = 0
            else:
                tape.pointer += 1
            return
        if isinstance(statement, MoveLeft):
            if tape.pointer == 0:
                tape.pointer = tape.length - 1
            else:
                tape.pointer -= 1
            return
        if isinstance(statement, Increment):
            if cells[tape.pointer] == CELL_MAX:
                cells[tape.pointer] = 0
            else:
                cells[tape.pointer] += 1
            return
        if isinstance(statement, Decrement):
            if cells[tape.pointer] == 0:
                cells[tape.pointer] = CELL_MAX
            else:
                cells[tape.pointer] -= 1
            return
        if isinstance(statement, Output):
            self.output_sink(chr(int(cells[tape.pointer])))
            return
        if isinstance(statement, Loop):
            self._execute_loop(statement, tape)
            return
        if isinstance(statement, InputReplace):
            raise BFRuntimeError(
                "The ',' operator is not supported.",
                location=statement.location,
                rule="InputReplace",
            )
        raise BFRuntimeError(
            f"Unsupported instruction {statement.__class__.__name__}",
            location=statement.location,
            rule="internal",
        )

    def _execute_loop(self, statement: Loop, tape: Tape) -> None:
        cells = tape.cells
        # The cell is tested before every pass, the first one included.
        if cells[tape.pointer] == 0:
            return
        location = statement.location
        self.call_stack.append(Frame(f"loop@{location.line}:{location.column}", location))
        self._notify("loop_enter", self, statement, tape)
        while cells[tape.pointer] != 0:
            self.execute(statement.body, tape)
        self._notify("loop_exit", self, statement, tape)
        # On error the frame stays so the traceback shows every enclosing loop.
        self.call_stack.pop()

    def _position(self) -> Optional[SourceLocation]:
        return self.call_stack[-1].position if self.call_stack else None

    def _notify(self, event: str, *args: Any) -> None:
        self._call_hooks(f"Extension hook '{event}'", self.hooks.emit, event, *args)

    def _call_hooks(self, label: str, call: Callable[..., None], *args: Any) -> None:
        try:
            call(*args)
        except (BFRuntimeError, ExitSignal):
            raise
        except Exception as exc:
            raise BFRuntimeError(f"{label} failed: {exc}", location=self._position(), rule="EXT") from exc


def format_traceback(interpreter: Interpreter, error: BFRuntimeError, *, verbose: bool = False) -> str:
    lines = ["Traceback (most recent call last):"]
    for frame in interpreter.call_stack:
        location = frame.position
        if location is None:
            lines.append(f"  <unknown location> in {frame.name}")
            continue
        lines.append(
            f"  File \"{location.file}\", line {location.line}, column {location.column}, in {frame.name}"
        )
        if location.statement:
            lines.append(f"    {location.statement}")
    if error.step_index is not None:
        lines.append(f"  Instructions executed: {error.step_index}")
    if verbose and interpreter.tape is not None:
        snapshot = ", ".join(f"{k}={v}" for k, v in interpreter.tape.snapshot().items())
        lines.append(f"  Tape snapshot: {snapshot}")
    rule = error.rule or "runtime"
    lines.append(f"{error.__class__.__name__}: {error.message} (rule: {rule})")
    return "\n".join(lines)


def traceback_json(interpreter: Interpreter, error: BFRuntimeError) -> str:
    frames: List[Dict[str, Any]] = []
    for depth, frame in enumerate(interpreter.call_stack):
        entry: Dict[str, Any] = {
            "depth": depth,
            "name": frame.name,
            "instruction": frame.current.symbol if frame.current is not None else None,
        }
        location = frame.position
        if location is not None:
            entry["source_location"] = {
                "file": location.file,
                "line": location.line,
                "column": location.column,
                "statement": location.statement,
            }
        frames.append(entry)
    data = {
        "error": {
            "type": error.__class__.__name__,
            "message": error.message,
            "rule": error.rule,
            "step": error.step_index,
        },
        "traceback": frames,
        "tape": interpreter.tape.snapshot() if interpreter.tape is not None else None,
    }
    return json.dumps(data, indent=2)
