from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import pytest

from extensions import Hooks
from interpreter import Interpreter, Tape


@dataclass
class RunResult:
    tape: Tape
    output: str
    interpreter: Interpreter


@pytest.fixture()
def make_interpreter() -> Callable[..., Tuple[Interpreter, List[str]]]:
    def _make(
        source: str,
        *,
        verbose: bool = False,
        hooks: Optional[Hooks] = None,
    ) -> Tuple[Interpreter, List[str]]:
        chunks: List[str] = []
        interpreter = Interpreter(
            source=source,
            filename="<string>",
            verbose=verbose,
            hooks=hooks,
            output_sink=chunks.append,
        )
        return interpreter, chunks

    return _make


@pytest.fixture()
def run_bf(make_interpreter) -> Callable[..., RunResult]:
    def _run(source: str, *, tape: Optional[Tape] = None, **kwargs) -> RunResult:
        interpreter, chunks = make_interpreter(source, **kwargs)
        result = interpreter.run(tape)
        return RunResult(tape=result, output="".join(chunks), interpreter=interpreter)

    return _run
