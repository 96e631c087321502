from __future__ import annotations

import json

import numpy as np
import pytest

from extensions import Hooks
from interpreter import TAPE_LENGTH, BFRuntimeError, Interpreter, Tape, format_traceback, traceback_json
from lexer import BFParseError
from parser import parse_source
from tests.helpers import HELLO_WORLD


def test_fresh_tape_is_zeroed():
    tape = Tape()
    assert tape.length == TAPE_LENGTH == 30000
    assert tape.pointer == 0
    assert tape.cells.dtype == np.uint8
    assert not tape.cells.any()


def test_tape_rejects_bad_geometry():
    with pytest.raises(ValueError):
        Tape(length=0)
    with pytest.raises(ValueError):
        Tape(length=4, pointer=4)


def test_move_right_wraps_after_full_lap(run_bf):
    result = run_bf(">" * TAPE_LENGTH)
    assert result.tape.pointer == 0


def test_move_left_wraps_from_zero(run_bf):
    assert run_bf("<").tape.pointer == TAPE_LENGTH - 1
    assert run_bf("<" * TAPE_LENGTH).tape.pointer == 0


def test_increment_wraps_to_zero(run_bf):
    assert int(run_bf("+" * 255).tape.cells[0]) == 255
    assert int(run_bf("+" * 256).tape.cells[0]) == 0


def test_decrement_wraps_to_max(run_bf):
    assert int(run_bf("-").tape.cells[0]) == 255
    assert int(run_bf("-" * 256).tape.cells[0]) == 0


def test_loop_on_zero_cell_is_skipped(run_bf):
    result = run_bf("[>+++<-]")
    assert result.tape.pointer == 0
    assert not result.tape.cells.any()


def test_loop_moves_value_between_cells(run_bf):
    result = run_bf("++>+++++[<+>-]")
    assert int(result.tape.cells[0]) == 7
    assert int(result.tape.cells[1]) == 0
    assert result.tape.pointer == 1


def test_loop_with_pointer_back_at_start(run_bf):
    result = run_bf("++>+++++[<+>-]<")
    assert result.tape.pointer == 0
    assert int(result.tape.cells[0]) == 7


def test_scan_left_wraps_around_the_tape(run_bf):
    result = run_bf("+>+>+[<]")
    assert result.tape.pointer == TAPE_LENGTH - 1


def test_nested_loops_multiply(run_bf):
    result = run_bf("+++[>++++[>+<-]<-]")
    assert int(result.tape.cells[2]) == 12
    assert result.tape.pointer == 0


def test_output_emits_cell_as_character(run_bf):
    assert run_bf("++.").output == chr(2)


def test_hello_world(run_bf):
    assert run_bf(HELLO_WORLD).output == "Hello World!\n"


def test_output_above_ascii_range(run_bf):
    assert run_bf("-.").output == chr(255)


def test_input_instruction_is_fatal(make_interpreter):
    interpreter, chunks = make_interpreter("+.,+.")
    with pytest.raises(BFRuntimeError) as exc:
        interpreter.run()
    assert exc.value.message == "The ',' operator is not supported."
    assert exc.value.rule == "InputReplace"
    assert exc.value.location.column == 3
    assert chunks == [chr(1)]
    assert int(interpreter.tape.cells[0]) == 1


def test_unreached_input_instruction_is_harmless(run_bf):
    assert run_bf("[,]+.").output == chr(1)


def test_parse_failure_runs_nothing(make_interpreter):
    interpreter, chunks = make_interpreter("+.[+")
    with pytest.raises(BFParseError):
        interpreter.run()
    assert chunks == []
    assert interpreter.tape is None


def test_run_uses_supplied_tape(run_bf):
    tape = Tape(length=8, pointer=7)
    result = run_bf(">+", tape=tape)
    assert result.tape is tape
    assert tape.pointer == 0
    assert int(tape.cells[0]) == 1


def test_program_can_be_executed_repeatedly(make_interpreter):
    interpreter, _ = make_interpreter("")
    program = parse_source("+>[-]<")
    tape = Tape()
    for _ in range(3):
        interpreter.execute(program.statements, tape)
    assert int(tape.cells[0]) == 3
    assert tape.pointer == 0


def test_tape_window_wraps():
    tape = Tape(length=10)
    tape.cells[:] = np.arange(10, dtype=np.uint8)
    assert tape.window(2).tolist() == [8, 9, 0, 1, 2]
    assert tape.snapshot(1) == {"pointer": "0", "cell": "0", "window": "9 [0] 1"}


def test_step_counter_counts_executed_instructions(run_bf):
    assert run_bf("+" * 100).interpreter.steps == 100
    # '+', the loop itself, then one pass over '-'.
    assert run_bf("+[-]").interpreter.steps == 3
    assert run_bf("[>>>]").interpreter.steps == 1


def test_loop_frames_are_released(run_bf):
    hooks = Hooks()
    depths = []
    hooks.on("loop_enter", lambda interpreter, loop, tape: depths.append(len(interpreter.call_stack)))
    result = run_bf("++++[>++++[>++++[-]<-]<-]", hooks=hooks)
    # One outer entry, four middle entries, sixteen inner entries.
    assert len(depths) == 21
    assert max(depths) == 4
    assert result.interpreter.call_stack == []


def test_traceback_lists_enclosing_loops(make_interpreter):
    interpreter, _ = make_interpreter("+[>+[\n,]]")
    with pytest.raises(BFRuntimeError) as exc:
        interpreter.run()
    names = [frame.name for frame in interpreter.call_stack]
    assert names == ["<top-level>", "loop@1:2", "loop@1:5"]
    lines = format_traceback(interpreter, exc.value).splitlines()
    assert lines == [
        "Traceback (most recent call last):",
        '  File "<string>", line 1, column 2, in <top-level>',
        "    +[>+[",
        '  File "<string>", line 1, column 5, in loop@1:2',
        "    +[>+[",
        '  File "<string>", line 2, column 1, in loop@1:5',
        "    ,]]",
        "  Instructions executed: 6",
        "BFRuntimeError: The ',' operator is not supported. (rule: InputReplace)",
    ]


def test_verbose_traceback_shows_the_tape(make_interpreter):
    interpreter, _ = make_interpreter("+>++,")
    with pytest.raises(BFRuntimeError) as exc:
        interpreter.run()
    text = format_traceback(interpreter, exc.value, verbose=True)
    assert "  Tape snapshot: pointer=1, cell=2, window=" in text
    assert "Tape snapshot" not in format_traceback(interpreter, exc.value)


def test_json_traceback(make_interpreter):
    interpreter, _ = make_interpreter("+[,]")
    with pytest.raises(BFRuntimeError) as exc:
        interpreter.run()
    data = json.loads(traceback_json(interpreter, exc.value))
    assert data["error"] == {
        "type": "BFRuntimeError",
        "message": "The ',' operator is not supported.",
        "rule": "InputReplace",
        "step": 3,
    }
    frames = data["traceback"]
    assert [f["name"] for f in frames] == ["<top-level>", "loop@1:2"]
    assert [f["instruction"] for f in frames] == ["[", ","]
    assert frames[1]["source_location"]["column"] == 3
    assert data["tape"]["cell"] == "1"


def test_unexpected_errors_are_wrapped():
    def _broken_sink(text: str) -> None:
        raise OSError("stdout closed")

    interpreter = Interpreter(source="+.", filename="<string>", verbose=False, output_sink=_broken_sink)
    with pytest.raises(BFRuntimeError) as exc:
        interpreter.run()
    assert exc.value.rule == "internal"
    assert "stdout closed" in exc.value.message


def test_default_sink_writes_stdout(capsys):
    Interpreter(source="++++++++[>++++++++<-]>+.", filename="<string>", verbose=False).run()
    assert capsys.readouterr().out == "A"
