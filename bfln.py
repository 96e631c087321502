"""BF-Lang entry point and REPL wiring."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional, Tuple

from extensions import BFExtensionError, Hooks, load_hooks
from interpreter import BFRuntimeError, ExitSignal, Interpreter, format_traceback, traceback_json
from lexer import BFParseError


HELP_MSG = "Enter 'help' for this help message and 'exit' to exit."


def run_repl(verbose: bool = False, hooks: Optional[Hooks] = None) -> int:
    print(f"Entering interactive shell. {HELP_MSG}")
    had_output = False

    def _output_sink(text: str) -> None:
        nonlocal had_output
        had_output = True
        sys.stdout.write(text)

    buffer: List[str] = []
    while True:
        if had_output:
            # Start the prompt on a fresh line after program output.
            print()
            had_output = False
        try:
            line = input("..> " if buffer else ">>> ")
        except EOFError:
            print()
            return 0

        stripped = line.strip()
        continued = bool(buffer)
        if continued:
            if stripped:
                buffer.append(line)
                continue
            source_text = "\n".join(buffer)
            buffer.clear()
        elif stripped == "exit":
            return 0
        elif stripped == "help":
            print(HELP_MSG)
            continue
        elif not stripped:
            continue
        else:
            source_text = line

        # Every entry runs on its own zeroed tape.
        interpreter = Interpreter(source=source_text, filename="<repl>", verbose=verbose, hooks=hooks, output_sink=_output_sink)
        try:
            interpreter.run()
        except BFParseError as error:
            if not continued:
                # An unclosed loop continues on the following lines.
                buffer.append(line)
            else:
                print(f"ParseError: {error}", file=sys.stderr)
        except ExitSignal as sig:
            return sig.code
        except BFRuntimeError as error:
            sys.stdout.flush()
            print(format_traceback(interpreter, error, verbose=verbose), file=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="BF-Lang reference interpreter",
        epilog="Without a program, source piped to stdin is executed; use --interactive for a shell.",
    )
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Show a tape snapshot in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("-ext", "--ext", dest="extensions", action="append", default=[], metavar="PATH", help="Load an extension module (repeatable)")
    parser.add_argument("-i", "--interactive", action="store_true", help="Start the interactive shell")
    return parser


def _read_program(args: argparse.Namespace, prog: str) -> Tuple[Optional[str], str]:
    """Returns (source, filename); source is None after a reported failure."""
    if args.source_mode:
        if args.program is None:
            print("-source requires a program string", file=sys.stderr)
            return None, ""
        return args.program, "<string>"
    if args.program is None:
        if sys.stdin is None or sys.stdin.isatty():
            print(f"Usage: {prog} <filename>", file=sys.stderr)
            return None, ""
        # Each byte is one character, whatever the encoding of the terminal.
        return sys.stdin.buffer.read().decode("latin-1"), "<stdin>"
    try:
        with open(args.program, "r", encoding="utf-8") as handle:
            return handle.read(), args.program
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Failed to read {args.program}: {exc}", file=sys.stderr)
        return None, ""


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        hooks = load_hooks(args.extensions)
    except BFExtensionError as error:
        print(f"ExtensionError: {error}", file=sys.stderr)
        return 1

    if args.interactive:
        return run_repl(verbose=args.verbose, hooks=hooks)

    source_text, filename = _read_program(args, parser.prog)
    if source_text is None:
        return 1

    interpreter = Interpreter(source=source_text, filename=filename, verbose=args.verbose, hooks=hooks)
    try:
        interpreter.run()
    except BFParseError as error:
        print(f"ParseError: {error}", file=sys.stderr)
        return 1
    except ExitSignal as sig:
        return sig.code
    except BFRuntimeError as error:
        sys.stdout.flush()
        print(format_traceback(interpreter, error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(traceback_json(interpreter, error), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        sys.stdout.flush()
        print("Interrupted", file=sys.stderr)
        return 1
    finally:
        sys.stdout.flush()
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
