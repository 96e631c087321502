from __future__ import annotations
from dataclasses import dataclass
from typing import List

from lexer import BFParseError, Lexer, Token


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass
class Node:
    location: SourceLocation


class Instruction(Node):
    symbol = ""


@dataclass
class Program(Node):
    statements: List[Instruction]


@dataclass
class MoveLeft(Instruction):
    symbol = "<"


@dataclass
class MoveRight(Instruction):
    symbol = ">"


@dataclass
class Increment(Instruction):
    symbol = "+"


@dataclass
class Decrement(Instruction):
    symbol = "-"


@dataclass
class Output(Instruction):
    symbol = "."


@dataclass
class InputReplace(Instruction):
    symbol = ","


@dataclass
class Loop(Instruction):
    body: List[Instruction]
    symbol = "["


SIMPLE_INSTRUCTIONS = {
    "LEFT": MoveLeft,
    "RIGHT": MoveRight,
    "PLUS": Increment,
    "MINUS": Decrement,
    "DOT": Output,
    "COMMA": InputReplace,
}


class Parser:
    def __init__(
        self,
        tokens: List[Token],
        filename: str,
        source_lines: List[str],
    ):
        self.tokens = tokens
        self.filename = filename
        # Stripped once; every node on a line shares the same string.
        self.source_lines = [line.strip() for line in source_lines]
        self.index = 0

    def parse(self) -> Program:
        end = len(self.tokens) - 1
        try:
            statements: List[Instruction] = self._parse_series(end)
        except RecursionError:
            raise BFParseError(f"Loops nested too deeply in {self.filename}")
        return Program(location=self._location_from_token(self.tokens[end]), statements=statements)

    def _parse_series(self, stop: int) -> List[Instruction]:
        statements: List[Instruction] = []
        while self.index < stop:
            token = self.tokens[self.index]
            self.index += 1
            node_type = SIMPLE_INSTRUCTIONS.get(token.type)
            if node_type is not None:
                statements.append(node_type(location=self._location_from_token(token)))
            elif token.type == "LBRACKET":
                statements.append(self._parse_loop(token, stop))
            # A stray ']' is not an instruction; it is dropped like any other
            # unrecognised character.
        return statements

    def _parse_loop(self, opening: Token, stop: int) -> Loop:
        """
        Parses the tokens between ``opening`` and its matching ']' as the loop
        body, then moves the cursor past that ']'.
        """
        closing = self._find_closing(opening, stop)
        body = self._parse_series(closing)
        self.index = closing + 1
        return Loop(location=self._location_from_token(opening), body=body)

    def _find_closing(self, opening: Token, stop: int) -> int:
        level = 1
        position = self.index
        tokens = self.tokens
        while position < stop:
            kind = tokens[position].type
            if kind == "LBRACKET":
                level += 1
            elif kind == "RBRACKET":
                level -= 1
                if level == 0:
                    return position
            position += 1
        raise BFParseError(
            f"Loop not closed at {self.filename}:{opening.line}:{opening.column}"
        )

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_index = token.line - 1
        statement = ""
        if 0 <= line_index < len(self.source_lines):
            statement = self.source_lines[line_index]
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=statement)


def parse_source(text: str, filename: str = "<string>") -> Program:
    lexer = Lexer(text, filename)
    tokens = lexer.tokenize()
    # The lexer only counts '\n' as a line break.
    parser = Parser(tokens, filename, text.split("\n"))
    return parser.parse()


def count_instructions(statements: List[Instruction]) -> int:
    """Counts every non-loop node, descending into loop bodies."""
    total = 0
    for statement in statements:
        if isinstance(statement, Loop):
            total += count_instructions(statement.body)
        else:
            total += 1
    return total
