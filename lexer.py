from __future__ import annotations
from dataclasses import dataclass
from typing import List


class BFError(Exception):
    """Base class for interpreter errors."""


class BFParseError(BFError):
    """Raised when parsing fails."""


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int


SYMBOLS = {
    "<": "LEFT",
    ">": "RIGHT",
    "+": "PLUS",
    "-": "MINUS",
    ".": "DOT",
    ",": "COMMA",
    "[": "LBRACKET",
    "]": "RBRACKET",
}


class Lexer:
    def __init__(self, text: str, filename: str) -> None:
        self.text = text
        self.filename = filename
        self.index = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        _advance = self._advance
        symbols = SYMBOLS
        text = self.text
        n = len(text)

        while self.index < n:
            ch: str = text[self.index]
            if ch in symbols:
                tokens_append(Token(symbols[ch], ch, self.line, self.column))
            # Anything outside the instruction alphabet is commentary.
            _advance()
        tokens_append(Token("EOF", "", self.line, self.column))
        return tokens

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1
