"""Lexer for the automation scripting language.

Turns raw script text into a flat token stream. The lexer never raises:
characters it does not recognise are skipped and reported as warnings on
the ``Lexer`` instance so the validator can surface them.
"""

from typing import List

from ..models.script import Diagnostic, DiagnosticSeverity, Token, TokenType
from .logging import get_logger

logger = get_logger(__name__)

KEYWORDS = frozenset({
    "when", "then", "end", "on", "do", "if", "else", "every",
    "minutes", "hour", "hours", "seconds",
})

# Operator words lex as keywords; symbolic ones as operators.
OPERATOR_WORDS = frozenset({"and", "or", "not", "contains"})

OPERATORS = frozenset({">", "<", ">=", "<=", "==", "!=", "=", "+", "-", "*", "/"})

SYMBOL_CHARS = "(){}[]<>=!+-*/,"
TWO_CHAR_PREFIXES = "=<>!"
QUOTES = "'\""


def _is_digit(char: str) -> bool:
    return "0" <= char <= "9"


def _is_identifier_start(char: str) -> bool:
    return char == "_" or ("a" <= char <= "z") or ("A" <= char <= "Z")


def _is_identifier_part(char: str) -> bool:
    return _is_identifier_start(char) or _is_digit(char) or char == "-"


class Lexer:
    """Single-use tokenizer; ``warnings`` holds what was skipped."""

    def __init__(self, code: str):
        self.code = code
        self.tokens: List[Token] = []
        self.warnings: List[Diagnostic] = []

    def tokenize(self) -> List[Token]:
        for line_number, line in enumerate(self.code.split("\n"), start=1):
            self._tokenize_line(line, line_number)
        logger.debug(f"Tokenized {len(self.tokens)} tokens")
        return self.tokens

    def _emit(self, token_type: TokenType, value: str, line: int, column: int) -> None:
        self.tokens.append(Token(type=token_type, value=value, line=line, column=column))

    def _warn(self, message: str, line: int, column: int) -> None:
        self.warnings.append(Diagnostic(
            line=line,
            column=column,
            message=message,
            severity=DiagnosticSeverity.WARNING,
        ))

    def _tokenize_line(self, line: str, line_number: int) -> None:
        column = 0
        length = len(line)

        while column < length:
            char = line[column]

            if char.isspace():
                column += 1
                continue

            if char == "#" or (char == "/" and line[column + 1:column + 2] == "/"):
                break

            if char in QUOTES:
                column = self._read_string(line, line_number, column)
                continue

            if _is_digit(char):
                start = column
                while column < length and _is_digit(line[column]):
                    column += 1
                if column + 1 < length and line[column] == "." and _is_digit(line[column + 1]):
                    column += 1
                    while column < length and _is_digit(line[column]):
                        column += 1
                self._emit(TokenType.NUMBER, line[start:column], line_number, column)
                continue

            if char in SYMBOL_CHARS:
                value = char
                column += 1
                if column < length and char in TWO_CHAR_PREFIXES and line[column] == "=":
                    value += "="
                    column += 1
                token_type = TokenType.OPERATOR if value in OPERATORS else TokenType.SYMBOL
                self._emit(token_type, value, line_number, column)
                continue

            if _is_identifier_start(char):
                start = column
                while column < length and _is_identifier_part(line[column]):
                    column += 1
                value = line[start:column]
                if value in KEYWORDS or value in OPERATOR_WORDS:
                    self._emit(TokenType.KEYWORD, value, line_number, column)
                else:
                    self._emit(TokenType.IDENTIFIER, value, line_number, column)
                continue

            self._warn(f"Skipped unrecognized character {char!r}", line_number, column + 1)
            column += 1

    def _read_string(self, line: str, line_number: int, column: int) -> int:
        """Read a quoted literal starting at ``column``; return the next offset."""
        quote = line[column]
        start = column
        column += 1
        chars = []

        while column < len(line) and line[column] != quote:
            if line[column] == "\\" and column + 1 < len(line):
                column += 1
            chars.append(line[column])
            column += 1

        if column >= len(line):
            self._warn("Unterminated string literal", line_number, start + 1)

        self._emit(TokenType.STRING, "".join(chars), line_number, column)
        return column + 1


def tokenize(code: str) -> List[Token]:
    """Tokenize script code. Never raises."""
    return Lexer(code).tokenize()
