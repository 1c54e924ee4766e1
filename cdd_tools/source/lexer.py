"""Tokenizer for Rust source text.

Only what the declaration parser needs is distinguished: identifiers,
lifetimes, literals and punctuation. Comments and whitespace are dropped.
Offsets are string indices into the original text, so every token maps back
to an exact slice.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final

from cdd_tools.shared.errors import ParseFailure

OPENERS: Final[dict[str, str]] = {"(": ")", "[": "]", "{": "}"}
CLOSERS: Final[frozenset[str]] = frozenset(OPENERS.values())
TWO_CHAR_PUNCT: Final[frozenset[str]] = frozenset({"::", "->", "=>"})


class TokenKind(Enum):
    IDENT = "ident"
    LIFETIME = "lifetime"
    LITERAL = "literal"
    PUNCT = "punct"


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    start: int
    end: int


def _is_ident_start(char: str) -> bool:
    return char == "_" or char.isalpha()


def _is_ident_char(char: str) -> bool:
    return char == "_" or char.isalnum()


class _Lexer:
    __slots__ = ("text", "pos", "tokens", "source_path")

    def __init__(self, text: str, source_path: str | None) -> None:
        self.text = text
        self.pos = 0
        self.tokens: list[Token] = []
        self.source_path = source_path

    def fail(self, message: str, offset: int) -> ParseFailure:
        line = self.text.count("\n", 0, offset) + 1
        return ParseFailure(message, offset, line, self.source_path)

    def peek(self, ahead: int = 0) -> str:
        index = self.pos + ahead
        return self.text[index] if index < len(self.text) else ""

    def push(self, kind: TokenKind, start: int) -> None:
        self.tokens.append(Token(kind, self.text[start:self.pos], start, self.pos))

    def run(self) -> list[Token]:
        text = self.text
        while self.pos < len(text):
            char = text[self.pos]
            start = self.pos

            if char.isspace():
                self.pos += 1
            elif text.startswith("//", start):
                newline = text.find("\n", start)
                self.pos = len(text) if newline == -1 else newline
            elif text.startswith("/*", start):
                self.skip_block_comment()
            elif self.raw_string_prefix():
                self.read_raw_string()
                self.push(TokenKind.LITERAL, start)
            elif char == "b" and self.peek(1) in ("\"", "'"):
                self.pos += 1
                self.read_quoted(self.peek())
                self.push(TokenKind.LITERAL, start)
            elif char == "r" and self.peek(1) == "#" and _is_ident_start(self.peek(2)):
                self.pos += 2
                self.read_ident()
                self.push(TokenKind.IDENT, start)
            elif _is_ident_start(char):
                self.read_ident()
                self.push(TokenKind.IDENT, start)
            elif char == "\"":
                self.read_quoted("\"")
                self.push(TokenKind.LITERAL, start)
            elif char == "'":
                self.read_quote_or_lifetime()
            elif char.isdigit():
                self.read_number()
                self.push(TokenKind.LITERAL, start)
            else:
                pair = text[start:start + 2]
                self.pos += 2 if pair in TWO_CHAR_PUNCT else 1
                self.push(TokenKind.PUNCT, start)
        return self.tokens

    def skip_block_comment(self) -> None:
        start = self.pos
        depth = 0
        while self.pos < len(self.text):
            if self.text.startswith("/*", self.pos):
                depth += 1
                self.pos += 2
            elif self.text.startswith("*/", self.pos):
                depth -= 1
                self.pos += 2
                if depth == 0:
                    return
            else:
                self.pos += 1
        raise self.fail("unterminated block comment", start)

    def raw_string_prefix(self) -> bool:
        """Check for ``r"``, ``r#"``, ``br"`` or ``br#"`` at the cursor."""
        offset = 0
        if self.peek() == "b":
            offset = 1
        if self.peek(offset) != "r":
            return False
        offset += 1
        while self.peek(offset) == "#":
            offset += 1
        return self.peek(offset) == "\""

    def read_raw_string(self) -> None:
        start = self.pos
        if self.peek() == "b":
            self.pos += 1
        self.pos += 1
        hashes = 0
        while self.peek() == "#":
            hashes += 1
            self.pos += 1
        self.pos += 1
        terminator = "\"" + "#" * hashes
        end = self.text.find(terminator, self.pos)
        if end == -1:
            raise self.fail("unterminated raw string literal", start)
        self.pos = end + len(terminator)

    def read_quoted(self, quote: str) -> None:
        start = self.pos
        self.pos += 1
        while self.pos < len(self.text):
            char = self.text[self.pos]
            if char == "\\":
                self.pos += 2
            elif char == quote:
                self.pos += 1
                return
            else:
                self.pos += 1
        raise self.fail("unterminated string literal", start)

    def read_ident(self) -> None:
        while self.pos < len(self.text) and _is_ident_char(self.text[self.pos]):
            self.pos += 1

    def read_quote_or_lifetime(self) -> None:
        start = self.pos
        if self.peek(1) == "\\" or self.peek(2) == "'":
            self.read_quoted("'")
            self.push(TokenKind.LITERAL, start)
            return
        if _is_ident_start(self.peek(1)):
            self.pos += 1
            self.read_ident()
            self.push(TokenKind.LIFETIME, start)
            return
        raise self.fail("malformed character literal", start)

    def read_number(self) -> None:
        text = self.text
        while self.pos < len(text):
            char = text[self.pos]
            if _is_ident_char(char):
                self.pos += 1
            elif char == "." and self.pos + 1 < len(text) and text[self.pos + 1].isdigit():
                self.pos += 1
            else:
                return


def tokenize(text: str, source_path: str | None = None) -> list[Token]:
    """Split Rust source into tokens, dropping whitespace and comments.

    Raises:
        ParseFailure: On unterminated literals or comments.
    """
    return _Lexer(text, source_path).run()


def match_delimiters(
    text: str,
    tokens: list[Token],
    source_path: str | None = None,
) -> dict[int, int]:
    """Map each opening delimiter token index to its closing index and back.

    Raises:
        ParseFailure: When delimiters are unbalanced.
    """
    pairs: dict[int, int] = {}
    stack: list[int] = []
    for index, token in enumerate(tokens):
        if token.kind is not TokenKind.PUNCT:
            continue
        if token.text in OPENERS:
            stack.append(index)
        elif token.text in CLOSERS:
            if not stack or OPENERS[tokens[stack[-1]].text] != token.text:
                line = text.count("\n", 0, token.start) + 1
                raise ParseFailure(f"unexpected '{token.text}'", token.start, line, source_path)
            opener = stack.pop()
            pairs[opener] = index
            pairs[index] = opener
    if stack:
        token = tokens[stack[-1]]
        line = text.count("\n", 0, token.start) + 1
        raise ParseFailure(f"unclosed '{token.text}'", token.start, line, source_path)
    return pairs
