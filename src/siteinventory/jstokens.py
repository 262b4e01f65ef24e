"""Lexical analysis of inline script blocks.

Scripts are tokenized with esprima and never executed. String literal
tokens are decoded by ``unescape_string_literal``, a plain escape-sequence
decoder; captured page content is never evaluated.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import esprima
from esprima.error_handler import Error as EsprimaError

_SIMPLE_ESCAPES = {
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
}

_LINE_TERMINATORS = frozenset("\n\r\u2028\u2029")


class StringLiteralError(ValueError):
    pass


def unescape_string_literal(raw: str) -> str:
    """Decode an ECMAScript string literal token to its value.

    ``raw`` includes the surrounding quotes, exactly as the tokenizer
    reports it: ``'"a\\u0062c"'`` → ``'abc'``.
    """
    if len(raw) < 2 or raw[0] not in "'\"" or raw[-1] != raw[0]:
        raise StringLiteralError(f"Not a quoted string literal: {raw!r}")

    body = raw[1:-1]
    out: list[str] = []
    i = 0
    n = len(body)

    while i < n:
        ch = body[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue

        i += 1
        if i >= n:
            raise StringLiteralError(f"Dangling escape in {raw!r}")
        esc = body[i]

        if esc in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[esc])
            i += 1
        elif esc == "x":
            out.append(chr(_parse_hex(body[i + 1 : i + 3], 2, raw)))
            i += 3
        elif esc == "u":
            if i + 1 < n and body[i + 1] == "{":
                close = body.find("}", i + 2)
                if close == -1:
                    raise StringLiteralError(f"Unterminated \\u{{}} escape in {raw!r}")
                code_point = _parse_hex(body[i + 2 : close], None, raw)
                if code_point > 0x10FFFF:
                    raise StringLiteralError(f"Code point out of range in {raw!r}")
                out.append(chr(code_point))
                i = close + 1
            else:
                out.append(chr(_parse_hex(body[i + 1 : i + 5], 4, raw)))
                i += 5
        elif esc in "01234567":
            # Legacy octal escape: up to three digits, value <= 0o377.
            j = i
            limit = i + (3 if esc in "0123" else 2)
            while j < min(limit, n) and body[j] in "01234567":
                j += 1
            out.append(chr(int(body[i:j], 8)))
            i = j
        elif esc == "\r":
            # Line continuation; \r\n counts as one terminator.
            i += 2 if body[i + 1 : i + 2] == "\n" else 1
        elif esc in _LINE_TERMINATORS:
            i += 1
        else:
            # Identity escape: \' \" \\ and any other character.
            out.append(esc)
            i += 1

    return _join_surrogates("".join(out))


def _parse_hex(digits: str, width: int | None, raw: str) -> int:
    if (width is not None and len(digits) != width) or not digits:
        raise StringLiteralError(f"Malformed hex escape in {raw!r}")
    try:
        return int(digits, 16)
    except ValueError as exc:
        raise StringLiteralError(f"Malformed hex escape in {raw!r}") from exc


def _join_surrogates(value: str) -> str:
    """Combine UTF-16 surrogate pairs produced by ``\\uD83D\\uDE00`` style escapes."""
    if not any("\ud800" <= ch <= "\udfff" for ch in value):
        return value
    return value.encode("utf-16", "surrogatepass").decode("utf-16", "replace")


@dataclass
class ScriptAnalysis:
    """Identifiers and strings collected across every block of one page."""

    identifiers: list[str] = field(default_factory=list)
    strings: list[str] = field(default_factory=list)
    failed_blocks: int = 0

    def __post_init__(self) -> None:
        self._seen_identifiers: dict[str, None] = dict.fromkeys(self.identifiers)
        self._seen_strings: dict[str, None] = dict.fromkeys(self.strings)

    def add_block(self, source: str) -> None:
        """Tokenize ``source`` and merge its identifiers and strings.

        Raises ``EsprimaError`` or ``StringLiteralError``; a failing block
        contributes nothing.
        """
        identifiers: list[str] = []
        strings: list[str] = []
        for token in tokenize(source):
            if token.type == "Identifier":
                identifiers.append(token.value)
            elif token.type == "String":
                strings.append(unescape_string_literal(token.value))

        for value in identifiers:
            if value not in self._seen_identifiers:
                self._seen_identifiers[value] = None
                self.identifiers.append(value)
        for value in strings:
            if value not in self._seen_strings:
                self._seen_strings[value] = None
                self.strings.append(value)


def tokenize(source: str) -> list:
    """Tokenize one script block. Raises ``EsprimaError`` on lexical errors."""
    return esprima.tokenize(source)


__all__ = [
    "EsprimaError",
    "ScriptAnalysis",
    "StringLiteralError",
    "tokenize",
    "unescape_string_literal",
]
