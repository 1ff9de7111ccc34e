"""Lexical helpers for PostgreSQL statement text.

Only what pgbind needs is recognized: string literals (standard and
``E''`` escape strings), quoted identifiers, dollar quotes, line and
(nested) block comments. Everything else is plain code. That is enough to
split a file on top-level semicolons and to find parameter placeholders
without touching literal text.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

CODE = "code"
STRING = "string"
IDENT = "ident"
DOLLAR = "dollar"
COMMENT = "comment"

_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")
_POSITIONAL = re.compile(r"\$(\d+)")
_NAMED = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")


class SqlScanError(ValueError):
    """Unterminated literal or comment."""

    def __init__(self, reason: str, offset: int) -> None:
        super().__init__(reason)
        self.reason = reason
        self.offset = offset


@dataclass(frozen=True)
class Segment:
    kind: str
    text: str
    offset: int


@dataclass(frozen=True)
class Chunk:
    """Text of one statement (without its terminating semicolon)."""

    text: str
    offset: int


def segments(sql: str) -> Iterator[Segment]:
    """Split text into code, literal and comment segments."""
    i = 0
    start = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        nxt = sql[i + 1] if i + 1 < n else ""
        end: int | None = None
        kind = CODE
        if ch == "-" and nxt == "-":
            kind = COMMENT
            newline = sql.find("\n", i)
            end = n if newline == -1 else newline
        elif ch == "/" and nxt == "*":
            kind = COMMENT
            end = _block_comment_end(sql, i)
        elif ch == "'":
            kind = STRING
            escapes = i > 0 and sql[i - 1] in "eE" and (i < 2 or not _is_word(sql[i - 2]))
            end = _quoted_end(sql, i, "'", escapes)
        elif ch == '"':
            kind = IDENT
            end = _quoted_end(sql, i, '"', False)
        elif ch == "$" and (i == 0 or not _is_word(sql[i - 1])):
            match = _DOLLAR_TAG.match(sql, i)
            if match:
                kind = DOLLAR
                tag = match.group(0)
                close = sql.find(tag, match.end())
                if close == -1:
                    raise SqlScanError(f"unterminated dollar-quoted string {tag}", i)
                end = close + len(tag)
        if end is None:
            i += 1
            continue
        if start < i:
            yield Segment(CODE, sql[start:i], start)
        yield Segment(kind, sql[i:end], i)
        i = start = end
    if start < n:
        yield Segment(CODE, sql[start:], start)


def split_statements(sql: str) -> list[Chunk]:
    """Split text on semicolons that are not inside literals or comments."""
    chunks: list[Chunk] = []
    current: list[str] = []
    chunk_start = 0
    for segment in segments(sql):
        if segment.kind != CODE or ";" not in segment.text:
            current.append(segment.text)
            continue
        pieces = segment.text.split(";")
        offset = segment.offset
        for index, piece in enumerate(pieces):
            current.append(piece)
            offset += len(piece)
            if index < len(pieces) - 1:
                chunks.append(Chunk("".join(current), chunk_start))
                current = []
                offset += 1
                chunk_start = offset
    tail = "".join(current)
    if tail.strip():
        chunks.append(Chunk(tail, chunk_start))
    return chunks


def positional_placeholders(sql: str) -> list[int]:
    """Return ``$n`` numbers in order of appearance, outside literals."""
    found: list[int] = []
    for segment in segments(sql):
        if segment.kind == CODE:
            found.extend(int(m.group(1)) for m in _POSITIONAL.finditer(segment.text))
    return found


def named_placeholders(sql: str) -> list[str]:
    """Return ``:name`` placeholders in order of appearance, outside literals."""
    found: list[str] = []
    for segment in segments(sql):
        if segment.kind == CODE:
            found.extend(m.group(1) for m in _NAMED.finditer(segment.text))
    return found


def named_to_positional(sql: str) -> tuple[str, list[str]]:
    """Rewrite ``:name`` placeholders to ``$n``.

    Numbers follow first appearance; a repeated name reuses its number.
    Returns the rewritten text and the ordered parameter names.
    """
    names: list[str] = []

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in names:
            names.append(name)
        return f"${names.index(name) + 1}"

    parts = [
        _NAMED.sub(replace, s.text) if s.kind == CODE else s.text for s in segments(sql)
    ]
    return "".join(parts), names


def to_pyformat(sql: str, names: list[str] | tuple[str, ...]) -> str:
    """Rewrite ``$n`` placeholders to psycopg ``%(name)s`` placeholders.

    Literal ``%`` signs are doubled everywhere, psycopg scans the whole
    query text for them.
    """

    def replace(match: re.Match[str]) -> str:
        return f"%({names[int(match.group(1)) - 1]})s"

    parts: list[str] = []
    for segment in segments(sql):
        text = segment.text.replace("%", "%%")
        if segment.kind == CODE:
            text = _POSITIONAL.sub(replace, text)
        parts.append(text)
    return "".join(parts)


def line_of(text: str, offset: int) -> int:
    """1-based line number of ``offset`` in ``text``."""
    return text.count("\n", 0, offset) + 1


def _is_word(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


def _quoted_end(sql: str, start: int, quote: str, escapes: bool) -> int:
    i = start + 1
    n = len(sql)
    while i < n:
        ch = sql[i]
        if escapes and ch == "\\":
            i += 2
            continue
        if ch == quote:
            if i + 1 < n and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    what = "quoted identifier" if quote == '"' else "string literal"
    raise SqlScanError(f"unterminated {what}", start)


def _block_comment_end(sql: str, start: int) -> int:
    depth = 0
    i = start
    n = len(sql)
    while i < n:
        pair = sql[i : i + 2]
        if pair == "/*":
            depth += 1
            i += 2
        elif pair == "*/":
            depth -= 1
            i += 2
            if depth == 0:
                return i
        else:
            i += 1
    raise SqlScanError("unterminated block comment", start)
