# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Split a blob of SQL into individually executable statements.

The splitter is a single left-to-right scan. A ``;`` ends a statement
unless it appears inside:

- a single- or double-quoted literal,
- a backslash escape (the escape covers the next character, in or out
  of quotes),
- a dollar-tagged block ``$tag$ ... $tag$`` (tag may be empty),
- a ``BEGIN ... END`` block (case-insensitive keywords at token
  boundaries, nesting tracked by a depth counter that never goes
  below zero).

``--`` line comments are skipped by the scanner so quotes or keywords
inside them do not change state. Before a statement is emitted every line
whose stripped text starts with ``--`` is dropped; statements left empty
are discarded.

Example:
    >>> split_statements("INSERT INTO t VALUES (1); -- c\\nINSERT INTO t VALUES (2);")
    ['INSERT INTO t VALUES (1)', 'INSERT INTO t VALUES (2)']
"""

from __future__ import annotations

import re

_DOLLAR_TAG = re.compile(r"\$[A-Za-z0-9_]*\$")
_BLOCK_OPEN = re.compile(r"BEGIN\b", re.IGNORECASE)
_BLOCK_CLOSE = re.compile(r"END\b", re.IGNORECASE)


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


def _clean(chunk: str) -> str:
    """Drop comment lines and surrounding whitespace."""
    lines = [line for line in chunk.split("\n") if not line.strip().startswith("--")]
    return "\n".join(lines).strip()


def _emit(statements: list[str], current: list[str]) -> None:
    statement = _clean("".join(current))
    if statement:
        statements.append(statement)


def split_statements(sql: str) -> list[str]:
    """Split ``sql`` on top-level semicolons.

    Args:
        sql: One or more SQL statements.

    Returns:
        Non-empty statements in input order, without the terminating ``;``.
    """
    statements: list[str] = []
    current: list[str] = []
    in_single = False
    in_double = False
    escape_next = False
    dollar_tag = ""
    depth = 0
    i = 0
    length = len(sql)

    while i < length:
        ch = sql[i]

        if dollar_tag:
            if sql.startswith(dollar_tag, i):
                current.append(dollar_tag)
                i += len(dollar_tag)
                dollar_tag = ""
            else:
                current.append(ch)
                i += 1
            continue

        if escape_next:
            current.append(ch)
            escape_next = False
            i += 1
            continue

        if ch == "\\":
            escape_next = True
            current.append(ch)
            i += 1
            continue

        if in_single or in_double:
            if (in_single and ch == "'") or (in_double and ch == '"'):
                in_single = in_double = False
            current.append(ch)
            i += 1
            continue

        if ch == "'":
            in_single = True
        elif ch == '"':
            in_double = True
        elif ch == "-" and sql.startswith("--", i):
            end = sql.find("\n", i)
            end = length if end == -1 else end
            current.append(sql[i:end])
            i = end
            continue
        elif ch == "$" and (i == 0 or not _is_word_char(sql[i - 1])):
            match = _DOLLAR_TAG.match(sql, i)
            if match:
                dollar_tag = match.group()
                current.append(dollar_tag)
                i = match.end()
                continue
        elif i == 0 or not _is_word_char(sql[i - 1]):
            if _BLOCK_OPEN.match(sql, i):
                depth += 1
            elif depth > 0 and _BLOCK_CLOSE.match(sql, i):
                depth -= 1

        if ch == ";" and depth == 0:
            _emit(statements, current)
            current = []
        else:
            current.append(ch)
        i += 1

    # final statement without trailing semicolon
    _emit(statements, current)
    return statements


__all__ = ["split_statements"]
