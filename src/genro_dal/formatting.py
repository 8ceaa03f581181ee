# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Query formatting: interpolation-style call sites to positional SQL.

Two call forms reach the providers:

- plain string with ``?`` placeholders plus a list of positional params::

      await conn.query("SELECT * FROM t WHERE a=? AND b=?", [1, 2])

- structured fragments plus values, i.e. the literal parts of the query
  with the dynamic values interleaved::

      await conn.query(sql_template("SELECT * FROM t WHERE a=", 1, " AND b=", 2))

Both are normalized by resolve_query() into ``(sql, params)`` where every
value is bound out-of-band by the driver. Objects exposing ``strings`` and
``values`` (PEP 750 template strings) are accepted as structured form.

format_inline() concatenates values into the text WITHOUT escaping. It is
only used by batch execution, which cannot bind positional parameters
across statements; never feed it untrusted input.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

PLACEHOLDER = "?"


@dataclass(frozen=True)
class SqlTemplate:
    """Literal SQL fragments with interleaved values.

    ``fragments`` always holds exactly one more item than ``values``:
    fragment[i] precedes value[i] and the last fragment closes the query.
    """

    fragments: tuple[str, ...]
    values: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "fragments", tuple(self.fragments))
        object.__setattr__(self, "values", tuple(self.values))
        if len(self.fragments) != len(self.values) + 1:
            raise ValueError(
                f"SqlTemplate needs len(fragments) == len(values) + 1, "
                f"got {len(self.fragments)} fragments and {len(self.values)} values"
            )


def sql_template(*parts: Any) -> SqlTemplate:
    """Build a SqlTemplate from alternating literal strings and values.

    Strings at even positions are literal SQL, odd positions are values::

        sql_template("SELECT * FROM t WHERE a=", 1, " AND b=", 2)

    A trailing value gets an empty closing fragment.
    """
    fragments = [str(p) for p in parts[0::2]]
    values = list(parts[1::2])
    if len(fragments) == len(values):
        fragments.append("")
    return SqlTemplate(tuple(fragments), tuple(values))


def format_query(fragments: Sequence[str], values: Sequence[Any]) -> tuple[str, list[Any]]:
    """Join fragments inserting one placeholder per value.

    Returns:
        (sql, params) with ``sql.count("?")`` contributed by values equal
        to ``len(params)``.
    """
    sql = ""
    params: list[Any] = []
    for i, fragment in enumerate(fragments):
        sql += fragment
        if i < len(values):
            sql += PLACEHOLDER
            params.append(values[i])
    return sql, params


def format_inline(fragments: Sequence[str], values: Sequence[Any] = ()) -> str:
    """Join fragments with values inlined as text. Performs NO escaping."""
    sql = ""
    for i, fragment in enumerate(fragments):
        sql += fragment
        if i < len(values):
            sql += str(values[i])
    return sql


def is_template(query: Any) -> bool:
    """True for SqlTemplate or any object exposing ``strings`` and ``values``."""
    if isinstance(query, SqlTemplate):
        return True
    return hasattr(query, "strings") and hasattr(query, "values") and not isinstance(query, str)


def template_parts(query: Any) -> tuple[Sequence[str], Sequence[Any]]:
    """Return (fragments, values) of a structured query."""
    if isinstance(query, SqlTemplate):
        return query.fragments, query.values
    return tuple(query.strings), tuple(query.values)


def resolve_query(query: str | SqlTemplate | Any, params: Sequence[Any] | None = None) -> tuple[str, list[Any]]:
    """Normalize either call form into ``(sql, params)``.

    Raises:
        TypeError: If query is neither a string nor a template, or if
            explicit params are combined with a template.
    """
    if isinstance(query, str):
        return query, list(params or [])
    if is_template(query):
        if params:
            raise TypeError("params cannot be combined with a template query")
        fragments, values = template_parts(query)
        return format_query(fragments, values)
    raise TypeError(f"Unsupported query type: {type(query).__name__}")


def convert_placeholders(sql: str, token: str) -> str:
    """Rewrite ``?`` placeholders outside quoted literals and ``--`` comments.

    When the token is pyformat (``%s``) every literal ``%`` is doubled,
    since the driver applies ``%`` formatting to the whole statement.
    """
    if token == PLACEHOLDER:
        return sql
    percent_style = "%" in token
    out: list[str] = []
    quote: str | None = None
    escaped = False
    in_comment = False
    for i, ch in enumerate(sql):
        if percent_style and ch == "%":
            out.append("%%")
            escaped = False
            continue
        if in_comment:
            in_comment = ch != "\n"
            out.append(ch)
            continue
        if escaped:
            out.append(ch)
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            out.append(ch)
            continue
        if quote:
            if ch == quote:
                quote = None
            out.append(ch)
            continue
        if ch in ("'", '"', "`"):
            quote = ch
            out.append(ch)
            continue
        if ch == "-" and sql.startswith("--", i):
            in_comment = True
            out.append(ch)
            continue
        out.append(token if ch == PLACEHOLDER else ch)
    return "".join(out)


__all__ = [
    "PLACEHOLDER",
    "SqlTemplate",
    "convert_placeholders",
    "format_inline",
    "format_query",
    "is_template",
    "resolve_query",
    "sql_template",
    "template_parts",
]
