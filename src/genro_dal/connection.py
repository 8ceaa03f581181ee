# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Caller-facing connection: queries, transactions and a result cursor.

A Connection wraps exactly one physical driver connection issued by a
Provider. It is created by ``DataSource.connect()`` (or ``Provider.start()``)
and must be closed to give the physical connection back.

State machine:
    Open/NoTransaction --begin()--> Open/InTransaction
    Open/InTransaction --commit()/rollback()--> Open/NoTransaction
    any Open state --close()--> Closed   (idempotent)

Every operation invoked in the wrong state fails with StateError.

Error reporting:
    With ``throw_errors=True`` (default, inherited from the DataSource) a
    failing operation raises a DalError. With ``throw_errors=False`` the
    DalError is returned as the result and stored in ``last_error``;
    nothing else changes. The mode is checked when the fault is
    dispatched, and can be switched for a block with errors_as_values().

Usage:
    conn = await ds.connect()
    try:
        async with conn.transaction():
            res = await conn.execute("INSERT INTO t (title) VALUES (?)", [title])
            await conn.execute("INSERT INTO child (parent_id) VALUES (?)", [res.insert_id])
    finally:
        await conn.close()

    async with await ds.connect() as conn:
        await conn.query("SELECT * FROM t")
        while conn.has_rows():
            row = conn.next()
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator, Iterator, Sequence
from contextlib import asynccontextmanager, contextmanager
from typing import TYPE_CHECKING, Any

from .errors import DalError, QueryError, StateError, is_fault
from .formatting import format_inline, is_template, resolve_query, template_parts
from .types import ExecuteResult, Row

if TYPE_CHECKING:
    from .providers.base import Provider

logger = logging.getLogger(__name__)


def _chain(error: DalError, cause: BaseException) -> DalError:
    error.__cause__ = cause
    error.__suppress_context__ = True
    return error


class Connection:
    """Handle to one physical connection with its own transaction and result state.

    Attributes:
        id: Unique identifier of this connection (uuid4 hex).
        opened_at: time.monotonic() value when the connection was opened.
    """

    def __init__(self, provider: Provider, raw: Any, throw_errors: bool = True):
        self._provider = provider
        self._raw = raw
        self.id = uuid.uuid4().hex
        self.opened_at = time.monotonic()
        self._closed_at: float | None = None
        self._opened = True
        self._in_transaction = False
        self._throw_errors = throw_errors
        self._result: list[Row] = []
        self._cursor = 0
        self._affected_rows = 0
        self._insert_id = 0
        self._last_error: DalError | None = None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def raw(self) -> Any:
        """Underlying driver connection (e.g. the aiomysql Connection)."""
        return self._raw

    @property
    def opened(self) -> bool:
        return self._opened

    def is_open(self) -> bool:
        return self._opened

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @property
    def throw_errors(self) -> bool:
        return self._throw_errors

    @throw_errors.setter
    def throw_errors(self, value: bool) -> None:
        self._throw_errors = bool(value)

    @property
    def last_error(self) -> DalError | None:
        """Most recent fault dispatched by this connection (sticky)."""
        return self._last_error

    @property
    def affected_rows(self) -> int:
        return self._affected_rows

    @property
    def insert_id(self) -> int:
        return self._insert_id

    @property
    def rows(self) -> list[Row]:
        """Rows of the most recent query."""
        return self._result

    @property
    def row_count(self) -> int:
        return len(self._result)

    @property
    def result_cursor(self) -> int:
        return self._cursor

    @property
    def elapsed(self) -> float:
        """Seconds the connection has been (or was) open."""
        end = self._closed_at if self._closed_at is not None else time.monotonic()
        return end - self.opened_at

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> DalError | None:
        """Give the physical connection back to the provider. Idempotent."""
        if not self._opened:
            return None
        try:
            await self._provider.end(self)
        except DalError as e:
            return self._fail(e)
        return None

    async def disconnect(self) -> DalError | None:
        """Alias of close()."""
        return await self.close()

    async def end(self) -> DalError | None:
        """Alias of close()."""
        return await self.close()

    async def release(self) -> DalError | None:
        """Alias of close()."""
        return await self.close()

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc is None:
            await self.close()
            return
        # the block's own exception is the one that propagates
        try:
            await self.close()
        except DalError as e:
            logger.warning("Connection %s: close failed while handling %s: %s", self.id, exc_type.__name__, e)

    def _dispose(self) -> None:
        """Mark closed. Called by the provider once the physical connection is gone."""
        if self._opened:
            self._closed_at = time.monotonic()
            self._provider.log("Connection %s closed after %.3f seconds", self.id, self.elapsed)
        self._opened = False
        self._in_transaction = False

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def query(self, query: Any, params: Sequence[Any] | None = None) -> list[Row] | DalError:
        """Run a query and buffer its rows for the cursor.

        Args:
            query: SQL with ``?`` placeholders, or a SqlTemplate.
            params: Positional values for the placeholders.

        Returns:
            List of rows (dicts), or the fault in return-value mode.
        """
        operation = "Connection.query"
        if not self._opened:
            return self._fail(StateError("connection not open", operation=operation))
        try:
            sql, values = resolve_query(query, params)
        except TypeError as e:
            return self._fail(_chain(QueryError(str(e), operation=operation), e))
        try:
            rows = await self._provider.query(self, sql, values)
        except DalError as e:
            return self._fail(e)
        self._result = list(rows)
        self._cursor = 0
        return self._result

    async def query_rows(self, query: Any, params: Sequence[Any] | None = None) -> list[Row] | DalError:
        """Alias of query()."""
        return await self.query(query, params)

    async def query_row(self, query: Any, params: Sequence[Any] | None = None) -> Row | DalError | None:
        """Run a query and return its first row, or None when empty."""
        result = await self.query(query, params)
        if is_fault(result):
            return result
        return result[0] if result else None

    async def query_scalar(self, query: Any, params: Sequence[Any] | None = None) -> Any:
        """Run a query and return the first field of the first row, or None."""
        row = await self.query_row(query, params)
        if row is None or is_fault(row):
            return row
        return next(iter(row.values()), None)

    async def execute(self, query: Any, params: Sequence[Any] | None = None) -> ExecuteResult | DalError:
        """Run a statement and return affected rows and last insert id."""
        operation = "Connection.execute"
        if not self._opened:
            return self._fail(StateError("connection not open", operation=operation))
        try:
            sql, values = resolve_query(query, params)
        except TypeError as e:
            return self._fail(_chain(QueryError(str(e), operation=operation), e))
        try:
            result = await self._provider.execute(self, sql, values)
        except DalError as e:
            return self._fail(e)
        self._affected_rows = result.affected_rows
        self._insert_id = result.insert_id
        self._reset_result()
        return result

    async def batch_execute(self, query: Any, params: Sequence[Any] | None = None) -> list[ExecuteResult | DalError] | DalError:
        """Run several statements; one outcome per statement.

        Parameters cannot be bound across statements, so neither params nor
        template values are accepted. A failing statement does not stop the
        following ones: inspect each entry with is_fault().
        """
        operation = "Connection.batch_execute"
        if not self._opened:
            return self._fail(StateError("connection not open", operation=operation))
        if is_template(query):
            fragments, values = template_parts(query)
            if values or params:
                return self._fail(
                    QueryError("parameters are not supported for batch execution", operation=operation)
                )
            sql = format_inline(fragments)
        elif isinstance(query, str):
            if params:
                return self._fail(
                    QueryError("parameters are not supported for batch execution", operation=operation)
                )
            sql = query
        else:
            return self._fail(QueryError(f"unsupported query type: {type(query).__name__}", operation=operation))
        try:
            results = await self._provider.batch_execute(self, sql)
        except DalError as e:
            return self._fail(e)
        self._affected_rows = 0
        self._insert_id = 0
        self._reset_result()
        return results

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def begin(self) -> DalError | None:
        """Start a transaction. Only one transaction per connection."""
        operation = "Connection.begin"
        if not self._opened:
            return self._fail(StateError("connection not open", operation=operation))
        if self._in_transaction:
            return self._fail(StateError("already in a transaction", operation=operation))
        try:
            await self._provider.begin(self)
        except DalError as e:
            return self._fail(e)
        self._in_transaction = True
        return None

    async def begin_transaction(self) -> DalError | None:
        """Alias of begin()."""
        return await self.begin()

    async def commit(self) -> DalError | None:
        """Commit the current transaction."""
        operation = "Connection.commit"
        if not self._opened:
            return self._fail(StateError("connection not open", operation=operation))
        if not self._in_transaction:
            return self._fail(StateError("not in a transaction", operation=operation))
        try:
            await self._provider.commit(self)
        except DalError as e:
            return self._fail(e)
        self._in_transaction = False
        return None

    async def rollback(self) -> DalError | None:
        """Roll back the current transaction."""
        operation = "Connection.rollback"
        if not self._opened:
            return self._fail(StateError("connection not open", operation=operation))
        if not self._in_transaction:
            return self._fail(StateError("not in a transaction", operation=operation))
        try:
            await self._provider.rollback(self)
        except DalError as e:
            return self._fail(e)
        self._in_transaction = False
        return None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Connection]:
        """Begin; COMMIT on success, ROLLBACK on exception.

        Faults are always raised here, whatever the error-reporting mode.
        """
        result = await self.begin()
        if is_fault(result):
            raise result
        try:
            yield self
        except BaseException:
            if self._in_transaction:
                result = await self.rollback()
                if is_fault(result):
                    logger.error("rollback after failure did not succeed: %s", result)
            raise
        result = await self.commit()
        if is_fault(result):
            raise result

    @contextmanager
    def errors_as_values(self) -> Iterator[Connection]:
        """Return faults as values for the calls made inside the block."""
        previous = self._throw_errors
        self._throw_errors = False
        try:
            yield self
        finally:
            self._throw_errors = previous

    # -------------------------------------------------------------------------
    # Result cursor
    # -------------------------------------------------------------------------

    def has_rows(self) -> bool:
        """True while the cursor has not reached the end of the result."""
        return self._cursor < len(self._result)

    def has_next(self) -> bool:
        """Alias of has_rows()."""
        return self.has_rows()

    @property
    def row(self) -> Row | None:
        """Row under the cursor, without advancing."""
        if self._cursor < len(self._result):
            return self._result[self._cursor]
        return None

    def next(self) -> Row | None:
        """Return the row under the cursor and advance; None when exhausted."""
        if self._cursor < len(self._result):
            row = self._result[self._cursor]
            self._cursor += 1
            return row
        return None

    def reset_cursor(self) -> None:
        self._cursor = 0

    def __iter__(self) -> Iterator[Row]:
        return iter(list(self._result))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _fail(self, error: DalError) -> DalError:
        """Record the fault, then raise it or hand it back per throw_errors."""
        self._last_error = error
        if self._throw_errors:
            raise error
        logger.error("%s", error)
        return error

    def _reset_result(self) -> None:
        self._result = []
        self._cursor = 0

    def __repr__(self) -> str:
        state = "opened for" if self._opened else "closed after"
        return f"Connection({self.id}) {state} {self.elapsed:.3f} seconds"


__all__ = ["Connection"]
