# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQLite provider using aiosqlite.

Connections are opened in autocommit mode (``isolation_level=None``) so
transactions are explicit: begin/commit/rollback issue BEGIN, COMMIT and
ROLLBACK. ``?`` placeholders are native.

Options (``sqlite`` section):
    database: Path of the database file (or ":memory:"). A schema given
        at registration replaces it.
    connectionLimit: Pool size when the data source pools (default 10).
    multipleStatements: Allow batch_execute to send the whole blob through
        executescript() when splitting is not forced (default False).
    timeout: sqlite busy timeout in seconds.
"""

from __future__ import annotations

from typing import Any

import aiosqlite

from ..pool import ConnectionPool
from ..types import ExecuteResult, Row
from .base import ProviderBase


class SqliteProvider(ProviderBase):
    """SQLite provider; pooling uses genro_dal.pool.ConnectionPool."""

    name = "sqlite"
    placeholder = "?"

    def __init__(self, data_source: Any, options: dict[str, Any] | None, schema: str = ""):
        super().__init__(data_source, options, schema)
        self._pool: ConnectionPool | None = None

    @property
    def supports_multi_statements(self) -> bool:
        return bool(self._options.get("multipleStatements", False))

    @property
    def supports_multi_in_transaction(self) -> bool:
        # executescript() commits any pending transaction first
        return False

    @property
    def pool(self) -> ConnectionPool | None:
        return self._pool

    async def _connect(self) -> aiosqlite.Connection:
        kwargs: dict[str, Any] = {"isolation_level": None}
        if "timeout" in self._options:
            kwargs["timeout"] = float(self._options["timeout"])
        return await aiosqlite.connect(self._options.get("database") or ":memory:", **kwargs)

    async def _disconnect(self, raw: aiosqlite.Connection) -> None:
        await raw.close()

    # -------------------------------------------------------------------------
    # Connection primitives
    # -------------------------------------------------------------------------

    async def _acquire_pooled(self, timeout: float) -> aiosqlite.Connection:
        if self._pool is None:
            self._pool = ConnectionPool(
                self._connect,
                self._disconnect,
                max_size=int(self._options.get("connectionLimit", 10)),
                name=f"sqlite[{self._data_source.id}]",
            )
            self.log("created pool (max %d)", self._pool.max_size)
        return await self._pool.acquire(timeout=timeout)

    async def _release_pooled(self, raw: aiosqlite.Connection) -> None:
        if self._pool is not None:
            await self._pool.release(raw)
        else:
            await raw.close()

    async def _discard_pooled(self, raw: aiosqlite.Connection) -> None:
        if self._pool is not None:
            await self._pool.discard(raw)
        else:
            await raw.close()

    async def _close_pool(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()

    async def _open_single(self) -> aiosqlite.Connection:
        return await self._connect()

    async def _close_single(self, raw: aiosqlite.Connection) -> None:
        await raw.close()

    # -------------------------------------------------------------------------
    # Statement primitives
    # -------------------------------------------------------------------------

    async def _query(self, raw: aiosqlite.Connection, sql: str, params: list[Any] | None) -> list[Row]:
        async with raw.execute(sql, params or []) as cursor:
            rows = await cursor.fetchall()
            if cursor.description is None:
                return []
            cols = [c[0] for c in cursor.description]
            return [dict(zip(cols, row, strict=True)) for row in rows]

    async def _execute(self, raw: aiosqlite.Connection, sql: str, params: list[Any] | None) -> ExecuteResult:
        async with raw.execute(sql, params or []) as cursor:
            return ExecuteResult(
                affected_rows=max(cursor.rowcount, 0),
                insert_id=cursor.lastrowid or 0,
            )

    async def _execute_multi(self, raw: aiosqlite.Connection, sql: str) -> ExecuteResult:
        before = raw.total_changes
        await raw.executescript(sql)
        return ExecuteResult(affected_rows=raw.total_changes - before, insert_id=0)

    async def _begin(self, raw: aiosqlite.Connection) -> None:
        await raw.execute("BEGIN")

    async def _commit(self, raw: aiosqlite.Connection) -> None:
        await raw.execute("COMMIT")

    async def _rollback(self, raw: aiosqlite.Connection) -> None:
        await raw.execute("ROLLBACK")
