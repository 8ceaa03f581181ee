# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""PostgreSQL provider using psycopg3 with psycopg_pool.

The pool is initialized lazily on the first pooled start(). Connections
run in autocommit mode; begin/commit/rollback issue BEGIN, COMMIT and
ROLLBACK explicitly. ``?`` placeholders are rewritten to ``%s`` when
parameters are bound.

Options (``postgresql`` section):
    dsn / conninfo: full connection string, or host, port, user, password,
    database; connectionLimit (pool max size, default 10), connectTimeout
    (ms), envKey.
"""

from __future__ import annotations

import asyncio
from typing import Any

from .. import errors
from ..types import ExecuteResult, Row
from .base import ProviderBase


class PostgresProvider(ProviderBase):
    """PostgreSQL provider with connection pooling."""

    name = "postgresql"
    placeholder = "%s"

    def __init__(self, data_source: Any, options: dict[str, Any] | None, schema: str = ""):
        super().__init__(data_source, options, schema)
        self._pool: Any = None

        # Verify psycopg is available at init time
        try:
            import psycopg  # noqa: F401
        except ImportError as e:
            raise errors.ConfigurationError(
                "PostgreSQL support requires psycopg. "
                "Install with: pip install genro-dal[postgresql]",
                operation="postgresql.configure",
            ) from e

    @property
    def supports_multi_statements(self) -> bool:
        return True

    @property
    def schema(self) -> str:
        return str(self._options.get("database") or self._options.get("dbname") or "")

    @property
    def connect_timeout(self) -> float:
        return float(self._options.get("connectTimeout", 10000)) / 1000

    def conninfo(self) -> str:
        """Build the libpq connection string from the options."""
        from psycopg.conninfo import make_conninfo

        base = self._options.get("dsn") or self._options.get("conninfo") or ""
        params: dict[str, Any] = {}
        for key, target in (
            ("host", "host"),
            ("port", "port"),
            ("user", "user"),
            ("password", "password"),
            ("database", "dbname"),
            ("dbname", "dbname"),
        ):
            value = self._options.get(key)
            if value not in (None, ""):
                params[target] = value
        return make_conninfo(base, **params)

    # -------------------------------------------------------------------------
    # Connection primitives
    # -------------------------------------------------------------------------

    async def _ensure_pool(self) -> None:
        """Initialize connection pool if not already open."""
        if self._pool is not None:
            return

        from psycopg_pool import AsyncConnectionPool

        pool = AsyncConnectionPool(
            self.conninfo(),
            min_size=1,
            max_size=int(self._options.get("connectionLimit", 10)),
            open=False,
            kwargs={"autocommit": True},
        )
        try:
            await asyncio.wait_for(
                pool.open(wait=True, timeout=self.connect_timeout),
                timeout=self.connect_timeout + 1,
            )
        except asyncio.TimeoutError:
            await pool.close()
            raise errors.ConnectionError(
                f"PostgreSQL connection timed out after {self.connect_timeout}s. "
                "Check credentials and server availability.",
                operation="postgresql.start",
            ) from None
        except Exception:
            await pool.close()
            raise
        self._pool = pool
        self.log("created pool (max %d)", pool.max_size)

    async def _acquire_pooled(self, timeout: float) -> Any:
        from psycopg_pool import PoolTimeout

        await self._ensure_pool()
        try:
            return await self._pool.getconn(timeout=timeout)
        except PoolTimeout as e:
            raise errors.TimeoutError(
                f"no connection available from pool within {timeout * 1000:.0f} ms",
                operation="postgresql.start",
            ) from e

    async def _release_pooled(self, raw: Any) -> None:
        if self._pool is not None:
            await self._pool.putconn(raw)
        else:
            await raw.close()

    async def _discard_pooled(self, raw: Any) -> None:
        # psycopg_pool replaces a closed connection instead of reusing it
        await raw.close()
        if self._pool is not None:
            await self._pool.putconn(raw)

    async def _close_pool(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()

    async def _open_single(self) -> Any:
        import psycopg

        return await psycopg.AsyncConnection.connect(
            self.conninfo(), autocommit=True, connect_timeout=int(self.connect_timeout)
        )

    async def _close_single(self, raw: Any) -> None:
        await raw.close()

    # -------------------------------------------------------------------------
    # Statement primitives
    # -------------------------------------------------------------------------

    async def _query(self, raw: Any, sql: str, params: list[Any] | None) -> list[Row]:
        from psycopg.rows import dict_row

        async with raw.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql, params)
            if cur.description is None:
                return []
            return await cur.fetchall()

    async def _execute(self, raw: Any, sql: str, params: list[Any] | None) -> ExecuteResult:
        async with raw.cursor() as cur:
            await cur.execute(sql, params)
            insert_id = 0
            # INSERT ... RETURNING id reports the generated key
            if cur.description is not None:
                row = await cur.fetchone()
                if row and isinstance(row[0], int):
                    insert_id = row[0]
            return ExecuteResult(affected_rows=max(cur.rowcount, 0), insert_id=insert_id)

    async def _execute_multi(self, raw: Any, sql: str) -> ExecuteResult:
        return await self._execute(raw, sql, None)

    async def _begin(self, raw: Any) -> None:
        await raw.execute("BEGIN")

    async def _commit(self, raw: Any) -> None:
        await raw.execute("COMMIT")

    async def _rollback(self, raw: Any) -> None:
        await raw.execute("ROLLBACK")
