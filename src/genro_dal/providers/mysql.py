# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""MySQL/MariaDB provider using aiomysql.

Pooling uses aiomysql's native pool (created lazily on the first pooled
start(), ``minsize=0`` so no connection is opened up front). Non-pooled
data sources open one dedicated connection per start().

Connections run with ``autocommit=True``; begin() starts an explicit
transaction that commit()/rollback() end. Queries use ``?`` placeholders,
rewritten to the driver's ``%s`` when parameters are bound.

Options (``mysql`` section, mysql2-style names, snake_case also accepted):
    host, port, user, password, database, charset, socketPath,
    connectTimeout (ms), connectionLimit (pool max size, default 10),
    multipleStatements (enables native multi-statement batches), ssl,
    envKey (see genro_dal.config.resolve_env_key).
"""

from __future__ import annotations

import asyncio
import logging
import ssl as ssl_module
from typing import Any

import aiomysql
from pymysql.constants import CLIENT

from ..types import ExecuteResult, Row
from .base import ProviderBase

logger = logging.getLogger(__name__)

# Options consumed by the provider itself, not forwarded to the driver
_POOL_OPTIONS = frozenset({"connectionLimit", "connection_limit", "poolRecycle", "pool_recycle"})

_RENAMED = {
    "database": "db",
    "socketPath": "unix_socket",
    "socket_path": "unix_socket",
}

_PASSTHROUGH = frozenset(
    {"host", "port", "user", "password", "db", "charset", "unix_socket", "init_command", "sql_mode"}
)


class MysqlProvider(ProviderBase):
    """MySQL provider backed by aiomysql."""

    name = "mysql"
    placeholder = "%s"

    def __init__(self, data_source: Any, options: dict[str, Any] | None, schema: str = ""):
        super().__init__(data_source, options, schema)
        self._pool: aiomysql.Pool | None = None

    @property
    def supports_multi_statements(self) -> bool:
        return bool(self._options.get("multipleStatements") or self._options.get("multiple_statements"))

    def driver_options(self) -> dict[str, Any]:
        """Translate configuration options into aiomysql.connect() keyword arguments."""
        kwargs: dict[str, Any] = {"host": "localhost", "port": 3306, "autocommit": True}
        for key, value in self._options.items():
            if key in _POOL_OPTIONS or value is None:
                continue
            target = _RENAMED.get(key, key)
            if target in _PASSTHROUGH:
                kwargs[target] = value
            elif key in ("connectTimeout", "connect_timeout"):
                kwargs["connect_timeout"] = float(value) / 1000 if key == "connectTimeout" else float(value)
            elif key == "ssl" and value:
                kwargs["ssl"] = value if isinstance(value, ssl_module.SSLContext) else ssl_module.create_default_context()
            elif key not in ("multipleStatements", "multiple_statements"):
                logger.debug("mysql: ignoring unsupported option %r", key)
        kwargs["port"] = int(kwargs["port"])
        if kwargs.get("password") is None:
            kwargs["password"] = ""
        if self.supports_multi_statements:
            kwargs["client_flag"] = CLIENT.MULTI_STATEMENTS
        return kwargs

    # -------------------------------------------------------------------------
    # Connection primitives
    # -------------------------------------------------------------------------

    async def _acquire_pooled(self, timeout: float) -> aiomysql.Connection:
        if self._pool is None:
            max_size = int(self._options.get("connectionLimit") or self._options.get("connection_limit") or 10)
            self._pool = await aiomysql.create_pool(
                minsize=0,
                maxsize=max_size,
                pool_recycle=int(self._options.get("poolRecycle") or self._options.get("pool_recycle") or -1),
                **self.driver_options(),
            )
            self.log("created pool (max %d)", max_size)

        async def acquire() -> aiomysql.Connection:
            return await self._pool.acquire()

        return await asyncio.wait_for(acquire(), timeout=timeout)

    async def _release_pooled(self, raw: aiomysql.Connection) -> None:
        if self._pool is not None:
            await self._pool.release(raw)
        else:
            raw.close()

    async def _discard_pooled(self, raw: aiomysql.Connection) -> None:
        # aiomysql drops closed connections on release
        raw.close()
        if self._pool is not None:
            await self._pool.release(raw)

    async def _close_pool(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.close()
            await pool.wait_closed()

    async def _open_single(self) -> aiomysql.Connection:
        return await aiomysql.connect(**self.driver_options())

    async def _close_single(self, raw: aiomysql.Connection) -> None:
        await raw.ensure_closed()

    # -------------------------------------------------------------------------
    # Statement primitives
    # -------------------------------------------------------------------------

    async def _query(self, raw: aiomysql.Connection, sql: str, params: list[Any] | None) -> list[Row]:
        async with raw.cursor(aiomysql.DictCursor) as cur:
            await cur.execute(sql, params)
            rows = await cur.fetchall()
        return list(rows or [])

    async def _execute(self, raw: aiomysql.Connection, sql: str, params: list[Any] | None) -> ExecuteResult:
        async with raw.cursor() as cur:
            await cur.execute(sql, params)
            return ExecuteResult(
                affected_rows=max(cur.rowcount or 0, 0),
                insert_id=cur.lastrowid or 0,
            )

    async def _execute_multi(self, raw: aiomysql.Connection, sql: str) -> ExecuteResult:
        async with raw.cursor() as cur:
            await cur.execute(sql)
            affected = max(cur.rowcount or 0, 0)
            insert_id = cur.lastrowid or 0
            while await cur.nextset():
                affected += max(cur.rowcount or 0, 0)
                insert_id = cur.lastrowid or insert_id
        return ExecuteResult(affected_rows=affected, insert_id=insert_id)

    async def _begin(self, raw: aiomysql.Connection) -> None:
        await raw.begin()

    async def _commit(self, raw: aiomysql.Connection) -> None:
        await raw.commit()

    async def _rollback(self, raw: aiomysql.Connection) -> None:
        await raw.rollback()
