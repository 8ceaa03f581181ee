# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Provider contract and the engine-independent provider machinery.

A Provider implements the wire protocol of one database kind for one
DataSource. The caller-facing contract is the ``Provider`` protocol;
``ProviderBase`` implements it on top of a small set of driver primitives
that concrete providers fill in:

    _acquire_pooled(timeout)   get a physical connection from the pool
    _release_pooled(raw)       give it back
    _discard_pooled(raw)       close it and drop it from the pool
    _close_pool()              tear the pool down
    _open_single()             open a dedicated physical connection
    _close_single(raw)         close it
    _query / _execute / _execute_multi
    _begin / _commit / _rollback

Connection model:
    - start(): pooled (lazy pool, bounded wait) or dedicated connection,
      wrapped in a Connection and tracked in the open-set
    - end(conn): release/close, remove from the open-set, dispose
    - disconnect_all(): end every open Connection, then close the pool;
      the next start() recreates it

Driver exceptions are wrapped: ConnectionError/TimeoutError on start,
QueryError on query/execute, TransactionError on begin/commit/rollback.
Nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from .. import errors
from ..config import resolve_env_key
from ..connection import Connection
from ..formatting import PLACEHOLDER, convert_placeholders
from ..splitter import split_statements
from ..types import ExecuteResult, Row

if TYPE_CHECKING:
    from ..datasource import DataSource

logger = logging.getLogger(__name__)


class Provider(Protocol):
    """Capability contract every database engine implements."""

    name: str
    placeholder: str

    @property
    def data_source(self) -> DataSource: ...

    @property
    def schema(self) -> str: ...

    @property
    def connection_count(self) -> int: ...

    @property
    def supports_multi_statements(self) -> bool: ...

    @property
    def supports_multi_in_transaction(self) -> bool: ...

    async def start(self) -> Connection: ...

    async def end(self, conn: Connection) -> None: ...

    async def disconnect_all(self) -> None: ...

    def apply_to_connections(self, callback: Callable[[Connection], Any]) -> None: ...

    async def query(self, conn: Connection, sql: str, params: Sequence[Any] | None = None) -> list[Row]: ...

    async def execute(self, conn: Connection, sql: str, params: Sequence[Any] | None = None) -> ExecuteResult: ...

    async def batch_execute(self, conn: Connection, sql: str) -> list[ExecuteResult | errors.DalError]: ...

    async def begin(self, conn: Connection) -> None: ...

    async def commit(self, conn: Connection) -> None: ...

    async def rollback(self, conn: Connection) -> None: ...

    def log(self, message: str, *args: Any) -> None: ...


class ProviderBase(ABC):
    """Shared bookkeeping for providers: open-set, pooling flow, error wrapping.

    Subclasses set ``name`` and ``placeholder`` and implement the driver
    primitives. ``options`` are the provider section of the data source
    configuration; ``envKey`` is expanded and a non-empty ``schema``
    becomes the database.
    """

    name: str = "base"
    placeholder: str = PLACEHOLDER

    def __init__(self, data_source: DataSource, options: dict[str, Any] | None, schema: str = ""):
        self._data_source = data_source
        self._options = self._format_options(options, schema)
        self._open: set[Connection] = set()

    def _format_options(self, options: dict[str, Any] | None, schema: str) -> dict[str, Any]:
        if options is None:
            raise errors.ConfigurationError(
                f"missing '{self.name}' configuration", operation=f"{self.name}.configure"
            )
        resolved = resolve_env_key(options, provider=self.name)
        if schema:
            resolved["database"] = schema
        return resolved

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def data_source(self) -> DataSource:
        return self._data_source

    @property
    def options(self) -> dict[str, Any]:
        return self._options

    @property
    def schema(self) -> str:
        return str(self._options.get("database") or "")

    @property
    def connection_count(self) -> int:
        return len(self._open)

    @property
    def supports_multi_statements(self) -> bool:
        """True when the driver can run a multi-statement blob in one call."""
        return False

    @property
    def supports_multi_in_transaction(self) -> bool:
        """False when the multi-statement call would end an open transaction."""
        return True

    def log(self, message: str, *args: Any) -> None:
        """Lifecycle logging: INFO when the data source shows console logs, else DEBUG."""
        level = logging.INFO if self._data_source.show_console_logs else logging.DEBUG
        logger.log(level, "%s[%s] " + message, self.name, self._data_source.id, *args)

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def start(self) -> Connection:
        """Open a Connection (pooled or dedicated) and track it."""
        ds = self._data_source
        operation = f"{self.name}.start"
        try:
            if ds.use_pool:
                raw = await self._acquire_pooled(ds.pool_timeout / 1000)
            else:
                raw = await self._open_single()
        except errors.DalError:
            raise
        except asyncio.TimeoutError as e:
            if not ds.use_pool:
                raise errors.ConnectionError(f"timed out connecting - {e}", operation=operation) from e
            raise errors.TimeoutError(
                f"no connection available from pool within {ds.pool_timeout} ms",
                operation=operation,
            ) from e
        except Exception as e:
            raise errors.ConnectionError(f"error connecting - {e}", operation=operation) from e

        conn = Connection(self, raw, throw_errors=ds.throw_errors)
        self._open.add(conn)
        self.log(
            "opened %s connection %s (%d open)",
            "pooled" if ds.use_pool else "dedicated",
            conn.id,
            len(self._open),
        )
        return conn

    async def end(self, conn: Connection) -> None:
        """Release or close the physical connection. No-op for unknown connections."""
        if conn not in self._open:
            return
        self._open.discard(conn)
        try:
            reusable = True
            if conn.in_transaction:
                # pending work is discarded before the connection goes back
                try:
                    await self._rollback(conn.raw)
                except Exception as e:
                    reusable = False
                    logger.warning(
                        "%s: rollback on close failed for %s, discarding it: %s", self.name, conn.id, e
                    )
            if not self._data_source.use_pool:
                await self._close_single(conn.raw)
            elif reusable:
                await self._release_pooled(conn.raw)
            else:
                await self._discard_pooled(conn.raw)
        except Exception as e:
            raise errors.ConnectionError(
                f"error closing connection - {e}", operation=f"{self.name}.end"
            ) from e
        finally:
            conn._dispose()

    async def disconnect_all(self) -> None:
        """End every open Connection, then close the pool."""
        failures: list[BaseException] = []
        for conn in list(self._open):
            try:
                await self.end(conn)
            except Exception as e:
                failures.append(e)
        try:
            await self._close_pool()
        except Exception as e:
            failures.append(e)
        self.log("disconnected all connections")
        if failures:
            raise errors.ConnectionError(
                f"{len(failures)} failure(s) while disconnecting: "
                + "; ".join(str(f) for f in failures),
                operation=f"{self.name}.disconnect_all",
            ) from failures[0]

    def apply_to_connections(self, callback: Callable[[Connection], Any]) -> None:
        for conn in list(self._open):
            callback(conn)

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _ensure_open(self, conn: Connection, operation: str) -> None:
        if not conn.opened or conn not in self._open:
            raise errors.StateError("connection not open", operation=f"{self.name}.{operation}")

    def _bind(self, sql: str, params: Sequence[Any] | None) -> tuple[str, list[Any] | None]:
        if not params:
            return sql, None
        return convert_placeholders(sql, self.placeholder), list(params)

    async def query(self, conn: Connection, sql: str, params: Sequence[Any] | None = None) -> list[Row]:
        self._ensure_open(conn, "query")
        driver_sql, values = self._bind(sql, params)
        try:
            return await self._query(conn.raw, driver_sql, values)
        except Exception as e:
            raise self._query_error("query", sql, e) from e

    async def execute(self, conn: Connection, sql: str, params: Sequence[Any] | None = None) -> ExecuteResult:
        self._ensure_open(conn, "execute")
        driver_sql, values = self._bind(sql, params)
        try:
            return await self._execute(conn.raw, driver_sql, values)
        except Exception as e:
            raise self._query_error("execute", sql, e) from e

    async def batch_execute(self, conn: Connection, sql: str) -> list[ExecuteResult | errors.DalError]:
        """Run a multi-statement blob, one outcome per statement.

        The blob goes to the driver in one call only when the driver supports
        it and the data source does not force splitting; the outcome list then
        has a single entry. Inside a transaction the blob is split when the
        driver cannot run it without committing.
        """
        self._ensure_open(conn, "batch_execute")
        native = self.supports_multi_statements and not self._data_source.batch_execute_always_split
        if native and conn.in_transaction and not self.supports_multi_in_transaction:
            native = False
        if native:
            try:
                return [await self._execute_multi(conn.raw, sql)]
            except Exception as e:
                return [self._capture(self._query_error("batch_execute", sql, e), e)]

        results: list[ExecuteResult | errors.DalError] = []
        for statement in split_statements(sql):
            try:
                results.append(await self._execute(conn.raw, statement, None))
            except Exception as e:
                results.append(self._capture(self._query_error("batch_execute", statement, e), e))
        return results

    async def begin(self, conn: Connection) -> None:
        await self._transaction_step("begin", conn, self._begin)

    async def commit(self, conn: Connection) -> None:
        await self._transaction_step("commit", conn, self._commit)

    async def rollback(self, conn: Connection) -> None:
        await self._transaction_step("rollback", conn, self._rollback)

    async def _transaction_step(self, operation: str, conn: Connection, step: Callable[[Any], Any]) -> None:
        self._ensure_open(conn, operation)
        try:
            await step(conn.raw)
        except Exception as e:
            raise errors.TransactionError(
                f"error during {operation} - {e}", operation=f"{self.name}.{operation}"
            ) from e

    def _query_error(self, operation: str, sql: str, err: Exception) -> errors.QueryError:
        return errors.QueryError(f"error executing query - {err}", operation=f"{self.name}.{operation}", sql=sql)

    @staticmethod
    def _capture(error: errors.DalError, cause: BaseException) -> errors.DalError:
        error.__cause__ = cause
        return error

    # -------------------------------------------------------------------------
    # Driver primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    async def _acquire_pooled(self, timeout: float) -> Any:
        """Get a connection from the (lazily created) pool within ``timeout`` seconds."""
        ...

    @abstractmethod
    async def _release_pooled(self, raw: Any) -> None: ...

    @abstractmethod
    async def _discard_pooled(self, raw: Any) -> None:
        """Close a pooled connection in an unknown state so it is never handed out again."""
        ...

    @abstractmethod
    async def _close_pool(self) -> None:
        """Close the pool if one exists; start() must be able to recreate it."""
        ...

    @abstractmethod
    async def _open_single(self) -> Any: ...

    @abstractmethod
    async def _close_single(self, raw: Any) -> None: ...

    @abstractmethod
    async def _query(self, raw: Any, sql: str, params: list[Any] | None) -> list[Row]: ...

    @abstractmethod
    async def _execute(self, raw: Any, sql: str, params: list[Any] | None) -> ExecuteResult: ...

    async def _execute_multi(self, raw: Any, sql: str) -> ExecuteResult:
        """Run a multi-statement blob in one call (drivers that support it)."""
        raise NotImplementedError(f"{self.name} does not support multi-statement execution")

    @abstractmethod
    async def _begin(self, raw: Any) -> None: ...

    @abstractmethod
    async def _commit(self, raw: Any) -> None: ...

    @abstractmethod
    async def _rollback(self, raw: Any) -> None: ...


__all__ = ["Provider", "ProviderBase"]
