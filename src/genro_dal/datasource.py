# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""DataSource: a named configuration bound to one Provider.

A DataSource is created by the Registry (one per configured schema) and
hands out Connections. Its single-shot helpers open a fresh Connection,
run one operation and close it again; they are convenient for isolated
statements but not transaction-safe.

Identifiers:
    "main"          data source without schema
    "main.app"      data source "main" bound to schema "app"
    "!3f2a..."      generated id for a configuration without one

Usage:
    ds = DataSource(DataSourceConfig(id="main", options={...}, provider="sqlite"), schema="app")
    rows = await ds.query("SELECT * FROM users WHERE active = ?", [True])

    conn = await ds.begin()
    try:
        await conn.execute("UPDATE users SET active = ?", [False])
        await conn.commit()
    finally:
        await conn.close()
"""

from __future__ import annotations

import contextlib
import uuid
from collections.abc import Sequence
from typing import Any

from .config import DataSourceConfig
from .connection import Connection
from .errors import DalError, is_fault
from .providers import Provider, create_provider
from .types import ExecuteResult, Row


def format_data_source_id(base_id: str | None, schema: str = "") -> str:
    """Compose the registry id of a data source.

    An empty ``base_id`` yields a generated ``"!<uuid>"`` id; a schema is
    appended as ``"<id>.<schema>"``.
    """
    if not base_id:
        return "!" + uuid.uuid4().hex
    if schema:
        return f"{base_id}.{schema}"
    return str(base_id)


def format_lookup_key(identifier: str, schema: str | None = None) -> str:
    """Normalize a lookup identifier.

    Identifiers that start with "!" or already contain "." are used as-is;
    otherwise a schema, when given, is appended.
    """
    if identifier.startswith("!") or "." in identifier:
        return identifier
    if schema:
        return f"{identifier}.{schema}"
    return identifier


class DataSource:
    """Named data source with its bound Provider.

    Attributes are read-only after construction, except ``throw_errors``
    which is propagated to every open Connection when changed.
    """

    def __init__(self, config: DataSourceConfig, schema: str = ""):
        self._config = config
        self._id = format_data_source_id(config.id, schema)
        self._use_pool = bool(config.use_pool)
        self._pool_timeout = int(config.pool_timeout)
        self._show_console_logs = bool(config.show_console_logs)
        self._batch_execute_always_split = bool(config.batch_execute_always_split)
        self._throw_errors = bool(config.throw_errors)
        self._provider: Provider = create_provider(self, config.provider or "", config.options, schema)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._id

    @property
    def config(self) -> DataSourceConfig:
        return self._config

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def schema(self) -> str:
        """Database/schema the provider resolved (registration schema or its database option)."""
        return self._provider.schema

    @property
    def use_pool(self) -> bool:
        return self._use_pool

    @property
    def pool_timeout(self) -> int:
        """Maximum wait for a pooled connection, in milliseconds."""
        return self._pool_timeout

    @property
    def show_console_logs(self) -> bool:
        return self._show_console_logs

    @property
    def batch_execute_always_split(self) -> bool:
        return self._batch_execute_always_split

    @property
    def throw_errors(self) -> bool:
        return self._throw_errors

    @throw_errors.setter
    def throw_errors(self, value: bool) -> None:
        self._throw_errors = bool(value)

        def apply(conn: Connection) -> None:
            conn.throw_errors = self._throw_errors

        self._provider.apply_to_connections(apply)

    @property
    def connection_count(self) -> int:
        """Connections issued by this data source and not yet closed."""
        return self._provider.connection_count

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    async def connect(self) -> Connection:
        """Open a Connection. Always raises on failure (ConnectionError, TimeoutError)."""
        return await self._provider.start()

    async def begin(self) -> Connection | DalError:
        """Open a Connection and start a transaction on it.

        The caller must commit or roll back and then close the Connection.
        If begin fails the Connection is closed before the fault is raised
        (or returned, when the data source returns faults as values).
        """
        conn = await self.connect()
        try:
            result = await conn.begin()
        except DalError:
            with contextlib.suppress(DalError):
                await conn.close()
            raise
        if is_fault(result):
            await conn.close()
            return result
        return conn

    async def disconnect_all(self) -> None:
        """Close every open Connection and the pool. New ones are created on demand."""
        await self._provider.disconnect_all()

    # -------------------------------------------------------------------------
    # Single-shot helpers
    # -------------------------------------------------------------------------

    async def query(self, query: Any, params: Sequence[Any] | None = None) -> list[Row] | DalError:
        conn = await self.connect()
        try:
            return await conn.query(query, params)
        finally:
            await conn.close()

    async def query_rows(self, query: Any, params: Sequence[Any] | None = None) -> list[Row] | DalError:
        """Alias of query()."""
        return await self.query(query, params)

    async def query_row(self, query: Any, params: Sequence[Any] | None = None) -> Row | DalError | None:
        conn = await self.connect()
        try:
            return await conn.query_row(query, params)
        finally:
            await conn.close()

    async def query_scalar(self, query: Any, params: Sequence[Any] | None = None) -> Any:
        conn = await self.connect()
        try:
            return await conn.query_scalar(query, params)
        finally:
            await conn.close()

    async def execute(self, query: Any, params: Sequence[Any] | None = None) -> ExecuteResult | DalError:
        conn = await self.connect()
        try:
            return await conn.execute(query, params)
        finally:
            await conn.close()

    async def batch_execute(
        self, query: Any, params: Sequence[Any] | None = None
    ) -> list[ExecuteResult | DalError] | DalError:
        """Run a multi-statement blob on a fresh Connection; one outcome per statement."""
        conn = await self.connect()
        try:
            return await conn.batch_execute(query, params)
        finally:
            await conn.close()

    def __repr__(self) -> str:
        return f"DataSource({self._id!r}, provider={self._provider.name!r})"


__all__ = ["DataSource", "format_data_source_id", "format_lookup_key"]
