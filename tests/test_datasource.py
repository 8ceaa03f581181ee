# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for datasource module - ids, settings and single-shot helpers."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from genro_dal.config import DataSourceConfig
from genro_dal.datasource import DataSource, format_data_source_id, format_lookup_key
from genro_dal.errors import ConfigurationError, QueryError, TimeoutError, TransactionError, is_fault
from genro_dal.formatting import sql_template
from genro_dal.providers import SqliteProvider


class TestIds:
    """Tests for id composition and lookup normalization."""

    def test_id_without_schema(self):
        """The base id is used as-is."""
        assert format_data_source_id("main") == "main"

    def test_id_with_schema(self):
        """A schema is appended with a dot."""
        assert format_data_source_id("main", "app") == "main.app"

    def test_generated_id(self):
        """An empty id generates a unique '!' prefixed one."""
        first = format_data_source_id(None)
        second = format_data_source_id("", "app")
        assert first.startswith("!")
        assert second.startswith("!")
        assert first != second

    def test_lookup_key(self):
        """Generated and qualified ids are verbatim; plain ids get the schema."""
        assert format_lookup_key("main", "app") == "main.app"
        assert format_lookup_key("main") == "main"
        assert format_lookup_key("main.app", "other") == "main.app"
        assert format_lookup_key("!abc", "app") == "!abc"


class TestDataSourceInit:
    """Tests for DataSource construction and properties."""

    def test_settings_from_config(self, tmp_path):
        """Flags are copied from the configuration."""
        config = DataSourceConfig(
            id="main",
            use_pool=False,
            pool_timeout=1500,
            show_console_logs=True,
            batch_execute_always_split=False,
            throw_errors=False,
            provider="sqlite",
            options={"database": str(tmp_path / "x.db")},
        )
        ds = DataSource(config)
        assert ds.id == "main"
        assert ds.use_pool is False
        assert ds.pool_timeout == 1500
        assert ds.show_console_logs is True
        assert ds.batch_execute_always_split is False
        assert ds.throw_errors is False
        assert isinstance(ds.provider, SqliteProvider)
        assert ds.schema == str(tmp_path / "x.db")
        assert ds.config is config

    def test_schema_becomes_database(self):
        """The registration schema is appended to the id and used as database."""
        ds = DataSource(DataSourceConfig(id="main", provider="sqlite", options={"database": "x.db"}), "app")
        assert ds.id == "main.app"
        assert ds.schema == "app"

    def test_unknown_provider_raises(self):
        """An unsupported provider key is a configuration error."""
        with pytest.raises(ConfigurationError, match="unsupported database provider"):
            DataSource(DataSourceConfig(id="main", provider="oracle", options={}))

    def test_env_key_resolved(self, monkeypatch):
        """envKey fills the provider options from the environment."""
        monkeypatch.setenv("TEST_DAL_MYSQL", "mysql://u:p@db:3307/app")
        ds = DataSource(DataSourceConfig(id="main", provider="mysql", options={"envKey": "TEST_DAL_MYSQL"}))
        assert ds.schema == "app"
        assert ds.provider.options["host"] == "db"
        assert ds.provider.options["port"] == 3307


class TestSingleShot:
    """Tests for the single-shot helpers."""

    async def test_helpers_close_their_connection(self, sqlite_ds: DataSource):
        """Every helper leaves no open connection behind."""
        result = await sqlite_ds.execute("INSERT INTO items (title) VALUES (?)", ["a"])
        assert result.insert_id == 1
        assert await sqlite_ds.query("SELECT title FROM items") == [{"title": "a"}]
        assert await sqlite_ds.query_rows(sql_template("SELECT id FROM items WHERE title = ", "a")) == [{"id": 1}]
        assert await sqlite_ds.query_row("SELECT id FROM items") == {"id": 1}
        assert await sqlite_ds.query_scalar("SELECT COUNT(*) FROM items") == 1
        outcomes = await sqlite_ds.batch_execute("DELETE FROM items; INSERT INTO items (title) VALUES ('b')")
        assert len(outcomes) == 2
        assert sqlite_ds.connection_count == 0

    async def test_helper_closes_on_error(self, sqlite_ds: DataSource):
        """A failing helper still closes its connection."""
        with pytest.raises(QueryError):
            await sqlite_ds.query("SELECT * FROM missing")
        assert sqlite_ds.connection_count == 0

    async def test_non_pooled(self, sqlite_single_ds: DataSource):
        """Non-pooled data sources open and close dedicated connections."""
        await sqlite_single_ds.execute("INSERT INTO items (title) VALUES ('a')")
        assert await sqlite_single_ds.query_scalar("SELECT COUNT(*) FROM items") == 1
        assert sqlite_single_ds.connection_count == 0


class TestBegin:
    """Tests for DataSource.begin."""

    async def test_begin_returns_connection_in_transaction(self, sqlite_ds: DataSource):
        """begin() hands out a connection with a running transaction."""
        conn = await sqlite_ds.begin()
        try:
            assert conn.in_transaction
            await conn.execute("INSERT INTO items (title) VALUES ('a')")
            await conn.commit()
        finally:
            await conn.close()
        assert await sqlite_ds.query_scalar("SELECT COUNT(*) FROM items") == 1

    async def test_begin_failure_closes_connection(self, sqlite_ds: DataSource, monkeypatch):
        """If begin fails the connection is closed before raising."""
        monkeypatch.setattr(sqlite_ds.provider, "_begin", AsyncMock(side_effect=RuntimeError("locked")))
        with pytest.raises(TransactionError, match="locked"):
            await sqlite_ds.begin()
        assert sqlite_ds.connection_count == 0

    async def test_begin_failure_returned(self, sqlite_ds: DataSource, monkeypatch):
        """In return-value mode the fault is returned after closing."""
        sqlite_ds.throw_errors = False
        monkeypatch.setattr(sqlite_ds.provider, "_begin", AsyncMock(side_effect=RuntimeError("locked")))
        result = await sqlite_ds.begin()
        assert is_fault(result)
        assert isinstance(result, TransactionError)
        assert sqlite_ds.connection_count == 0


class TestThrowErrors:
    """Tests for the throw_errors cascade."""

    async def test_setter_cascades_to_open_connections(self, sqlite_ds: DataSource):
        """Changing throw_errors updates open connections and new ones inherit it."""
        conn = await sqlite_ds.connect()
        try:
            sqlite_ds.throw_errors = False
            assert conn.throw_errors is False
            result = await conn.query("SELECT * FROM missing")
            assert isinstance(result, QueryError)
        finally:
            await conn.close()
        async with await sqlite_ds.connect() as other:
            assert other.throw_errors is False


class TestPooling:
    """Tests for pooled connection handling through the data source."""

    async def test_slot_reuse_within_max(self, sqlite_ds: DataSource):
        """Closing a pooled connection makes its slot available again."""
        pool = sqlite_ds.provider.pool
        first = await sqlite_ds.connect()
        raw = first.raw
        await first.close()
        second = await sqlite_ds.connect()
        assert second.raw is raw
        assert pool.size <= pool.max_size
        await second.close()

    async def test_pool_timeout(self, sqlite_ds: DataSource):
        """Acquiring beyond connectionLimit times out after pool_timeout."""
        a = await sqlite_ds.connect()
        b = await sqlite_ds.connect()
        try:
            with pytest.raises(TimeoutError, match="within 200 ms"):
                await sqlite_ds.connect()
        finally:
            await a.close()
            await b.close()
        assert sqlite_ds.connection_count == 0

    async def test_disconnect_all_recreates_pool(self, sqlite_ds: DataSource):
        """disconnect_all closes open connections; the next connect builds a new pool."""
        conn = await sqlite_ds.connect()
        old_pool = sqlite_ds.provider.pool
        await sqlite_ds.disconnect_all()
        assert not conn.opened
        assert sqlite_ds.provider.pool is None
        assert old_pool.closed
        assert await sqlite_ds.query_scalar("SELECT COUNT(*) FROM items") == 0
        assert sqlite_ds.provider.pool is not old_pool
