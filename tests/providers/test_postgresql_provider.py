# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for providers.postgresql module - PostgresProvider with a mocked pool.

Skipped when the postgresql extra (psycopg, psycopg-pool) is not installed.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

psycopg = pytest.importorskip("psycopg")
psycopg_pool = pytest.importorskip("psycopg_pool")

from psycopg.conninfo import conninfo_to_dict  # noqa: E402

from genro_dal.config import DataSourceConfig  # noqa: E402
from genro_dal.datasource import DataSource  # noqa: E402
from genro_dal.errors import TimeoutError  # noqa: E402
from genro_dal.providers.postgresql import PostgresProvider  # noqa: E402


def make_ds(schema: str = "", **overrides) -> DataSource:
    options = {"host": "db", "port": 5432, "user": "u", "password": "p", "database": "app"}
    options.update(overrides.pop("options", {}))
    return DataSource(DataSourceConfig(id="pg", provider="postgresql", options=options, **overrides), schema)


@pytest.fixture
def fake_pool(monkeypatch):
    """Patch AsyncConnectionPool with a mock handing out one raw connection."""
    raw = MagicMock()
    raw.execute = AsyncMock()
    pool = MagicMock()
    pool.open = AsyncMock()
    pool.getconn = AsyncMock(return_value=raw)
    pool.putconn = AsyncMock()
    pool.close = AsyncMock()
    pool.max_size = 10
    pool_class = MagicMock(return_value=pool)
    monkeypatch.setattr(psycopg_pool, "AsyncConnectionPool", pool_class)
    return pool_class, pool, raw


class TestConnInfo:
    """Tests for connection string building."""

    def test_from_options(self):
        """Discrete options become a libpq conninfo."""
        ds = make_ds()
        assert isinstance(ds.provider, PostgresProvider)
        assert conninfo_to_dict(ds.provider.conninfo()) == {
            "host": "db",
            "port": "5432",
            "user": "u",
            "password": "p",
            "dbname": "app",
        }

    def test_schema_is_dbname(self):
        """The registration schema is the database."""
        ds = make_ds("reports")
        assert ds.schema == "reports"
        assert conninfo_to_dict(ds.provider.conninfo())["dbname"] == "reports"

    def test_dsn_base(self):
        """A dsn is kept and completed by discrete options."""
        ds = DataSource(
            DataSourceConfig(id="pg", provider="postgresql", options={"dsn": "host=h user=x", "database": "d"})
        )
        assert conninfo_to_dict(ds.provider.conninfo()) == {"host": "h", "user": "x", "dbname": "d"}


class TestPool:
    """Tests for pooled connections."""

    async def test_pool_opened_once(self, fake_pool):
        """The pool is created closed, opened with wait=True and reused."""
        pool_class, pool, raw = fake_pool
        ds = make_ds(options={"connectionLimit": 3})
        conn = await ds.connect()
        assert conn.raw is raw
        await conn.close()
        pool.putconn.assert_awaited_once_with(raw)
        await (await ds.connect()).close()
        pool_class.assert_called_once()
        assert pool_class.call_args.kwargs["max_size"] == 3
        assert pool_class.call_args.kwargs["open"] is False
        assert pool.open.await_args.kwargs["wait"] is True

    async def test_pool_timeout(self, fake_pool):
        """PoolTimeout from getconn becomes TimeoutError."""
        _, pool, _ = fake_pool
        pool.getconn.side_effect = psycopg_pool.PoolTimeout("busy")
        ds = make_ds(pool_timeout=50)
        with pytest.raises(TimeoutError, match="within 50 ms"):
            await ds.connect()

    async def test_transactions_issue_statements(self, fake_pool):
        """begin/commit are explicit statements on an autocommit connection."""
        _, pool, raw = fake_pool
        ds = make_ds()
        conn = await ds.connect()
        await conn.begin()
        await conn.commit()
        assert [c.args[0] for c in raw.execute.await_args_list] == ["BEGIN", "COMMIT"]
        await ds.disconnect_all()
        pool.close.assert_awaited_once()

    async def test_failed_rollback_discards_connection(self, fake_pool):
        """A connection whose rollback fails is closed before putconn()."""
        _, pool, raw = fake_pool
        raw.close = AsyncMock()

        async def execute(sql, *args, **kwargs):
            if sql == "ROLLBACK":
                raise OSError("server closed the connection")

        raw.execute = AsyncMock(side_effect=execute)
        ds = make_ds()
        conn = await ds.connect()
        await conn.begin()
        await conn.close()
        raw.close.assert_awaited_once()
        pool.putconn.assert_awaited_once_with(raw)
        await ds.disconnect_all()
