# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SQLite fixtures for data-access tests.

Every fixture works on a database file inside tmp_path, so pooled
connections of one data source share the same data.

Connection model:
- `sqlite_ds` pools connections (max 2, short pool timeout)
- `sqlite_single_ds` opens a dedicated connection per connect()
- both are disconnected after the test
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio

from genro_dal import registry
from genro_dal.config import DataSourceConfig
from genro_dal.datasource import DataSource


def make_sqlite_config(db_path: Any, **overrides: Any) -> DataSourceConfig:
    """Build a sqlite DataSourceConfig for db_path."""
    options = {"database": str(db_path), "connectionLimit": 2}
    options.update(overrides.pop("options", {}))
    params: dict[str, Any] = {"id": "test", "pool_timeout": 200, "provider": "sqlite", "options": options}
    params.update(overrides)
    return DataSourceConfig(**params)


@pytest.fixture
def make_config():
    """Factory fixture for sqlite DataSourceConfig objects."""
    return make_sqlite_config


@pytest.fixture
def sqlite_config(tmp_path) -> DataSourceConfig:
    """Pooled sqlite configuration on a file in tmp_path."""
    return make_sqlite_config(tmp_path / "test.db")


@pytest_asyncio.fixture
async def sqlite_ds(sqlite_config: DataSourceConfig) -> AsyncGenerator[DataSource, None]:
    """Pooled sqlite DataSource with a `items` table."""
    ds = DataSource(sqlite_config)
    await ds.execute("CREATE TABLE items (id INTEGER PRIMARY KEY AUTOINCREMENT, title TEXT)")
    yield ds
    await ds.disconnect_all()


@pytest_asyncio.fixture
async def sqlite_single_ds(tmp_path) -> AsyncGenerator[DataSource, None]:
    """Non-pooled sqlite DataSource with a `items` table."""
    ds = DataSource(make_sqlite_config(tmp_path / "single.db", id="single", use_pool=False))
    await ds.execute("CREATE TABLE items (id INTEGER PRIMARY KEY AUTOINCREMENT, title TEXT)")
    yield ds
    await ds.disconnect_all()


@pytest.fixture
def default_registry():
    """Isolate the process-wide default registry."""
    registry.set_registry(None)
    yield
    registry.set_registry(None)
