# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Database providers selected by configuration key.

Each data source configuration holds exactly one provider section; its key
selects the implementation:

    "mysql"       MysqlProvider     aiomysql, native pool (reference engine)
    "sqlite"      SqliteProvider    aiosqlite, genro_dal.pool.ConnectionPool
    "postgresql"  PostgresProvider  psycopg3 + psycopg_pool (optional extra)

Components:
    Provider: Capability protocol used by DataSource and Connection.
    ProviderBase: Engine-independent bookkeeping (open-set, batch split,
        error wrapping) on top of per-driver primitives.
    create_provider: Factory building the provider for a data source.

Note:
    PostgreSQL requires psycopg: `pip install genro-dal[postgresql]`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..errors import ConfigurationError
from .base import Provider, ProviderBase
from .mysql import MysqlProvider
from .sqlite import SqliteProvider

if TYPE_CHECKING:
    from ..datasource import DataSource

__all__ = [
    "MysqlProvider",
    "PROVIDERS",
    "Provider",
    "ProviderBase",
    "SqliteProvider",
    "create_provider",
    "get_provider_class",
]

# Provider registry
PROVIDERS: dict[str, type[ProviderBase]] = {
    "mysql": MysqlProvider,
    "sqlite": SqliteProvider,
}


def get_provider_class(key: str) -> type[ProviderBase]:
    """Return the provider class registered under ``key``.

    Raises:
        ConfigurationError: If the key is unknown.
    """
    key = (key or "").lower()
    if key in ("postgresql", "postgres") and "postgresql" not in PROVIDERS:
        # Lazy import to avoid ImportError when psycopg not installed
        from .postgresql import PostgresProvider

        PROVIDERS["postgresql"] = PostgresProvider
        PROVIDERS["postgres"] = PostgresProvider

    if key not in PROVIDERS:
        raise ConfigurationError(
            f"unsupported database provider: '{key}'. Supported: mysql, sqlite, postgresql",
            operation="create_provider",
        )
    return PROVIDERS[key]


def create_provider(data_source: DataSource, key: str, options: dict[str, Any] | None, schema: str = "") -> Provider:
    """Instantiate the provider for a data source."""
    return get_provider_class(key)(data_source, options, schema)
