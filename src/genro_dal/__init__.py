# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""genro-dal: async data-access layer over MySQL, SQLite and PostgreSQL.

Named data sources (one per configured schema) hand out Connections with a
uniform query/transaction API, whatever the driver underneath.

Components:
    Registry: Maps "<id>" / "<id>.<schema>" to DataSources, lazily
        initialized from the configuration document.
    DataSource: Named configuration bound to a Provider; connect() and
        single-shot helpers.
    Connection: One physical connection with transaction state and a
        result cursor.
    sql_template / SqlTemplate: Interpolation-style queries compiled to
        placeholders plus positional parameters.
    split_statements: Splits a multi-statement SQL blob.

Example:
    import genro_dal

    conn = await genro_dal.connect("main", "app")
    try:
        async with conn.transaction():
            res = await conn.execute("INSERT INTO t (title) VALUES (?)", ["x"])
        rows = await conn.query(genro_dal.sql_template("SELECT * FROM t WHERE id = ", res.insert_id))
    finally:
        await conn.close()

Note:
    Faults are raised by default. With throw_errors=False (per data source,
    per connection, or inside conn.errors_as_values()) they are returned
    as values: test results with is_fault().
"""

from .config import DalConfig, DataSourceConfig, load_config
from .connection import Connection
from .datasource import DataSource
from .errors import (
    ConfigurationError,
    ConnectionError,
    DalError,
    DisconnectAllError,
    NotFoundError,
    QueryError,
    StateError,
    TimeoutError,
    TransactionError,
    is_fault,
)
from .formatting import SqlTemplate, format_inline, format_query, sql_template
from .registry import (
    Registry,
    connect,
    disconnect_all,
    get_data_source,
    get_registry,
    init,
    register_data_source,
    set_registry,
    shutdown,
)
from .splitter import split_statements
from .types import ExecuteResult, Row

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "Connection",
    "ConnectionError",
    "DalConfig",
    "DalError",
    "DataSource",
    "DataSourceConfig",
    "DisconnectAllError",
    "ExecuteResult",
    "NotFoundError",
    "QueryError",
    "Registry",
    "Row",
    "SqlTemplate",
    "StateError",
    "TimeoutError",
    "TransactionError",
    "connect",
    "disconnect_all",
    "format_inline",
    "format_query",
    "get_data_source",
    "get_registry",
    "init",
    "is_fault",
    "load_config",
    "register_data_source",
    "set_registry",
    "shutdown",
    "split_statements",
    "sql_template",
]
