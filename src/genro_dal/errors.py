# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for the data-access layer.

Every fault raised (or returned, see Connection.throw_errors) by genro-dal
is a DalError. The originating operation and, for query faults, the SQL
text travel with the exception so it can be diagnosed without a traceback
from the call site. Driver exceptions are chained as ``__cause__``.

Hierarchy:
    DalError
        ConfigurationError   bad/missing configuration, unset envKey
        NotFoundError        unknown data source after lazy init
        ConnectionError      provider could not open/close a connection
            TimeoutError     pool acquisition exceeded pool_timeout
        QueryError           driver rejected query/execute
        TransactionError     driver rejected begin/commit/rollback
        StateError           operation invalid in current lifecycle state
        DisconnectAllError   one or more data sources failed to disconnect
"""

from __future__ import annotations

from typing import Any


class DalError(Exception):
    """Base class for all data-access errors.

    Attributes:
        operation: Name of the call that failed (e.g. "Connection.query").
        sql: SQL text involved, when the fault came from a statement.
    """

    def __init__(self, message: str, *, operation: str | None = None, sql: str | None = None):
        self.message = message
        self.operation = operation
        self.sql = sql
        super().__init__(self._format())

    def _format(self) -> str:
        text = f"{self.operation}: {self.message}" if self.operation else self.message
        if self.sql:
            text = f"{text} - {self.sql}"
        return text


class ConfigurationError(DalError):
    """Configuration missing, unreadable or inconsistent."""


class NotFoundError(DalError):
    """No data source registered under the requested identifier."""


class ConnectionError(DalError):  # noqa: A001
    """Provider failed to establish or release a physical connection."""


class TimeoutError(ConnectionError):  # noqa: A001
    """No pooled connection became available within pool_timeout."""


class QueryError(DalError):
    """Driver rejected a query or execute call."""


class TransactionError(DalError):
    """Driver rejected begin, commit or rollback."""


class StateError(DalError):
    """Operation invoked in an invalid connection state."""


class DisconnectAllError(DalError):
    """Aggregate of failures collected while disconnecting data sources.

    Attributes:
        failures: Mapping of data source id to the exception it raised.
    """

    def __init__(self, failures: dict[str, BaseException], *, operation: str | None = None):
        self.failures = dict(failures)
        details = "; ".join(f"{ds_id}: {err}" for ds_id, err in self.failures.items())
        super().__init__(
            f"{len(self.failures)} data source(s) failed to disconnect ({details})",
            operation=operation,
        )


def is_fault(value: Any) -> bool:
    """Return True if an operation result is a fault value rather than a success."""
    return isinstance(value, DalError)


__all__ = [
    "ConfigurationError",
    "ConnectionError",
    "DalError",
    "DisconnectAllError",
    "NotFoundError",
    "QueryError",
    "StateError",
    "TimeoutError",
    "TransactionError",
    "is_fault",
]
