# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Registry of data sources, keyed by identifier and schema.

The registry maps ``"<id>"`` or ``"<id>.<schema>"`` to a DataSource. It is
filled from the configuration document by init(), lazily on the first
lookup miss, or explicitly with register().

Lookup order for get(identifier, schema):
    1. exact identifier
    2. normalized identifier (schema appended unless the identifier
       starts with "!" or already contains ".")
    3. init() once, then 1-2 again
    4. NotFoundError

A process-wide default registry backs the module-level helpers
(init, register_data_source, get_data_source, connect, disconnect_all).
Tests replace it with set_registry() or clear it with reset().

Example:
    from genro_dal import registry

    registry.set_registry(registry.Registry("/etc/app/dal.json"))
    conn = await registry.connect("main", "app")
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from .config import DalConfig, DataSourceConfig, load_config
from .connection import Connection
from .datasource import DataSource, format_data_source_id, format_lookup_key
from .errors import ConfigurationError, DisconnectAllError, NotFoundError

logger = logging.getLogger(__name__)


class Registry:
    """Holds the DataSources of one configuration.

    Args:
        config: A parsed DalConfig, a raw configuration dict, a path to the
            JSON document, or None to use the default location
            ($GENRO_DAL_CONFIG, then ./dal/dal.json) at init() time.
    """

    def __init__(self, config: DalConfig | dict[str, Any] | str | Path | None = None):
        self._config_source = config
        self._data_sources: dict[str, DataSource] = {}
        self._initialized = False

    # -------------------------------------------------------------------------
    # Initialization
    # -------------------------------------------------------------------------

    def _load(self) -> DalConfig:
        source = self._config_source
        if isinstance(source, DalConfig):
            return source
        if isinstance(source, dict):
            return DalConfig.from_dict(source)
        return load_config(source)

    def init(self) -> list[DataSource]:
        """Register every configured data source, one per schema.

        Already registered ids are kept as they are.

        Raises:
            ConfigurationError: If the configuration cannot be loaded, or a
                data source resolves no schema.
        """
        config = self._load()
        registered = []
        for ds_config in config.datasources:
            schemas = ds_config.schemas or [""]
            for schema in schemas:
                ds = self.register(ds_config, schema)
                if not ds.schema:
                    raise ConfigurationError(
                        f"data source '{ds.id}' has no schema: set 'schemas' or the provider database",
                        operation="Registry.init",
                    )
                registered.append(ds)
        self._initialized = True
        logger.debug("registry initialized with %d data source(s)", len(self._data_sources))
        return registered

    @property
    def initialized(self) -> bool:
        return self._initialized

    # -------------------------------------------------------------------------
    # Registration and lookup
    # -------------------------------------------------------------------------

    def register(self, config: DataSourceConfig | dict[str, Any], schema: str = "") -> DataSource:
        """Register a data source; return the existing one if the id is taken.

        Configuration differences with an already registered id are ignored.
        """
        if isinstance(config, dict):
            config = DataSourceConfig.from_dict(config)
        if config.id:
            existing = self._data_sources.get(format_data_source_id(config.id, schema))
            if existing is not None:
                return existing
        ds = DataSource(config, schema)
        self._data_sources[ds.id] = ds
        logger.debug("registered data source %s (%s)", ds.id, ds.provider.name)
        return ds

    def _find(self, identifier: str, schema: str | None) -> DataSource | None:
        ds = self._data_sources.get(identifier)
        if ds is None:
            ds = self._data_sources.get(format_lookup_key(identifier, schema))
        return ds

    def get(self, identifier: str, schema: str | None = None) -> DataSource:
        """Look up a data source, initializing from configuration once on a miss.

        Raises:
            NotFoundError: If the data source is still unknown after init().
        """
        ds = self._find(identifier, schema)
        if ds is not None:
            return ds
        if not self._initialized:
            self.init()
            ds = self._find(identifier, schema)
        if ds is None:
            key = format_lookup_key(identifier, schema)
            raise NotFoundError(f"data source '{key}' not found", operation="Registry.get")
        return ds

    async def connect(self, identifier: str, schema: str | None = None) -> Connection:
        """Look up a data source and open a Connection on it."""
        return await self.get(identifier, schema).connect()

    async def disconnect_all(self, identifier: str | None = None) -> None:
        """Disconnect one data source, or all of them concurrently.

        Every data source is attempted; failures are collected and raised
        together as DisconnectAllError once all have finished.
        """
        if identifier is not None:
            targets = [self.get(identifier)]
        else:
            targets = list(self._data_sources.values())
        if not targets:
            return
        results = await asyncio.gather(*(ds.disconnect_all() for ds in targets), return_exceptions=True)
        failures = {
            ds.id: result for ds, result in zip(targets, results, strict=True) if isinstance(result, BaseException)
        }
        if failures:
            for ds_id, err in failures.items():
                logger.error("error disconnecting data source %s: %s", ds_id, err)
            raise DisconnectAllError(failures, operation="Registry.disconnect_all")

    async def shutdown(self) -> None:
        """Disconnect everything and forget all registrations."""
        try:
            await self.disconnect_all()
        finally:
            self.reset()

    def reset(self) -> None:
        """Forget all registrations; the next miss re-runs init()."""
        self._data_sources.clear()
        self._initialized = False

    @property
    def data_sources(self) -> dict[str, DataSource]:
        return dict(self._data_sources)

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._data_sources

    def __len__(self) -> int:
        return len(self._data_sources)


# -----------------------------------------------------------------------------
# Process-wide default registry
# -----------------------------------------------------------------------------

_registry: Registry | None = None


def get_registry() -> Registry:
    """Return the default registry, creating it on first use."""
    global _registry
    if _registry is None:
        _registry = Registry()
    return _registry


def set_registry(registry: Registry | None) -> None:
    """Replace the default registry (None drops it; a new one is created on demand)."""
    global _registry
    _registry = registry


def init() -> list[DataSource]:
    return get_registry().init()


def register_data_source(config: DataSourceConfig | dict[str, Any], schema: str = "") -> DataSource:
    return get_registry().register(config, schema)


def get_data_source(identifier: str, schema: str | None = None) -> DataSource:
    return get_registry().get(identifier, schema)


async def connect(identifier: str, schema: str | None = None) -> Connection:
    return await get_registry().connect(identifier, schema)


async def disconnect_all(identifier: str | None = None) -> None:
    await get_registry().disconnect_all(identifier)


async def shutdown() -> None:
    await get_registry().shutdown()


__all__ = [
    "Registry",
    "connect",
    "disconnect_all",
    "get_data_source",
    "get_registry",
    "init",
    "register_data_source",
    "set_registry",
    "shutdown",
]
