# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Bounded asyncio connection pool for drivers without a native async pool.

Capacity is an asyncio.Semaphore sized ``max_size``; idle connections are
kept in a LIFO list and reused before new ones are opened. Waiters are
woken in the order asyncio wakes semaphore waiters (FIFO in practice); no
fairness is promised. acquire() waits at most ``timeout`` seconds and
cancels its pending wait on expiry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class PoolClosedError(RuntimeError):
    """Raised when acquiring from a closed pool."""


class ConnectionPool:
    """Pool of physical connections produced by ``factory``.

    Args:
        factory: Coroutine function opening a new physical connection.
        closer: Coroutine function closing a physical connection.
        max_size: Maximum number of connections (idle + in use).
        name: Label used in log messages.
    """

    def __init__(
        self,
        factory: Callable[[], Awaitable[Any]],
        closer: Callable[[Any], Awaitable[None]],
        max_size: int = 10,
        name: str = "pool",
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._factory = factory
        self._closer = closer
        self.max_size = max_size
        self.name = name
        self._slots = asyncio.Semaphore(max_size)
        self._idle: list[Any] = []
        self._in_use: set[int] = set()
        self._closed = False

    @property
    def size(self) -> int:
        """Number of physical connections currently owned by the pool."""
        return len(self._idle) + len(self._in_use)

    @property
    def idle(self) -> int:
        return len(self._idle)

    @property
    def in_use(self) -> int:
        return len(self._in_use)

    @property
    def closed(self) -> bool:
        return self._closed

    async def acquire(self, timeout: float | None = None) -> Any:
        """Get a connection, opening one if no idle connection is available.

        Raises:
            asyncio.TimeoutError: No slot freed up within ``timeout`` seconds.
            PoolClosedError: The pool has been closed.
        """
        if self._closed:
            raise PoolClosedError(f"{self.name} is closed")
        if timeout is None:
            await self._slots.acquire()
        else:
            await asyncio.wait_for(self._slots.acquire(), timeout=timeout)
        if self._closed:
            self._slots.release()
            raise PoolClosedError(f"{self.name} is closed")

        if self._idle:
            conn = self._idle.pop()
        else:
            try:
                conn = await self._factory()
            except BaseException:
                self._slots.release()
                raise
            logger.debug("%s: opened connection (%d/%d)", self.name, self.size + 1, self.max_size)
        self._in_use.add(id(conn))
        return conn

    async def release(self, conn: Any) -> None:
        """Return a connection. On a closed pool the connection is closed instead."""
        if id(conn) not in self._in_use:
            return
        self._in_use.discard(id(conn))
        try:
            if self._closed:
                await self._closer(conn)
            else:
                self._idle.append(conn)
        finally:
            self._slots.release()

    async def discard(self, conn: Any) -> None:
        """Close a broken connection and free its slot without reusing it."""
        if id(conn) not in self._in_use:
            return
        self._in_use.discard(id(conn))
        try:
            await self._closer(conn)
        finally:
            self._slots.release()

    async def close(self) -> None:
        """Close idle connections; in-use ones are closed when released."""
        self._closed = True
        idle, self._idle = self._idle, []
        errors: list[BaseException] = []
        for conn in idle:
            try:
                await self._closer(conn)
            except Exception as e:
                errors.append(e)
        logger.debug("%s: closed (%d idle connections)", self.name, len(idle))
        if errors:
            raise errors[0]


__all__ = ["ConnectionPool", "PoolClosedError"]
