# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for pool module - ConnectionPool."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from genro_dal.pool import ConnectionPool, PoolClosedError


def make_pool(max_size: int = 2) -> tuple[ConnectionPool, AsyncMock, AsyncMock]:
    factory = AsyncMock(side_effect=lambda: object())
    closer = AsyncMock()
    return ConnectionPool(factory, closer, max_size=max_size, name="test"), factory, closer


class TestAcquireRelease:
    """Tests for acquire/release and slot reuse."""

    async def test_released_connection_is_reused(self):
        """A released connection is handed out again without opening a new one."""
        pool, factory, _ = make_pool()
        conn = await pool.acquire()
        await pool.release(conn)
        again = await pool.acquire()
        assert again is conn
        assert factory.await_count == 1
        assert pool.size == 1

    async def test_never_exceeds_max_size(self):
        """Open + idle never exceeds max_size across acquire/release cycles."""
        pool, factory, _ = make_pool(max_size=2)
        for _ in range(5):
            a = await pool.acquire()
            b = await pool.acquire()
            assert pool.size <= 2
            await pool.release(a)
            await pool.release(b)
        assert factory.await_count == 2
        assert pool.idle == 2
        assert pool.in_use == 0

    async def test_timeout_when_exhausted(self):
        """acquire() gives up after timeout when no slot frees."""
        pool, _, _ = make_pool(max_size=1)
        await pool.acquire()
        with pytest.raises(asyncio.TimeoutError):
            await pool.acquire(timeout=0.01)

    async def test_waiter_gets_released_connection(self):
        """A waiting acquire is served by the next release."""
        pool, _, _ = make_pool(max_size=1)
        conn = await pool.acquire()
        waiter = asyncio.create_task(pool.acquire(timeout=1))
        await asyncio.sleep(0)
        await pool.release(conn)
        assert await waiter is conn

    async def test_factory_failure_frees_slot(self):
        """A failed open does not leak the slot."""
        pool, factory, _ = make_pool(max_size=1)
        factory.side_effect = [OSError("refused"), object()]
        with pytest.raises(OSError):
            await pool.acquire()
        assert await pool.acquire(timeout=0.1) is not None

    async def test_release_unknown_is_noop(self):
        """Releasing a connection the pool does not own does nothing."""
        pool, _, closer = make_pool()
        await pool.release(object())
        assert pool.idle == 0
        closer.assert_not_awaited()

    def test_invalid_max_size(self):
        """max_size must be positive."""
        with pytest.raises(ValueError):
            ConnectionPool(AsyncMock(), AsyncMock(), max_size=0)


class TestDiscardClose:
    """Tests for discard and close."""

    async def test_discard_closes_and_frees(self):
        """A discarded connection is closed and not reused."""
        pool, factory, closer = make_pool(max_size=1)
        conn = await pool.acquire()
        await pool.discard(conn)
        closer.assert_awaited_once_with(conn)
        assert await pool.acquire(timeout=0.1) is not conn
        assert factory.await_count == 2

    async def test_close_closes_idle(self):
        """close() closes idle connections and rejects new acquires."""
        pool, _, closer = make_pool()
        conn = await pool.acquire()
        await pool.release(conn)
        await pool.close()
        closer.assert_awaited_once_with(conn)
        assert pool.closed
        with pytest.raises(PoolClosedError):
            await pool.acquire()

    async def test_release_after_close_closes(self):
        """Connections in use at close() are closed when released."""
        pool, _, closer = make_pool()
        conn = await pool.acquire()
        await pool.close()
        closer.assert_not_awaited()
        await pool.release(conn)
        closer.assert_awaited_once_with(conn)
        assert pool.size == 0

    async def test_close_reports_first_error(self):
        """All idle connections are attempted; the first failure is raised."""
        pool, _, closer = make_pool()
        a = await pool.acquire()
        b = await pool.acquire()
        await pool.release(a)
        await pool.release(b)
        closer.side_effect = [RuntimeError("first"), None]
        with pytest.raises(RuntimeError, match="first"):
            await pool.close()
        assert closer.await_count == 2
