from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiosqlite

from visitor_tracker.errors import StoreError

logger = logging.getLogger(__name__)


class ConnectionPool:
    """Bounded pool of aiosqlite connections to one database file.

    At most ``size`` connections are checked out at once. Waiting for a free
    slot is bounded by ``connect_timeout``. Idle connections older than
    ``idle_timeout`` are closed and replaced on the next acquire. A
    connection whose operation raised a database error is closed instead of
    being returned, so the next caller gets a fresh one. The same holds for
    any other exception escaping the ``async with`` body.
    """

    def __init__(
        self,
        path: str,
        size: int = 5,
        connect_timeout: float = 5.0,
        idle_timeout: float = 300.0,
    ) -> None:
        self.path = path
        self.size = max(1, size)
        self.connect_timeout = connect_timeout
        self.idle_timeout = idle_timeout
        self._slots: asyncio.Semaphore | None = None
        self._idle: list[tuple[aiosqlite.Connection, float]] = []  # (conn, released_at)
        self._closed = True

    async def open(self) -> None:
        self._slots = asyncio.Semaphore(self.size)
        self._closed = False
        logger.info("Connection pool opened: %s (size=%d)", self.path, self.size)

    async def close(self) -> None:
        self._closed = True
        idle, self._idle = self._idle, []
        for conn, _ in idle:
            await self._discard(conn)
        logger.info("Connection pool closed: %s", self.path)

    async def _connect(self) -> aiosqlite.Connection:
        conn = await asyncio.wait_for(aiosqlite.connect(self.path), self.connect_timeout)
        conn.row_factory = aiosqlite.Row
        try:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous=NORMAL")
        except BaseException:
            # Not a database, or busy: the worker thread must still be stopped
            await self._discard(conn)
            raise
        return conn

    async def _discard(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.close()
        except Exception:
            logger.exception("Failed to close database connection")

    async def _checkout(self) -> aiosqlite.Connection:
        now = time.monotonic()
        while self._idle:
            conn, released_at = self._idle.pop()
            if now - released_at <= self.idle_timeout:
                return conn
            await self._discard(conn)
        return await self._connect()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection; database errors are re-raised as StoreError."""
        if self._closed or self._slots is None:
            raise StoreError("connection pool is not open")
        try:
            await asyncio.wait_for(self._slots.acquire(), self.connect_timeout)
        except asyncio.TimeoutError as exc:
            raise StoreError("timed out waiting for a database connection") from exc

        conn: aiosqlite.Connection | None = None
        try:
            try:
                conn = await self._checkout()
            except (aiosqlite.Error, OSError, asyncio.TimeoutError) as exc:
                raise StoreError(f"cannot connect to {self.path}") from exc
            try:
                yield conn
            except aiosqlite.Error as exc:
                await self._discard(conn)
                conn = None
                raise StoreError(str(exc)) from exc
            except BaseException:
                # May hold an open transaction
                await self._discard(conn)
                conn = None
                raise
        finally:
            if conn is not None:
                if self._closed:
                    await self._discard(conn)
                else:
                    self._idle.append((conn, time.monotonic()))
            self._slots.release()
