from __future__ import annotations

import logging
from datetime import datetime

import aiosqlite

from visitor_tracker.db import ConnectionPool
from visitor_tracker.models import (
    NO_REMARK,
    UNKNOWN_DEVICE,
    UNKNOWN_REGION,
    BlacklistEntry,
    TopIp,
    TrendPoint,
    VisitRecord,
)
from visitor_tracker.timefmt import local_date_days_ago, local_now

logger = logging.getLogger(__name__)

SCHEMA = (
    f"""
    CREATE TABLE IF NOT EXISTS visitor_stats (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        visitor_ip TEXT NOT NULL,
        region TEXT DEFAULT '{UNKNOWN_REGION}',
        visit_time TEXT NOT NULL,
        user_agent TEXT DEFAULT '{UNKNOWN_DEVICE}',
        is_valid INTEGER NOT NULL DEFAULT 1
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS blacklist (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        blocked_ip TEXT NOT NULL UNIQUE,
        add_time TEXT NOT NULL,
        remark TEXT DEFAULT '{NO_REMARK}'
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_visit_time ON visitor_stats(visit_time)",
    "CREATE INDEX IF NOT EXISTS idx_visitor_ip ON visitor_stats(visitor_ip)",
)


def _visit_from_row(row: aiosqlite.Row) -> VisitRecord:
    return VisitRecord(
        id=row["id"],
        visitor_ip=row["visitor_ip"],
        region=row["region"] or UNKNOWN_REGION,
        visit_time=row["visit_time"],
        user_agent=row["user_agent"] or UNKNOWN_DEVICE,
        is_valid=bool(row["is_valid"]),
    )


def _entry_from_row(row: aiosqlite.Row) -> BlacklistEntry:
    return BlacklistEntry(
        id=row["id"],
        blocked_ip=row["blocked_ip"],
        add_time=row["add_time"],
        remark=row["remark"] or NO_REMARK,
    )


class VisitorStore:
    """Durable visit log plus IP blacklist, backed by one SQLite file.

    Call open() before use and close() at shutdown. Each method runs on its
    own pooled connection and commits before returning, so concurrent
    callers see each other's writes but get no cross-call consistency.
    """

    def __init__(
        self,
        path: str,
        pool_size: int = 5,
        connect_timeout: float = 5.0,
        idle_timeout: float = 300.0,
    ) -> None:
        self._pool = ConnectionPool(path, pool_size, connect_timeout, idle_timeout)

    @property
    def path(self) -> str:
        return self._pool.path

    async def open(self) -> None:
        await self._pool.open()
        async with self._pool.acquire() as conn:
            for stmt in SCHEMA:
                await conn.execute(stmt)
            await conn.commit()
        logger.info("Visitor store ready at %s", self.path)

    async def close(self) -> None:
        await self._pool.close()

    # -- visits ---------------------------------------------------------

    async def insert_visit(
        self,
        visitor_ip: str,
        region: str = UNKNOWN_REGION,
        visit_time: str | None = None,
        user_agent: str = UNKNOWN_DEVICE,
    ) -> VisitRecord:
        if visit_time is None:
            visit_time, _ = local_now()
        async with self._pool.acquire() as conn:
            cursor = await conn.execute(
                "INSERT INTO visitor_stats (visitor_ip, region, visit_time, user_agent) "
                "VALUES (?, ?, ?, ?)",
                (visitor_ip, region, visit_time, user_agent),
            )
            await conn.commit()
            return VisitRecord(
                id=cursor.lastrowid,
                visitor_ip=visitor_ip,
                region=region,
                visit_time=visit_time,
                user_agent=user_agent,
            )

    async def count_valid_visits(self) -> int:
        async with self._pool.acquire() as conn:
            async with conn.execute(
                "SELECT COUNT(*) FROM visitor_stats WHERE is_valid = 1"
            ) as cur:
                row = await cur.fetchone()
        return row[0] if row else 0

    async def count_valid_visits_on_date(self, date: str) -> int:
        async with self._pool.acquire() as conn:
            async with conn.execute(
                "SELECT COUNT(*) FROM visitor_stats WHERE DATE(visit_time) = ? AND is_valid = 1",
                (date,),
            ) as cur:
                row = await cur.fetchone()
        return row[0] if row else 0

    async def trend_last_n_days(self, n: int, now: datetime | None = None) -> list[TrendPoint]:
        """Visit counts per civil date for the ``n`` dates ending today, ascending.

        Dates without visits are absent from the result.
        """
        _, today = local_now(now)
        since = local_date_days_ago(max(n, 1) - 1, now)
        async with self._pool.acquire() as conn:
            async with conn.execute(
                """
                SELECT DATE(visit_time) AS visit_date, COUNT(*) AS visitor_count
                FROM visitor_stats
                WHERE is_valid = 1 AND DATE(visit_time) BETWEEN ? AND ?
                GROUP BY visit_date
                ORDER BY visit_date ASC
                """,
                (since, today),
            ) as cur:
                rows = await cur.fetchall()
        return [TrendPoint(r["visit_date"], r["visitor_count"]) for r in rows]

    async def top_ips_by_visits(self, limit: int) -> list[TopIp]:
        # SQLite takes bare columns from the MAX(id) row: the latest region wins
        async with self._pool.acquire() as conn:
            async with conn.execute(
                """
                SELECT visitor_ip, region, COUNT(*) AS visit_count, MAX(id) AS last_id
                FROM visitor_stats
                WHERE is_valid = 1
                GROUP BY visitor_ip
                ORDER BY visit_count DESC, visitor_ip ASC
                LIMIT ?
                """,
                (limit,),
            ) as cur:
                rows = await cur.fetchall()
        return [
            TopIp(r["visitor_ip"], r["region"] or UNKNOWN_REGION, r["visit_count"])
            for r in rows
        ]

    async def recent_visits(self, limit: int) -> list[VisitRecord]:
        async with self._pool.acquire() as conn:
            async with conn.execute(
                """
                SELECT id, visitor_ip, region, visit_time, user_agent, is_valid
                FROM visitor_stats
                WHERE is_valid = 1
                ORDER BY visit_time DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            ) as cur:
                rows = await cur.fetchall()
        return [_visit_from_row(r) for r in rows]

    async def reset_all_visits(self) -> int:
        """Delete every visit and restart the id sequence at 1. Returns rows deleted."""
        async with self._pool.acquire() as conn:
            cursor = await conn.execute("DELETE FROM visitor_stats")
            deleted = cursor.rowcount
            await conn.execute("DELETE FROM sqlite_sequence WHERE name = 'visitor_stats'")
            await conn.commit()
        logger.info("Reset visitor_stats: %d rows deleted", deleted)
        return deleted

    # -- blacklist ------------------------------------------------------

    async def is_blacklisted(self, ip: str) -> bool:
        async with self._pool.acquire() as conn:
            async with conn.execute(
                "SELECT 1 FROM blacklist WHERE blocked_ip = ? LIMIT 1", (ip,)
            ) as cur:
                row = await cur.fetchone()
        return row is not None

    async def insert_blacklist_entry(
        self,
        ip: str,
        remark: str = NO_REMARK,
        add_time: str | None = None,
    ) -> bool:
        """Insert ``ip`` into the blacklist. Returns False if it is already there."""
        if await self.is_blacklisted(ip):
            return False
        if add_time is None:
            add_time, _ = local_now()
        async with self._pool.acquire() as conn:
            try:
                await conn.execute(
                    "INSERT INTO blacklist (blocked_ip, add_time, remark) VALUES (?, ?, ?)",
                    (ip, add_time, remark),
                )
            except aiosqlite.IntegrityError:
                # Lost a race with a concurrent insert of the same ip
                await conn.rollback()
                return False
            await conn.commit()
        return True

    async def delete_blacklist_entry(self, entry_id: int) -> int:
        async with self._pool.acquire() as conn:
            cursor = await conn.execute("DELETE FROM blacklist WHERE id = ?", (entry_id,))
            await conn.commit()
            return cursor.rowcount

    async def list_blacklist(self) -> list[BlacklistEntry]:
        async with self._pool.acquire() as conn:
            async with conn.execute(
                "SELECT id, blocked_ip, add_time, remark FROM blacklist "
                "ORDER BY add_time DESC, id DESC"
            ) as cur:
                rows = await cur.fetchall()
        return [_entry_from_row(r) for r in rows]
