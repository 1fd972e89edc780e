import asyncio
from datetime import datetime, timezone

import pytest

from visitor_tracker.errors import StoreError
from visitor_tracker.models import NO_REMARK, UNKNOWN_DEVICE, UNKNOWN_REGION
from visitor_tracker.store import VisitorStore

# 2026-03-10 12:00 at +08:00
NOW = datetime(2026, 3, 10, 4, 0, 0, tzinfo=timezone.utc)


def _run(tmp_path, scenario):
    """Open a fresh store under tmp_path, run ``scenario(store)``, close it."""

    async def main():
        store = VisitorStore(str(tmp_path / "visitors.db"))
        await store.open()
        try:
            return await scenario(store)
        finally:
            await store.close()

    return asyncio.run(main())


def test_insert_visit_assigns_ids_and_defaults(tmp_path):
    async def scenario(store):
        first = await store.insert_visit("1.1.1.1", visit_time="2026-03-10 09:00:00")
        second = await store.insert_visit("1.1.1.1", "Iceland", "2026-03-10 09:01:00", "curl/8")
        return first, second, await store.recent_visits(10)

    first, second, recent = _run(tmp_path, scenario)
    assert (first.id, second.id) == (1, 2)
    assert first.region == UNKNOWN_REGION
    assert first.user_agent == UNKNOWN_DEVICE
    assert [v.id for v in recent] == [2, 1]  # newest first
    assert recent[0].region == "Iceland"
    assert recent[0].is_valid is True


def test_insert_visit_defaults_visit_time(tmp_path):
    async def scenario(store):
        return await store.insert_visit("1.1.1.1")

    rec = _run(tmp_path, scenario)
    assert len(rec.visit_time) == len("YYYY-MM-DD HH:MM:SS")


def test_counts(tmp_path):
    async def scenario(store):
        await store.insert_visit("1.1.1.1", visit_time="2026-03-10 00:00:01")
        await store.insert_visit("2.2.2.2", visit_time="2026-03-10 23:59:59")
        await store.insert_visit("2.2.2.2", visit_time="2026-03-09 23:59:59")
        return (
            await store.count_valid_visits(),
            await store.count_valid_visits_on_date("2026-03-10"),
            await store.count_valid_visits_on_date("2026-03-09"),
            await store.count_valid_visits_on_date("2026-03-08"),
        )

    assert _run(tmp_path, scenario) == (3, 2, 1, 0)


def test_invalid_visits_are_excluded(tmp_path):
    async def scenario(store):
        await store.insert_visit("1.1.1.1", visit_time="2026-03-10 09:00:00")
        await store.insert_visit("1.1.1.1", visit_time="2026-03-10 09:00:00")
        async with store._pool.acquire() as conn:
            await conn.execute("UPDATE visitor_stats SET is_valid = 0 WHERE id = 1")
            await conn.commit()
        return (
            await store.count_valid_visits(),
            await store.count_valid_visits_on_date("2026-03-10"),
            await store.top_ips_by_visits(10),
            await store.recent_visits(10),
        )

    total, today, top, recent = _run(tmp_path, scenario)
    assert total == 1
    assert today == 1
    assert top[0].visit_count == 1
    assert [v.id for v in recent] == [2]


def test_trend_covers_seven_civil_dates(tmp_path):
    async def scenario(store):
        await store.insert_visit("1.1.1.1", visit_time="2026-03-10 09:00:00")
        await store.insert_visit("1.1.1.1", visit_time="2026-03-10 11:00:00")
        await store.insert_visit("2.2.2.2", visit_time="2026-03-04 00:00:00")  # six days back
        await store.insert_visit("3.3.3.3", visit_time="2026-03-03 23:59:59")  # outside window
        return await store.trend_last_n_days(7, now=NOW)

    trend = _run(tmp_path, scenario)
    assert [(p.visit_date, p.visitor_count) for p in trend] == [
        ("2026-03-04", 1),
        ("2026-03-10", 2),
    ]


def test_trend_empty(tmp_path):
    async def scenario(store):
        return await store.trend_last_n_days(7, now=NOW)

    assert _run(tmp_path, scenario) == []


def test_top_ips_ranking_and_latest_region(tmp_path):
    async def scenario(store):
        await store.insert_visit("2.2.2.2", "Japan - Tokyo", "2026-03-10 08:00:00")
        await store.insert_visit("1.1.1.1", "Australia", "2026-03-10 09:00:00")
        await store.insert_visit("1.1.1.1", "Australia", "2026-03-10 09:05:00")
        await store.insert_visit("1.1.1.1", "Australia Queensland", "2026-03-10 09:10:00")
        await store.insert_visit("3.3.3.3", "Chile", "2026-03-10 09:20:00")
        return await store.top_ips_by_visits(2)

    top = _run(tmp_path, scenario)
    assert len(top) == 2
    assert top[0].visitor_ip == "1.1.1.1"
    assert top[0].visit_count == 3
    assert top[0].region == "Australia Queensland"
    assert top[1].visit_count == 1


def test_recent_visits_limit(tmp_path):
    async def scenario(store):
        for minute in range(5):
            await store.insert_visit("1.1.1.1", visit_time=f"2026-03-10 09:0{minute}:00")
        return await store.recent_visits(3)

    recent = _run(tmp_path, scenario)
    assert [v.visit_time for v in recent] == [
        "2026-03-10 09:04:00",
        "2026-03-10 09:03:00",
        "2026-03-10 09:02:00",
    ]


def test_reset_restarts_sequence_and_keeps_blacklist(tmp_path):
    async def scenario(store):
        await store.insert_visit("1.1.1.1")
        await store.insert_visit("2.2.2.2")
        await store.insert_blacklist_entry("9.9.9.9")
        deleted = await store.reset_all_visits()
        after = await store.insert_visit("3.3.3.3")
        return deleted, after, await store.count_valid_visits(), await store.is_blacklisted("9.9.9.9")

    deleted, after, total, still_blocked = _run(tmp_path, scenario)
    assert deleted == 2
    assert after.id == 1
    assert total == 1
    assert still_blocked


def test_reset_on_empty_store(tmp_path):
    async def scenario(store):
        deleted = await store.reset_all_visits()
        return deleted, await store.insert_visit("1.1.1.1")

    deleted, rec = _run(tmp_path, scenario)
    assert deleted == 0
    assert rec.id == 1


def test_blacklist_insert_is_unique(tmp_path):
    async def scenario(store):
        created = await store.insert_blacklist_entry("5.5.5.5", "scraper", "2026-03-10 09:00:00")
        again = await store.insert_blacklist_entry("5.5.5.5", "dup")
        return created, again, await store.list_blacklist()

    created, again, entries = _run(tmp_path, scenario)
    assert created is True
    assert again is False
    assert len(entries) == 1
    assert entries[0].remark == "scraper"


def test_blacklist_concurrent_duplicate_is_not_an_error(tmp_path):
    async def scenario(store):
        results = await asyncio.gather(
            *(store.insert_blacklist_entry("6.6.6.6") for _ in range(5))
        )
        return results, await store.list_blacklist()

    results, entries = _run(tmp_path, scenario)
    assert results.count(True) == 1
    assert len(entries) == 1


def test_blacklist_listing_newest_first(tmp_path):
    async def scenario(store):
        await store.insert_blacklist_entry("1.1.1.1", add_time="2026-03-08 10:00:00")
        await store.insert_blacklist_entry("2.2.2.2", add_time="2026-03-10 10:00:00")
        await store.insert_blacklist_entry("3.3.3.3", add_time="2026-03-09 10:00:00")
        return await store.list_blacklist()

    entries = _run(tmp_path, scenario)
    assert [e.blocked_ip for e in entries] == ["2.2.2.2", "3.3.3.3", "1.1.1.1"]
    assert entries[0].remark == NO_REMARK


def test_blacklist_delete_is_idempotent(tmp_path):
    async def scenario(store):
        await store.insert_blacklist_entry("1.1.1.1")
        entry = (await store.list_blacklist())[0]
        first = await store.delete_blacklist_entry(entry.id)
        second = await store.delete_blacklist_entry(entry.id)
        missing = await store.delete_blacklist_entry(999)
        return first, second, missing, await store.is_blacklisted("1.1.1.1")

    assert _run(tmp_path, scenario) == (1, 0, 0, False)


def test_closed_store_raises_store_error(tmp_path):
    async def scenario():
        store = VisitorStore(str(tmp_path / "visitors.db"))
        await store.open()
        await store.close()
        await store.count_valid_visits()

    with pytest.raises(StoreError):
        asyncio.run(scenario())
