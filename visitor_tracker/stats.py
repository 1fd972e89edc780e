from __future__ import annotations

import asyncio

from visitor_tracker.config import RECENT_VISITS_LIMIT, TOP_IP_LIMIT, TREND_DAYS
from visitor_tracker.store import VisitorStore
from visitor_tracker.timefmt import local_now


async def get_stats(
    store: VisitorStore,
    top_limit: int = TOP_IP_LIMIT,
    recent_limit: int = RECENT_VISITS_LIMIT,
    trend_days: int = TREND_DAYS,
) -> dict:
    """Combined statistics report.

    The five reads run concurrently and each sees the store as of its own
    execution, so totals may disagree by in-flight visits.
    """
    _, today = local_now()
    total, today_count, trend, top_ips, recent = await asyncio.gather(
        store.count_valid_visits(),
        store.count_valid_visits_on_date(today),
        store.trend_last_n_days(trend_days),
        store.top_ips_by_visits(top_limit),
        store.recent_visits(recent_limit),
    )
    return {
        "totalVisitors": total,
        "todayVisitors": today_count,
        "sevenDaysTrend": [p.to_api_dict() for p in trend],
        "topIpList": [t.to_api_dict() for t in top_ips],
        "visitorList": [v.to_api_dict() for v in recent],
    }
