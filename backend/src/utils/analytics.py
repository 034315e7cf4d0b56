import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from schemes.analytics import AggregateBucket, AnalyticsReport, DailyRow, Overview, Window
from schemes.telemetry import EventRecord
from utils.aggregation import aggregate, totals
from utils.enums import Dimension, EventType
from utils.errors import AggregationError
from utils.redis import ReportCache
from utils.store import EventStore

logger = logging.getLogger(__name__)

MARKETPLACE_TYPES = frozenset({EventType.MARKETPLACE_VIEW, EventType.MARKETPLACE_CLICK})
PROMOTED_TYPES = frozenset({EventType.PROMOTED_IMPRESSION, EventType.PROMOTED_CLICK})


def _by_views(buckets: List[AggregateBucket]) -> List[AggregateBucket]:
    return sorted(buckets, key=lambda b: (-b.views, -b.clicks))


def build_report(events: Sequence[EventRecord], window: Window, window_days: int) -> AnalyticsReport:
    """
    overview and daily keep marketplace and promoted traffic apart.
    by_category and by_geography are traffic-share breakdowns over every
    event family: their views sum page, product and marketplace views with
    promoted impressions, so their click-through rate is a blended rate,
    not a comparable of the promoted one in by_tier.
    """
    marketplace = [e for e in events if e.type in MARKETPLACE_TYPES]
    promoted = [e for e in events if e.type in PROMOTED_TYPES]

    m_daily = aggregate(marketplace, window, [Dimension.DAY])
    p_daily = aggregate(promoted, window, [Dimension.DAY])

    # one row per day, including days without traffic
    rows = {d: DailyRow(date=d) for d in window.days()}
    for b in m_daily:
        row = rows.get(datetime.fromisoformat(b.key["day"]).date())
        if row:
            row.views, row.clicks = b.views, b.clicks
    for b in p_daily:
        row = rows.get(datetime.fromisoformat(b.key["day"]).date())
        if row:
            row.promoted_impressions, row.promoted_clicks = b.views, b.clicks

    m_views, m_clicks = totals(m_daily)
    p_views, p_clicks = totals(p_daily)

    return AnalyticsReport(
        window_days=window_days,
        window_start=window.start,
        window_end=window.end,
        generated_at=datetime.now(timezone.utc),
        overview=Overview(
            total_views=m_views,
            total_clicks=m_clicks,
            total_promoted_impressions=p_views,
            total_promoted_clicks=p_clicks,
        ),
        daily=list(rows.values()),
        by_tier=_by_views(aggregate(promoted, window, [Dimension.TIER])),
        by_category=_by_views(aggregate(events, window, [Dimension.CATEGORY])),
        by_geography=_by_views(aggregate(events, window, [Dimension.GEOGRAPHY])),
    )


async def get_analytics(
    store: EventStore,
    window_days: int,
    *,
    now: Optional[datetime] = None,
    timeout_sec: float = 10.0,
    max_days: int = 365,
    cache: Optional[ReportCache] = None,
) -> AnalyticsReport:
    """
    Platform-wide marketplace report for the trailing `window_days`.
    Raises ValueError for a bad window and AggregationError when the
    events cannot be read or do not make sense.
    """
    window = Window.trailing(window_days, now)
    if window_days > max_days:
        raise ValueError(f"window is limited to {max_days} days")

    if cache is not None and now is None:
        cached = await cache.get(window_days)
        if cached is not None:
            return cached

    try:
        events = await asyncio.wait_for(store.fetch(window.start, window.end), timeout=timeout_sec)
    except AggregationError:
        raise
    except asyncio.TimeoutError as e:
        raise AggregationError(f"event store read timed out after {timeout_sec}s") from e
    except Exception as e:
        raise AggregationError(f"event store read failed: {e}") from e

    report = build_report(events, window, window_days)
    logger.info(
        "analytics report for %dd: %d events, %d promoted clicks",
        window_days, len(events), report.overview.total_promoted_clicks,
    )
    if cache is not None and now is None:
        await cache.set(window_days, report)
    return report
