import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler

from orm.db import init_db, close_db
from settings import settings
from utils.analytics import get_analytics
from utils.errors import AggregationError
from utils.marketplace import expire_promoted_listings
from utils.redis import ReportCache
from utils.store import EventStore, build_event_store
from utils.telemetry import configure_logging

logger = logging.getLogger("worker")


def build_report_cache() -> Optional[ReportCache]:
    if not settings.redis.enabled or settings.analytics.cache_ttl_sec <= 0:
        return None
    return ReportCache(
        url=settings.redis.url,
        prefix=settings.redis.cache_prefix,
        ttl_sec=settings.analytics.cache_ttl_sec,
    )


async def warm_report_cache(store: EventStore, cache: Optional[ReportCache]) -> bool:
    """Recompute the default report and overwrite the cached copy."""
    if cache is None:
        return False
    days = settings.analytics.default_days
    try:
        report = await get_analytics(
            store,
            days,
            timeout_sec=settings.analytics.timeout_sec,
            max_days=settings.analytics.max_days,
        )
    except AggregationError as e:
        logger.warning("report warm-up skipped: %s", e)
        return False
    await cache.set(days, report)
    return True


async def run_once(
    *,
    db_url: Optional[str] = None,
    store: Optional[EventStore] = None,
    cache: Optional[ReportCache] = None,
) -> int:
    await init_db(generate_schemas=False, db_url=db_url)
    own_cache = cache is None
    if own_cache:
        cache = build_report_cache()
        if cache:
            await cache.start()
    try:
        expired = await expire_promoted_listings()
        await warm_report_cache(store or build_event_store(settings.analytics.event_store), cache)
        return expired
    finally:
        if own_cache and cache:
            await cache.stop()
        await close_db()


def tick():
    expired = asyncio.run(run_once())
    logger.info("tick done, %d promotions expired", expired)


def main():
    configure_logging(settings.app.log_level)
    logger.info("start, every %d min", settings.worker.interval_min)
    sched = BlockingScheduler()
    sched.add_job(tick, "interval", minutes=settings.worker.interval_min)
    try:
        sched.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("stop")


if __name__ == "__main__":
    main()
