import contextlib
import logging
from typing import Optional

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from schemes.analytics import AnalyticsReport

logger = logging.getLogger(__name__)


class ReportCache:
    """
    Short-lived cache of analytics reports. Reports are allowed to be a
    little stale, so every cache failure degrades to a recompute.
    """

    def __init__(self, url: str, prefix: str, ttl_sec: int):
        self._url = url
        self._prefix = prefix
        self._ttl = ttl_sec
        self._redis: Redis | None = None

    @classmethod
    def from_client(cls, redis: Redis, prefix: str, ttl_sec: int) -> "ReportCache":
        cache = cls(url="", prefix=prefix, ttl_sec=ttl_sec)
        cache._redis = redis
        return cache

    async def start(self) -> None:
        if self._redis is None:
            self._redis = Redis.from_url(self._url, encoding="utf-8", decode_responses=True)

    async def stop(self) -> None:
        if self._redis:
            with contextlib.suppress(RedisError):
                await self._redis.aclose()
            self._redis = None

    def key(self, window_days: int) -> str:
        return f"{self._prefix}:{window_days}"

    async def get(self, window_days: int) -> Optional[AnalyticsReport]:
        if self._redis is None or self._ttl <= 0:
            return None
        try:
            raw = await self._redis.get(self.key(window_days))
        except RedisError as e:
            logger.warning("report cache read failed: %s", e)
            return None
        if not raw:
            return None
        try:
            return AnalyticsReport.model_validate_json(raw)
        except ValidationError:
            logger.warning("dropping unreadable cached report %s", self.key(window_days))
            return None

    async def set(self, window_days: int, report: AnalyticsReport) -> None:
        if self._redis is None or self._ttl <= 0:
            return
        try:
            await self._redis.set(self.key(window_days), report.model_dump_json(), ex=self._ttl)
        except RedisError as e:
            logger.warning("report cache write failed: %s", e)
