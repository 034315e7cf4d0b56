from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from schemes.base import Page
from utils.enums import PromotionStatus, PromotionTier


def ctr(clicks: int, views: int) -> float:
    # clicks without a matching view are tolerated, so this may exceed 1
    return clicks / views if views > 0 else 0.0


class Window(BaseModel):
    """Half-open UTC interval [start, end)."""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @classmethod
    def trailing(cls, days: int, now: Optional[datetime] = None) -> "Window":
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ValueError(f"window must be a positive number of days, got {days!r}")
        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        first = now.date() - timedelta(days=days - 1)
        return cls(start=datetime.combine(first, time.min, tzinfo=timezone.utc), end=now)

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end

    def days(self) -> List[date]:
        first, last = self.start.date(), self.end.date()
        return [first + timedelta(days=i) for i in range((last - first).days + 1)]


class AggregateBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    window_start: datetime
    window_end: datetime
    key: Dict[str, Optional[str]] = Field(default_factory=dict)
    views: int = Field(0, ge=0)
    clicks: int = Field(0, ge=0)

    @computed_field
    @property
    def click_through_rate(self) -> float:
        return ctr(self.clicks, self.views)


class Overview(BaseModel):
    total_views: int = 0
    total_clicks: int = 0
    total_promoted_impressions: int = 0
    total_promoted_clicks: int = 0

    @computed_field
    @property
    def click_through_rate(self) -> float:
        return ctr(self.total_clicks, self.total_views)

    @computed_field
    @property
    def promoted_click_through_rate(self) -> float:
        return ctr(self.total_promoted_clicks, self.total_promoted_impressions)


class DailyRow(BaseModel):
    date: date
    views: int = 0
    clicks: int = 0
    promoted_impressions: int = 0
    promoted_clicks: int = 0


class AnalyticsReport(BaseModel):
    window_days: int
    window_start: datetime
    window_end: datetime
    generated_at: datetime
    overview: Overview
    daily: List[DailyRow]
    by_tier: List[AggregateBucket]
    by_category: List[AggregateBucket]
    by_geography: List[AggregateBucket]


class AdminPromotionOut(BaseModel):
    id: str
    tier: PromotionTier
    status: PromotionStatus
    shop_id: str
    shop_name: str
    product_id: str
    product_name: str
    starts_at: datetime
    expires_at: datetime
    amount_paid_cents: int
    impressions: int = 0
    clicks: int = 0

    @computed_field
    @property
    def click_through_rate(self) -> float:
        return ctr(self.clicks, self.impressions)


class AdminPromotionPage(Page):
    items: List[AdminPromotionOut]
