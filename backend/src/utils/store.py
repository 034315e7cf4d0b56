import logging
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel, Field, ValidationError
from tortoise.functions import Count
from tortoise.transactions import in_transaction

from orm.models import AnalyticsEvent, Product, PromotedListing, Shop
from schemes.telemetry import EventRecord
from utils.enums import EventType, PromotionTier
from utils.errors import AggregationError

logger = logging.getLogger(__name__)

PlacementCounts = Dict[Tuple[str, EventType], int]


class DimensionCatalog(BaseModel):
    """Lookups that attach geography, category and tier to raw events."""
    shop_provinces: Dict[str, Optional[str]] = Field(default_factory=dict)
    product_categories: Dict[str, Optional[str]] = Field(default_factory=dict)
    # promoted_listing_id -> (tier, shop_id, product_id)
    placements: Dict[str, Tuple[PromotionTier, str, str]] = Field(default_factory=dict)

    def resolve(self, record: EventRecord) -> EventRecord:
        shop_id, product_id, tier = record.shop_id, record.product_id, record.tier
        placement = self.placements.get(record.promoted_listing_id or "")
        if placement:
            tier = placement[0]
            shop_id = shop_id or placement[1]
            product_id = product_id or placement[2]
        return record.model_copy(update={
            "shop_id": shop_id,
            "product_id": product_id,
            "tier": tier,
            "province": self.shop_provinces.get(shop_id or ""),
            "category": self.product_categories.get(product_id or ""),
        })


class EventStore(Protocol):
    async def append(self, events: Sequence[EventRecord]) -> int: ...

    async def fetch(
        self, since: datetime, until: datetime, types: Optional[Iterable[EventType]] = None
    ) -> List[EventRecord]: ...

    async def count_by_placement(self, promoted_listing_ids: Sequence[str]) -> PlacementCounts: ...


class MemoryEventStore:
    """In-process log for development and tests."""

    def __init__(self, catalog: Optional[DimensionCatalog] = None):
        self.catalog = catalog or DimensionCatalog()
        self.events: List[EventRecord] = []

    async def append(self, events: Sequence[EventRecord]) -> int:
        batch = list(events)
        self.events.extend(batch)
        return len(batch)

    async def fetch(self, since, until, types=None):
        wanted = set(types) if types else None
        return [
            self.catalog.resolve(ev)
            for ev in list(self.events)
            if since <= ev.occurred_at < until and (wanted is None or ev.type in wanted)
        ]

    async def count_by_placement(self, promoted_listing_ids):
        ids = set(promoted_listing_ids)
        return dict(Counter(
            (ev.promoted_listing_id, ev.type)
            for ev in self.events
            if ev.promoted_listing_id in ids
        ))


class TortoiseEventStore:
    async def append(self, events: Sequence[EventRecord]) -> int:
        rows = [
            AnalyticsEvent(
                type=ev.type,
                shop_id=ev.shop_id,
                product_id=ev.product_id,
                promoted_listing_id=ev.promoted_listing_id,
                visitor_id=ev.visitor_id,
                created_at=ev.occurred_at,
            )
            for ev in events
        ]
        if not rows:
            return 0
        if len(rows) == 1:
            await rows[0].save()
            return 1
        async with in_transaction():
            await AnalyticsEvent.bulk_create(rows)
        return len(rows)

    async def fetch(self, since, until, types=None):
        qs = AnalyticsEvent.filter(created_at__gte=since, created_at__lt=until)
        if types:
            qs = qs.filter(type__in=list(types))
        try:
            rows = await qs.order_by("created_at").values(
                "id", "type", "created_at", "shop_id", "product_id", "promoted_listing_id", "visitor_id"
            )
        except ValueError as e:
            # the ORM refuses rows whose type is not a known EventType
            raise AggregationError(f"malformed stored event: {e}") from e

        records: List[EventRecord] = []
        for r in rows:
            try:
                records.append(EventRecord(
                    type=r["type"],
                    occurred_at=r["created_at"],
                    shop_id=r["shop_id"],
                    product_id=r["product_id"],
                    promoted_listing_id=r["promoted_listing_id"],
                    visitor_id=r["visitor_id"],
                ))
            except ValidationError as e:
                raise AggregationError(f"malformed stored event #{r['id']}") from e

        catalog = await self.load_catalog(records)
        return [catalog.resolve(rec) for rec in records]

    async def load_catalog(self, records: Sequence[EventRecord]) -> DimensionCatalog:
        pl_ids = {r.promoted_listing_id for r in records if r.promoted_listing_id}
        placements = {}
        if pl_ids:
            for p in await PromotedListing.filter(id__in=pl_ids).values("id", "tier", "shop_id", "product_id"):
                placements[p["id"]] = (PromotionTier(p["tier"]), p["shop_id"], p["product_id"])

        shop_ids = {r.shop_id for r in records if r.shop_id} | {v[1] for v in placements.values()}
        product_ids = {r.product_id for r in records if r.product_id} | {v[2] for v in placements.values()}

        provinces = {}
        if shop_ids:
            provinces = {
                s["id"]: s["province"]
                for s in await Shop.filter(id__in=shop_ids).values("id", "province")
            }
        categories = {}
        if product_ids:
            categories = {
                p["id"]: p["category__slug"]
                for p in await Product.filter(id__in=product_ids).values("id", "category__slug")
            }
        return DimensionCatalog(shop_provinces=provinces, product_categories=categories, placements=placements)

    async def count_by_placement(self, promoted_listing_ids):
        if not promoted_listing_ids:
            return {}
        rows = await (
            AnalyticsEvent.filter(
                promoted_listing_id__in=list(promoted_listing_ids),
                type__in=[EventType.PROMOTED_IMPRESSION, EventType.PROMOTED_CLICK],
            )
            .annotate(n=Count("id"))
            .group_by("promoted_listing_id", "type")
            .values("promoted_listing_id", "type", "n")
        )
        return {(r["promoted_listing_id"], EventType(r["type"])): r["n"] for r in rows}


def build_event_store(kind: str) -> EventStore:
    if kind == "memory":
        logger.warning("using in-memory event store, events will not survive a restart")
        return MemoryEventStore()
    if kind == "tortoise":
        return TortoiseEventStore()
    raise ValueError(f"unknown event store {kind!r}")
