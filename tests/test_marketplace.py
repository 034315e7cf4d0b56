import asyncio
from datetime import datetime, timedelta, timezone

from orm.db import close_db, init_db
from orm.models import GlobalCategory, Product, PromotedListing, Shop
from schemes.marketplace import MarketplaceFilters
from schemes.telemetry import EventRecord
from utils.enums import EventType, MarketplaceSort, PromotionStatus, PromotionTier
from utils.marketplace import (
    expire_promoted_listings, fetch_organic_listings, fetch_promoted_listings, list_admin_promotions,
)
from utils.store import MemoryEventStore

NOW = datetime.now(timezone.utc).replace(microsecond=0)


async def seed() -> None:
    shoes = await GlobalCategory.create(id="cat_shoes", name="Shoes", slug="shoes")
    s1 = await Shop.create(id="s1", slug="acme", name="Acme", city="Johannesburg", province="Gauteng",
                           is_verified=True)
    s2 = await Shop.create(id="s2", slug="cape", name="Cape Goods", city="Cape Town", province="Western Cape")
    s3 = await Shop.create(id="s3", slug="gone", name="Gone", is_active=False)

    rows = [
        ("p1", s1, shoes, "Running shoe", 50000, 65000, 3),
        ("p2", s1, None, "Leather belt", 20000, 20000, 1),
        ("p3", s2, shoes, "Beach sandal", 15000, 18000, 2),
        ("p4", s2, None, "Straw hat", 30000, 30000, 1),
        ("p5", s2, None, "Draft product", 1000, 1000, 0),
        ("p6", s3, None, "Closed shop item", 1000, 1000, 1),
    ]
    for idx, (pid, shop, category, name, lo, hi, variants) in enumerate(rows):
        await Product.create(
            id=pid, shop=shop, category=category, name=name,
            min_price_cents=lo, max_price_cents=hi, variant_count=variants,
            created_at=NOW - timedelta(hours=10 - idx),
        )

    def campaign(pl_id, shop_id, product_id, tier, started_hours_ago, expires_in_hours, **kw):
        return PromotedListing.create(
            id=pl_id, shop_id=shop_id, product_id=product_id, tier=tier,
            starts_at=NOW - timedelta(hours=started_hours_ago),
            expires_at=NOW + timedelta(hours=expires_in_hours),
            amount_paid_cents=9900, **kw,
        )

    await campaign("pl_boost", "s2", "p3", PromotionTier.BOOST, 1, 24)
    await campaign("pl_spot", "s1", "p2", PromotionTier.SPOTLIGHT, 5, 24)
    await campaign("pl_feat_old", "s1", "p1", PromotionTier.FEATURED, 9, 24)
    await campaign("pl_feat_new", "s2", "p4", PromotionTier.FEATURED, 2, 24)
    await campaign("pl_lapsed", "s1", "p1", PromotionTier.SPOTLIGHT, 48, -1)
    await campaign("pl_future", "s1", "p1", PromotionTier.SPOTLIGHT, -5, 24)
    await campaign("pl_cancelled", "s2", "p3", PromotionTier.SPOTLIGHT, 1, 24, status=PromotionStatus.CANCELLED)


def with_db(scenario):
    async def run():
        await init_db(generate_schemas=True, db_url="sqlite://:memory:")
        try:
            await seed()
            return await scenario()
        finally:
            await close_db()

    return asyncio.run(run())


def test_organic_newest_pages_through_everything():
    async def scenario():
        seen, cursor = [], None
        while True:
            items, cursor = await fetch_organic_listings(MarketplaceFilters(), 3, cursor)
            seen.extend(i.id for i in items)
            if cursor is None:
                return seen

    # drafts without variants and products of closed shops never show up
    assert with_db(scenario) == ["p4", "p3", "p2", "p1"]


def test_organic_filters():
    async def scenario():
        gauteng, _ = await fetch_organic_listings(MarketplaceFilters(province="Gauteng"), 10)
        verified, _ = await fetch_organic_listings(MarketplaceFilters(verified_only=True), 10)
        shoes, _ = await fetch_organic_listings(MarketplaceFilters(category="shoes"), 10)
        priced, _ = await fetch_organic_listings(MarketplaceFilters(min_price=17000, max_price=25000), 10)
        found, _ = await fetch_organic_listings(MarketplaceFilters(search="SANDAL"), 10)
        return [[i.id for i in r] for r in (gauteng, verified, shoes, priced, found)]

    gauteng, verified, shoes, priced, found = with_db(scenario)
    assert gauteng == ["p2", "p1"]
    assert verified == ["p2", "p1"]
    assert shoes == ["p3", "p1"]
    assert priced == ["p3", "p2"]
    assert found == ["p3"]


def test_organic_price_sorts_with_cursor():
    async def scenario():
        first, cursor = await fetch_organic_listings(MarketplaceFilters(sort=MarketplaceSort.PRICE_ASC), 2)
        rest, end = await fetch_organic_listings(MarketplaceFilters(sort=MarketplaceSort.PRICE_ASC), 2, cursor)
        desc, _ = await fetch_organic_listings(MarketplaceFilters(sort=MarketplaceSort.PRICE_DESC), 10)
        return [i.id for i in first], [i.id for i in rest], end, [i.id for i in desc]

    first, rest, end, desc = with_db(scenario)
    assert first == ["p3", "p2"]
    assert rest == ["p4", "p1"]
    assert end is None
    assert desc == ["p1", "p4", "p2", "p3"]


def test_listing_snapshot_carries_shop_and_category():
    async def scenario():
        items, _ = await fetch_organic_listings(MarketplaceFilters(search="Running"), 10)
        return items[0]

    item = with_db(scenario)
    assert item.shop.province == "Gauteng"
    assert item.shop.is_verified
    assert item.category.slug == "shoes"
    assert item.promotion is None


def test_promoted_only_live_by_tier_then_newest():
    async def scenario():
        return await fetch_promoted_listings(10, now=NOW)

    items = with_db(scenario)
    assert [i.promotion.promoted_listing_id for i in items] == [
        "pl_spot", "pl_feat_new", "pl_feat_old", "pl_boost",
    ]
    assert items[0].id == "p2"
    assert items[0].promotion.tier == PromotionTier.SPOTLIGHT


def test_promoted_limit_keeps_highest_tier():
    async def scenario():
        for n in range(3):
            await PromotedListing.create(
                id=f"pl_extra_boost_{n}", shop_id="s2", product_id="p3", tier=PromotionTier.BOOST,
                starts_at=NOW - timedelta(minutes=10 + n), expires_at=NOW + timedelta(hours=24),
            )
        return await fetch_promoted_listings(2, now=NOW)

    # newer BOOST campaigns outnumber the limit, the older SPOTLIGHT still gets a slot
    items = with_db(scenario)
    assert [i.promotion.promoted_listing_id for i in items] == ["pl_spot", "pl_feat_new"]


def test_expire_marks_lapsed_campaigns():
    async def scenario():
        count = await expire_promoted_listings(now=NOW)
        again = await expire_promoted_listings(now=NOW)
        lapsed = await PromotedListing.get(id="pl_lapsed")
        return count, again, lapsed.status

    count, again, status = with_db(scenario)
    assert (count, again) == (1, 0)
    assert status == PromotionStatus.EXPIRED


def test_admin_promotions_with_counters():
    store = MemoryEventStore()
    store.events.extend([
        EventRecord(type=EventType.PROMOTED_IMPRESSION, occurred_at=NOW, promoted_listing_id="pl_spot"),
        EventRecord(type=EventType.PROMOTED_IMPRESSION, occurred_at=NOW, promoted_listing_id="pl_spot"),
        EventRecord(type=EventType.PROMOTED_CLICK, occurred_at=NOW, promoted_listing_id="pl_spot"),
        EventRecord(type=EventType.MARKETPLACE_VIEW, occurred_at=NOW, shop_id="platform"),
    ])

    async def scenario():
        active = await list_admin_promotions(PromotionStatus.ACTIVE, 1, 2, store, now=NOW)
        cancelled = await list_admin_promotions(PromotionStatus.CANCELLED, 1, 20, store)
        everything = await list_admin_promotions(None, 1, 20, store)
        return active, cancelled, everything

    active, cancelled, everything = with_db(scenario)
    # lapsed campaigns drop out of ACTIVE before the worker expires them
    assert active.total == 5
    assert active.total_pages == 3
    assert len(active.items) == 2
    assert [p.id for p in cancelled.items] == ["pl_cancelled"]
    assert everything.total == 7

    spot = next(p for p in everything.items if p.id == "pl_spot")
    assert (spot.impressions, spot.clicks) == (2, 1)
    assert spot.click_through_rate == 0.5
    assert spot.shop_name == "Acme"
    assert spot.product_name == "Leather belt"
