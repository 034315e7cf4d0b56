import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from tortoise.expressions import Q

from orm.models import Product, PromotedListing
from schemes.analytics import AdminPromotionOut, AdminPromotionPage
from schemes.marketplace import CategoryRef, Listing, MarketplaceFilters, Promotion, ShopRef
from utils.cursor import (
    _from_micros, make_cursor_newest, make_cursor_price, parse_cursor_newest, parse_cursor_price,
)
from utils.enums import EventType, MarketplaceSort, PromotionStatus
from utils.store import EventStore

logger = logging.getLogger(__name__)


def apply_listing_filters(qs, filters: MarketplaceFilters):
    if filters.category:
        qs = qs.filter(category__slug=filters.category)
    if filters.province:
        qs = qs.filter(shop__province=filters.province)
    if filters.city:
        qs = qs.filter(shop__city=filters.city)
    if filters.verified_only:
        qs = qs.filter(shop__is_verified=True)
    # a product matches a price range when any of its variants does
    if filters.min_price is not None:
        qs = qs.filter(max_price_cents__gte=filters.min_price)
    if filters.max_price is not None:
        qs = qs.filter(min_price_cents__lte=filters.max_price)
    if filters.search and filters.search.strip():
        term = filters.search.strip()
        qs = qs.filter(Q(name__icontains=term) | Q(description__icontains=term))
    return qs


ORDERING = {
    MarketplaceSort.NEWEST: ("-created_at", "-id"),
    MarketplaceSort.PRICE_ASC: ("min_price_cents", "id"),
    MarketplaceSort.PRICE_DESC: ("-max_price_cents", "-id"),
}


def apply_keyset_cursor(qs, *, sort: MarketplaceSort, cursor: Optional[str]):
    if not cursor:
        return qs
    if sort == MarketplaceSort.PRICE_ASC:
        price, lid = parse_cursor_price(cursor)
        return qs.filter(Q(min_price_cents__gt=price) | Q(min_price_cents=price, id__gt=lid))
    if sort == MarketplaceSort.PRICE_DESC:
        price, lid = parse_cursor_price(cursor)
        return qs.filter(Q(max_price_cents__lt=price) | Q(max_price_cents=price, id__lt=lid))
    us, lid = parse_cursor_newest(cursor)
    cdt = _from_micros(us)
    return qs.filter(Q(created_at__lt=cdt) | Q(created_at=cdt, id__lt=lid))


def next_cursor_for(last: Product, sort: MarketplaceSort) -> str:
    if sort == MarketplaceSort.PRICE_ASC:
        return make_cursor_price(last.min_price_cents, last.id)
    if sort == MarketplaceSort.PRICE_DESC:
        return make_cursor_price(last.max_price_cents, last.id)
    return make_cursor_newest(last.created_at, last.id)


def to_listing(product: Product, promotion: Optional[Promotion] = None) -> Listing:
    shop = product.shop
    category = product.category
    return Listing(
        id=product.id,
        name=product.name,
        description=product.description,
        image_url=product.image_url,
        min_price_cents=product.min_price_cents,
        max_price_cents=product.max_price_cents,
        variant_count=product.variant_count,
        rating=product.avg_rating,
        shop=ShopRef(
            id=shop.id,
            slug=shop.slug,
            name=shop.name,
            city=shop.city,
            province=shop.province,
            is_verified=shop.is_verified,
            logo_url=shop.logo_url,
        ),
        category=CategoryRef(name=category.name, slug=category.slug) if category else None,
        created_at=product.created_at,
        promotion=promotion,
    )


async def fetch_organic_listings(
    filters: MarketplaceFilters,
    limit: int,
    cursor: Optional[str] = None,
) -> Tuple[List[Listing], Optional[str]]:
    """
    Active products of active shops, one keyset page at a time.
    next_cursor is None on the last page.
    """
    qs = Product.filter(is_active=True, shop__is_active=True, variant_count__gt=0)
    qs = apply_listing_filters(qs, filters)
    qs = apply_keyset_cursor(qs, sort=filters.sort, cursor=cursor)
    rows = await qs.order_by(*ORDERING[filters.sort]).limit(limit + 1).prefetch_related("shop", "category")

    has_more = len(rows) > limit
    rows = rows[:limit]
    next_cursor = next_cursor_for(rows[-1], filters.sort) if has_more and rows else None
    return [to_listing(p) for p in rows], next_cursor


async def fetch_promoted_listings(limit: int, now: Optional[datetime] = None) -> List[Listing]:
    """Live placements, highest tier first, newest campaign first within a tier."""
    if limit <= 0:
        return []
    now = now or datetime.now(timezone.utc)
    rows = await (
        PromotedListing.filter(
            status=PromotionStatus.ACTIVE,
            starts_at__lte=now,
            expires_at__gt=now,
            product__is_active=True,
            product__shop__is_active=True,
        )
        # tier values sort lexically in rank order: BOOST < FEATURED < SPOTLIGHT
        .order_by("-tier", "-starts_at", "-id")
        .limit(limit)
        .prefetch_related("product__shop", "product__category")
    )
    return [
        to_listing(pl.product, Promotion(tier=pl.tier, promoted_listing_id=pl.id))
        for pl in rows
    ]


async def expire_promoted_listings(now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    count = await PromotedListing.filter(status=PromotionStatus.ACTIVE, expires_at__lte=now).update(
        status=PromotionStatus.EXPIRED
    )
    if count:
        logger.info("expired %d promoted listings", count)
    return count


class CandidateSource:
    """Feeds the compositor: one organic page and the live promoted pool."""

    async def organic(
        self, filters: MarketplaceFilters, limit: int, cursor: Optional[str] = None
    ) -> Tuple[List[Listing], Optional[str]]:
        return await fetch_organic_listings(filters, limit, cursor)

    async def promoted(self, limit: int) -> List[Listing]:
        return await fetch_promoted_listings(limit)


async def list_admin_promotions(
    status: Optional[PromotionStatus],
    page: int,
    limit: int,
    store: EventStore,
    now: Optional[datetime] = None,
) -> AdminPromotionPage:
    qs = PromotedListing.all()
    if status == PromotionStatus.ACTIVE:
        now = now or datetime.now(timezone.utc)
        qs = qs.filter(status=PromotionStatus.ACTIVE, expires_at__gt=now)
    elif status is not None:
        qs = qs.filter(status=status)

    total = await qs.count()
    rows = await (
        qs.order_by("-created_at", "-id")
        .offset((page - 1) * limit)
        .limit(limit)
        .prefetch_related("shop", "product")
    )
    counts = await store.count_by_placement([pl.id for pl in rows])

    items = [
        AdminPromotionOut(
            id=pl.id,
            tier=pl.tier,
            status=pl.status,
            shop_id=pl.shop.id,
            shop_name=pl.shop.name,
            product_id=pl.product.id,
            product_name=pl.product.name,
            starts_at=pl.starts_at,
            expires_at=pl.expires_at,
            amount_paid_cents=pl.amount_paid_cents,
            impressions=counts.get((pl.id, EventType.PROMOTED_IMPRESSION), 0),
            clicks=counts.get((pl.id, EventType.PROMOTED_CLICK), 0),
        )
        for pl in rows
    ]
    return AdminPromotionPage(
        items=items,
        total=total,
        page=page,
        total_pages=math.ceil(total / limit) if total else 0,
    )
