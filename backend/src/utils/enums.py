from enum import StrEnum


class PromotionTier(StrEnum):
    BOOST = "BOOST"
    FEATURED = "FEATURED"
    SPOTLIGHT = "SPOTLIGHT"

    @property
    def rank(self) -> int:
        # SPOTLIGHT > FEATURED > BOOST
        return _TIER_RANK[self]


_TIER_RANK = {
    PromotionTier.BOOST: 1,
    PromotionTier.FEATURED: 2,
    PromotionTier.SPOTLIGHT: 3,
}


class PromotionStatus(StrEnum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class EventType(StrEnum):
    PAGE_VIEW = "PAGE_VIEW"
    PRODUCT_VIEW = "PRODUCT_VIEW"
    WHATSAPP_CLICK = "WHATSAPP_CLICK"
    WHATSAPP_CHECKOUT = "WHATSAPP_CHECKOUT"
    MARKETPLACE_VIEW = "MARKETPLACE_VIEW"
    MARKETPLACE_CLICK = "MARKETPLACE_CLICK"
    PROMOTED_IMPRESSION = "PROMOTED_IMPRESSION"
    PROMOTED_CLICK = "PROMOTED_CLICK"


class EventKind(StrEnum):
    VIEW = "view"
    CLICK = "click"


EVENT_KINDS = {
    EventType.PAGE_VIEW: EventKind.VIEW,
    EventType.PRODUCT_VIEW: EventKind.VIEW,
    EventType.MARKETPLACE_VIEW: EventKind.VIEW,
    EventType.PROMOTED_IMPRESSION: EventKind.VIEW,
    EventType.WHATSAPP_CLICK: EventKind.CLICK,
    EventType.WHATSAPP_CHECKOUT: EventKind.CLICK,
    EventType.MARKETPLACE_CLICK: EventKind.CLICK,
    EventType.PROMOTED_CLICK: EventKind.CLICK,
}

# promoted events are only written by the attribution recorder
GENERIC_EVENT_TYPES = frozenset(EVENT_KINDS) - {EventType.PROMOTED_IMPRESSION, EventType.PROMOTED_CLICK}


class Dimension(StrEnum):
    DAY = "day"
    GEOGRAPHY = "geography"
    CATEGORY = "category"
    TIER = "tier"


class MarketplaceSort(StrEnum):
    NEWEST = "newest"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"


__all__ = [
    "PromotionTier", "PromotionStatus", "EventType", "EventKind", "EVENT_KINDS",
    "GENERIC_EVENT_TYPES", "Dimension", "MarketplaceSort",
]
