from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from schemes.base import CursorPage
from utils.enums import MarketplaceSort, PromotionTier


class ShopRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    slug: str
    name: str
    city: Optional[str] = None
    province: Optional[str] = None
    is_verified: bool = False
    logo_url: Optional[str] = None


class CategoryRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    slug: str


class Promotion(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: PromotionTier
    promoted_listing_id: str


class Listing(BaseModel):
    """Snapshot of a product for one feed render."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    min_price_cents: int = 0
    max_price_cents: int = 0
    variant_count: int = 0
    rating: Optional[float] = None
    shop: ShopRef
    category: Optional[CategoryRef] = None
    created_at: Optional[datetime] = None
    promotion: Optional[Promotion] = None


class FeedPage(CursorPage):
    items: List[Listing] = Field(default_factory=list)
    degraded: bool = False


class MarketplaceFilters(BaseModel):
    category: Optional[str] = None
    province: Optional[str] = None
    city: Optional[str] = None
    verified_only: bool = False
    min_price: Optional[int] = Field(None, ge=0)
    max_price: Optional[int] = Field(None, ge=0)
    search: Optional[str] = None
    sort: MarketplaceSort = MarketplaceSort.NEWEST
