from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.enums import EventType, GENERIC_EVENT_TYPES, PromotionTier

OpaqueId = str


# ---------- inbound (HTTP) ----------
class PromotedClickIn(BaseModel):
    promoted_listing_id: OpaqueId = Field(..., min_length=1, max_length=64)
    shop_id: OpaqueId = Field(..., min_length=1, max_length=64)
    product_id: OpaqueId = Field(..., min_length=1, max_length=64)


class ImpressionBatch(BaseModel):
    promoted_listing_ids: List[OpaqueId] = Field(default_factory=list, max_length=200)


class GenericEventIn(BaseModel):
    type: EventType
    shop_id: OpaqueId = Field("platform", min_length=1, max_length=64)
    product_id: Optional[OpaqueId] = Field(None, max_length=64)
    visitor_id: Optional[str] = Field(None, max_length=128)

    @field_validator("type")
    @classmethod
    def not_promoted(cls, v: EventType) -> EventType:
        if v not in GENERIC_EVENT_TYPES:
            raise ValueError("promoted events go through /telemetry/promoted/*")
        return v


class Accepted(BaseModel):
    status: str = "accepted"
    queued: bool = True


# ---------- stored events ----------
class ImpressionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    promoted_listing_id: OpaqueId
    occurred_at: datetime

    def to_record(self) -> "EventRecord":
        return EventRecord(
            type=EventType.PROMOTED_IMPRESSION,
            occurred_at=self.occurred_at,
            promoted_listing_id=self.promoted_listing_id,
        )


class ClickEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    promoted_listing_id: OpaqueId
    shop_id: OpaqueId
    product_id: OpaqueId
    occurred_at: datetime

    def to_record(self) -> "EventRecord":
        return EventRecord(
            type=EventType.PROMOTED_CLICK,
            occurred_at=self.occurred_at,
            promoted_listing_id=self.promoted_listing_id,
            shop_id=self.shop_id,
            product_id=self.product_id,
        )


class GenericEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EventType
    shop_id: OpaqueId
    product_id: Optional[OpaqueId] = None
    visitor_id: Optional[str] = None
    occurred_at: datetime

    def to_record(self) -> "EventRecord":
        return EventRecord(
            type=self.type,
            occurred_at=self.occurred_at,
            shop_id=self.shop_id,
            product_id=self.product_id,
            visitor_id=self.visitor_id,
        )


class EventRecord(BaseModel):
    """A stored event with its reporting dimensions resolved."""
    model_config = ConfigDict(frozen=True)

    type: EventType
    occurred_at: datetime
    shop_id: Optional[OpaqueId] = None
    product_id: Optional[OpaqueId] = None
    promoted_listing_id: Optional[OpaqueId] = None
    visitor_id: Optional[str] = None
    province: Optional[str] = None
    category: Optional[str] = None
    tier: Optional[PromotionTier] = None


class Ack(BaseModel):
    operation: str
    accepted: int = 0
