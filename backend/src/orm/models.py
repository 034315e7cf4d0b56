from tortoise import fields
from tortoise.indexes import Index
from tortoise.models import Model

from utils.enums import EventType, PromotionStatus, PromotionTier


class Shop(Model):
    """
    Read-only here: shops are managed by the dashboard app.
    province is the registered region used as the geography dimension.
    """
    id = fields.CharField(pk=True, max_length=36)
    slug = fields.CharField(max_length=128, unique=True)
    name = fields.CharField(max_length=255)
    city = fields.CharField(max_length=128, null=True)
    province = fields.CharField(max_length=128, null=True, index=True)
    logo_url = fields.TextField(null=True)
    is_active = fields.BooleanField(default=True)
    is_verified = fields.BooleanField(default=False)
    created_at = fields.DatetimeField(auto_now_add=True)


class GlobalCategory(Model):
    id = fields.CharField(pk=True, max_length=36)
    name = fields.CharField(max_length=128)
    slug = fields.CharField(max_length=128, unique=True)
    is_active = fields.BooleanField(default=True)

    class Meta:
        table = "global_category"


class Product(Model):
    """
    min/max price are denormalized from the active variants so the
    marketplace can sort and keyset-paginate on them.
    """
    id = fields.CharField(pk=True, max_length=36)
    shop = fields.ForeignKeyField("models.Shop", related_name="products", on_delete=fields.CASCADE)
    category = fields.ForeignKeyField(
        "models.GlobalCategory", related_name="products", null=True, on_delete=fields.SET_NULL
    )
    name = fields.CharField(max_length=255)
    description = fields.TextField(null=True)
    image_url = fields.TextField(null=True)
    min_price_cents = fields.IntField(default=0)
    max_price_cents = fields.IntField(default=0)
    variant_count = fields.IntField(default=0)
    avg_rating = fields.FloatField(null=True)
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)

    class Meta:
        indexes = [
            Index(fields=("created_at", "id")),
            Index(fields=("min_price_cents", "id")),
            Index(fields=("max_price_cents", "id")),
        ]


class PromotedListing(Model):
    """
    One paid campaign placement of a product.
    A product may be promoted many times over its life; the id names the
    placement, never the product.
    """
    id = fields.CharField(pk=True, max_length=36)
    shop = fields.ForeignKeyField("models.Shop", related_name="promoted_listings", on_delete=fields.CASCADE)
    product = fields.ForeignKeyField("models.Product", related_name="promoted_listings", on_delete=fields.CASCADE)
    tier = fields.CharEnumField(PromotionTier, max_length=16)
    status = fields.CharEnumField(PromotionStatus, max_length=16, default=PromotionStatus.ACTIVE)
    starts_at = fields.DatetimeField()
    expires_at = fields.DatetimeField(index=True)
    amount_paid_cents = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "promoted_listing"
        indexes = [Index(fields=("status", "expires_at"))]


class AnalyticsEvent(Model):
    """
    Append-only event log. Rows are never updated or deleted by the engine;
    every counter is derived from it on read.
    """
    id = fields.BigIntField(pk=True)
    type = fields.CharEnumField(EventType, max_length=32)
    shop_id = fields.CharField(max_length=64, null=True)
    product_id = fields.CharField(max_length=64, null=True)
    promoted_listing_id = fields.CharField(max_length=64, null=True)
    visitor_id = fields.CharField(max_length=128, null=True)
    created_at = fields.DatetimeField(index=True)

    class Meta:
        table = "analytics_event"
        indexes = [
            Index(fields=("type", "created_at")),
            Index(fields=("promoted_listing_id", "type")),
        ]
