from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from inventory_sync.schemas.common import PaginationMeta


class InventoryItemCreate(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    name: str = Field(min_length=1, max_length=255)
    category: str | None = Field(default=None, max_length=120)
    seller_code: str | None = Field(default=None, max_length=10)
    price: Decimal = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    is_small_batch: bool = False
    pos_item_ref: str | None = None
    pos_variation_ref: str | None = None
    pos_catalog_ref: str | None = None
    market_listing_ref: str | None = None
    market_offer_ref: str | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "AB12",
                "name": "AB12 - Manteau laine",
                "category": "AB - Manteau",
                "seller_code": "AB",
                "price": 120.0,
                "quantity": 1,
                "is_small_batch": False,
            }
        }
    )

    @field_validator("code", "seller_code")
    @classmethod
    def normalize_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip().upper()
        if not cleaned:
            raise ValueError("code cannot be blank")
        return cleaned


class RestockIn(BaseModel):
    quantity: int = Field(ge=1)


class QuantityUpdateIn(BaseModel):
    quantity: int = Field(ge=0)


class ChannelListingOut(BaseModel):
    channel: str
    state: str
    listing_ref: str | None = None
    offer_ref: str | None = None
    last_error: str | None = None
    last_error_kind: str | None = None
    attempts: int
    listed_at: datetime | None = None
    withdrawn_at: datetime | None = None


class SaleRecordOut(BaseModel):
    transaction_id: str
    unit_index: int
    channel_name: str
    realized_price: float | None = None
    sold_at: datetime


class InventoryItemOut(BaseModel):
    id: str
    code: str
    name: str
    category: str | None = None
    seller_code: str | None = None
    price: float
    quantity: int
    is_small_batch: bool
    lifecycle_state: str
    removal_incomplete: bool
    removal_attempts: int
    realized_price: float | None = None
    last_applied_transaction_id: str | None = None
    last_sale_channel: str | None = None
    pos_item_ref: str | None = None
    pos_variation_ref: str | None = None
    pos_catalog_ref: str | None = None
    market_listing_ref: str | None = None
    market_offer_ref: str | None = None
    sold_at: datetime | None = None
    out_of_stock_at: datetime | None = None
    removed_at: datetime | None = None
    created_at: datetime | None = None


class InventoryItemDetailOut(InventoryItemOut):
    listings: list[ChannelListingOut] = Field(default_factory=list)
    sales: list[SaleRecordOut] = Field(default_factory=list)


class InventoryItemListOut(BaseModel):
    items: list[InventoryItemOut]
    pagination: PaginationMeta


class ChannelActionOut(BaseModel):
    channel: str
    outcome: str
    action: str
    already: bool = False
    listing_ref: str | None = None
    offer_ref: str | None = None
    error: str | None = None
    listing_state: str | None = None
