from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class LineItem(BaseModel):
    catalog_ref: str | None = None
    display_name: str | None = None
    internal_ref: str | None = None
    quantity_sold: int = Field(default=1, ge=1)
    total_price: Decimal | None = Field(default=None, ge=0)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "catalog_ref": "VAR-123",
                "display_name": "AB12 - Manteau laine",
                "quantity_sold": 1,
                "total_price": 120.0,
            }
        }
    )

    @property
    def unit_price(self) -> Decimal | None:
        if self.total_price is None:
            return None
        return self.total_price / self.quantity_sold


class ExternalTransaction(BaseModel):
    external_id: str = Field(min_length=1, max_length=120)
    channel_name: str
    seller_code: str | None = None
    closed_at: datetime | None = None
    line_items: list[LineItem] = Field(default_factory=list)


class ResolutionContext(BaseModel):
    channel_name: str
    seller_code: str | None = None
