from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from inventory_sync.schemas.common import PaginationMeta


class ReconciliationRunCreate(BaseModel):
    window_start: datetime | None = None
    window_end: datetime | None = None
    seller_code: str | None = Field(default=None, max_length=10)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "window_start": "2026-02-01T00:00:00Z",
                "window_end": "2026-02-02T00:00:00Z",
                "seller_code": "AB",
            }
        }
    )

    @model_validator(mode="after")
    def validate_window(self) -> "ReconciliationRunCreate":
        if self.window_start and self.window_end and self.window_start >= self.window_end:
            raise ValueError("window_start must be before window_end")
        return self


class ReconciliationRunOut(BaseModel):
    id: str
    window_start: datetime
    window_end: datetime
    seller_code: str | None = None
    status: str
    transactions: int
    line_items: int
    matched: int
    applied: int
    unmatched: int
    category_mismatched: int
    already_applied: int
    other_seller: int = 0
    removal_incomplete: int
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


class ReconciliationRunListOut(BaseModel):
    items: list[ReconciliationRunOut]
    pagination: PaginationMeta


class RemovalRetryOut(BaseModel):
    considered: int
    removed: int
    still_incomplete: int
    exhausted: int
