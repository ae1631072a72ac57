from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_sync.core.errors import LifecycleTransitionError
from inventory_sync.db.base import Base

LIFECYCLE_ACTIVE = "active"
LIFECYCLE_OUT_OF_STOCK = "out_of_stock"
LIFECYCLE_SOLD = "sold"
LIFECYCLE_REMOVED = "removed"
LIFECYCLE_STATES = (LIFECYCLE_ACTIVE, LIFECYCLE_OUT_OF_STOCK, LIFECYCLE_SOLD, LIFECYCLE_REMOVED)


class InventoryItem(Base):
    """
    One physical piece (or small fixed batch) offered across channels.
    Rows are never deleted; a piece that left every channel ends in "removed".
    """
    __tablename__ = "inventory_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    code: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    seller_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    is_small_batch: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")

    lifecycle_state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LIFECYCLE_ACTIVE,
        server_default=LIFECYCLE_ACTIVE,
    )
    removal_incomplete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    removal_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    sold_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    out_of_stock_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    removed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    realized_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    last_applied_transaction_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    last_sale_channel: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # channel references; the marketplace SKU is the item code
    pos_item_ref: Mapped[Optional[str]] = mapped_column(String(80), nullable=True, index=True)
    pos_variation_ref: Mapped[Optional[str]] = mapped_column(String(80), nullable=True, index=True)
    pos_catalog_ref: Mapped[Optional[str]] = mapped_column(String(80), nullable=True, index=True)
    market_listing_ref: Mapped[Optional[str]] = mapped_column(String(80), nullable=True, index=True)
    market_offer_ref: Mapped[Optional[str]] = mapped_column(String(80), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        Index("ix_inventory_items_state_removal", "lifecycle_state", "removal_incomplete"),
        Index("ix_inventory_items_code_created_at", "code", "created_at"),
    )

    def record_units_sold(
        self,
        units: int,
        *,
        transaction_id: str,
        channel_name: str,
        realized_price: Decimal | None = None,
        at: datetime | None = None,
    ) -> bool:
        """Decrement stock (floored at zero) and return True when the item just reached zero."""
        if units < 1:
            raise ValueError("units must be >= 1")
        now = at or datetime.now(timezone.utc)
        previous = self.quantity or 0
        self.quantity = max(0, previous - units)
        self.last_applied_transaction_id = transaction_id
        self.last_sale_channel = channel_name
        if realized_price is not None:
            self.realized_price = realized_price

        if self.quantity > 0 or previous == 0:
            return False
        if self.lifecycle_state != LIFECYCLE_ACTIVE:
            # already at zero in a terminal state; the count was stale
            return False

        if self.is_small_batch:
            self.lifecycle_state = LIFECYCLE_OUT_OF_STOCK
            self.out_of_stock_at = now
        else:
            self.lifecycle_state = LIFECYCLE_SOLD
            self.sold_at = now
        return True

    def mark_removed(self, *, at: datetime | None = None) -> None:
        if self.lifecycle_state == LIFECYCLE_REMOVED:
            return
        if self.lifecycle_state not in {LIFECYCLE_SOLD, LIFECYCLE_OUT_OF_STOCK}:
            raise LifecycleTransitionError(self.lifecycle_state, LIFECYCLE_REMOVED)
        self.lifecycle_state = LIFECYCLE_REMOVED
        self.removed_at = at or datetime.now(timezone.utc)
        self.removal_incomplete = False

    def restock(self, quantity: int) -> None:
        if quantity < 1:
            raise ValueError("quantity must be >= 1")
        if not self.is_small_batch or self.lifecycle_state != LIFECYCLE_OUT_OF_STOCK:
            raise LifecycleTransitionError(self.lifecycle_state, LIFECYCLE_ACTIVE)
        self.quantity = quantity
        self.lifecycle_state = LIFECYCLE_ACTIVE
        self.out_of_stock_at = None
        self.removal_incomplete = False
        self.removal_attempts = 0
