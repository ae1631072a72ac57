from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_sync.db.base import Base


class SaleRecord(Base):
    """
    One row per unit sold. Append-only.
    unit_index 0 is always written first, so (item_id, transaction_id) is applied at most once.
    """
    __tablename__ = "sale_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_items.id"), nullable=False, index=True)
    transaction_id: Mapped[str] = mapped_column(String(120), nullable=False)
    unit_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    channel_name: Mapped[str] = mapped_column(String(30), nullable=False)
    realized_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    sold_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "item_id",
            "transaction_id",
            "unit_index",
            name="uq_sale_records_item_transaction_unit",
        ),
        Index("ix_sale_records_channel_sold_at", "channel_name", "sold_at"),
    )
