from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from inventory_sync.core.errors import ListingTransitionError
from inventory_sync.db.base import Base

LISTING_NOT_LISTED = "not_listed"
LISTING_LISTED = "listed"
LISTING_WITHDRAWN = "withdrawn"


class ChannelListing(Base):
    __tablename__ = "channel_listings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("inventory_items.id"), nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(30), nullable=False)
    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LISTING_NOT_LISTED,
        server_default=LISTING_NOT_LISTED,
    )
    listing_ref: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    offer_ref: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    last_error_kind: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    listed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    withdrawn_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("item_id", "channel", name="uq_channel_listings_item_channel"),
    )

    def mark_listed(self, *, listing_ref: str | None = None, offer_ref: str | None = None) -> None:
        if self.state == LISTING_WITHDRAWN:
            raise ListingTransitionError(self.channel, self.state, LISTING_LISTED)
        self.state = LISTING_LISTED
        if listing_ref:
            self.listing_ref = listing_ref
        if offer_ref:
            self.offer_ref = offer_ref
        self.listed_at = self.listed_at or datetime.now(timezone.utc)
        self.last_error = None
        self.last_error_kind = None

    def mark_withdrawn(self) -> None:
        if self.state == LISTING_WITHDRAWN:
            return
        if self.state != LISTING_LISTED:
            raise ListingTransitionError(self.channel, self.state, LISTING_WITHDRAWN)
        self.state = LISTING_WITHDRAWN
        self.withdrawn_at = datetime.now(timezone.utc)
        self.last_error = None
        self.last_error_kind = None

    def record_failure(self, error: str | None, kind: str) -> None:
        self.attempts = (self.attempts or 0) + 1
        self.last_error = (error or "")[:500] or None
        self.last_error_kind = kind
