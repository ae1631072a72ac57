import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_sync.core.config import settings
from inventory_sync.core.id_utils import generate_shortuuid
from inventory_sync.core.observability import log_event
from inventory_sync.models.inventory import (
    LIFECYCLE_OUT_OF_STOCK,
    LIFECYCLE_REMOVED,
    LIFECYCLE_SOLD,
    InventoryItem,
)
from inventory_sync.models.listing import LISTING_LISTED, LISTING_WITHDRAWN, ChannelListing
from inventory_sync.services.channel_adapters import (
    OUTCOME_PERMANENT,
    ChannelAdapter,
    ChannelResult,
    get_channel_adapters,
)


@dataclass
class RemovalReport:
    item_id: str
    attempted: list[str] = field(default_factory=list)
    withdrawn: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    removed: bool = False
    results: dict[str, ChannelResult] = field(default_factory=dict)

    @property
    def incomplete(self) -> bool:
        return bool(self.failed)


@dataclass
class RemovalRetrySummary:
    considered: int = 0
    removed: int = 0
    still_incomplete: int = 0
    exhausted: int = 0


def _refs_for(adapter_name: str, item: InventoryItem) -> tuple[str | None, str | None]:
    if adapter_name == "pos":
        return item.pos_item_ref, item.pos_variation_ref or item.pos_catalog_ref
    if adapter_name == "marketplace":
        return item.market_listing_ref, item.market_offer_ref
    return None, None


def get_or_create_listing(db: Session, item: InventoryItem, channel: str) -> ChannelListing:
    listing = db.execute(
        select(ChannelListing).where(ChannelListing.item_id == item.id, ChannelListing.channel == channel)
    ).scalar_one_or_none()
    if listing is not None:
        return listing
    listing_ref, offer_ref = _refs_for(channel, item)
    listing = ChannelListing(
        id=generate_shortuuid(),
        item_id=item.id,
        channel=channel,
        state=LISTING_LISTED if (listing_ref or offer_ref) else "not_listed",
        listing_ref=listing_ref,
        offer_ref=offer_ref,
        attempts=0,
    )
    db.add(listing)
    db.flush()
    return listing


def _withdraw_isolated(adapter: ChannelAdapter, item: InventoryItem) -> ChannelResult:
    try:
        return adapter.withdraw(item)
    except Exception as exc:  # one channel must not stop the others
        log_event(
            "removal.adapter_crashed",
            level=logging.ERROR,
            item_id=item.id,
            channel=adapter.name,
            error=str(exc),
        )
        return ChannelResult(outcome=OUTCOME_PERMANENT, action="withdraw", error=str(exc))


def remove_from_other_channels(db: Session, item: InventoryItem, originating_channel: str) -> RemovalReport:
    """
    Withdraw the item from every channel except the one it sold on, then commit.
    Failures are recorded on the listing and flag the item; the sale itself is never undone.
    """
    report = RemovalReport(item_id=item.id)
    for adapter in get_channel_adapters():
        if adapter.name == originating_channel or not adapter.has_reference(item):
            continue
        listing = get_or_create_listing(db, item, adapter.name)
        if listing.state == LISTING_WITHDRAWN:
            report.withdrawn.append(adapter.name)
            continue

        report.attempted.append(adapter.name)
        result = _withdraw_isolated(adapter, item)
        report.results[adapter.name] = result
        if result.ok:
            if listing.state != LISTING_LISTED:
                listing.state = LISTING_LISTED
            listing.mark_withdrawn()
            report.withdrawn.append(adapter.name)
            log_event("removal.channel_withdrawn", item_id=item.id, channel=adapter.name, already=result.already)
        else:
            listing.record_failure(result.error, result.outcome)
            report.failed.append(adapter.name)
            log_event(
                "removal.channel_failed",
                level=logging.ERROR,
                item_id=item.id,
                channel=adapter.name,
                outcome=result.outcome,
                error=result.error,
            )

    if report.attempted:
        item.removal_attempts = (item.removal_attempts or 0) + 1

    if report.failed:
        item.removal_incomplete = True
    elif item.lifecycle_state in {LIFECYCLE_SOLD, LIFECYCLE_OUT_OF_STOCK}:
        item.mark_removed(at=datetime.now(timezone.utc))
        report.removed = True
    elif item.lifecycle_state == LIFECYCLE_REMOVED:
        item.removal_incomplete = False
        report.removed = True

    db.commit()
    log_event(
        "removal.completed",
        item_id=item.id,
        originating_channel=originating_channel,
        attempted=report.attempted,
        withdrawn=report.withdrawn,
        failed=report.failed,
        removed=report.removed,
    )
    return report


def _has_permanent_failure(db: Session, item: InventoryItem) -> bool:
    return db.execute(
        select(ChannelListing.id)
        .where(
            ChannelListing.item_id == item.id,
            ChannelListing.state != LISTING_WITHDRAWN,
            ChannelListing.last_error_kind == OUTCOME_PERMANENT,
        )
        .limit(1)
    ).first() is not None


def retry_incomplete_removals(db: Session, max_attempts: int | None = None) -> RemovalRetrySummary:
    """Re-run removal for flagged items whose failures were retryable, within the attempt budget."""
    budget = max_attempts or settings.removal_max_attempts
    summary = RemovalRetrySummary()
    items = db.execute(
        select(InventoryItem)
        .where(
            InventoryItem.removal_incomplete.is_(True),
            InventoryItem.lifecycle_state.in_([LIFECYCLE_SOLD, LIFECYCLE_OUT_OF_STOCK]),
        )
        .order_by(InventoryItem.updated_at.asc())
    ).scalars().all()

    for item in items:
        summary.considered += 1
        if (item.removal_attempts or 0) >= budget or _has_permanent_failure(db, item):
            summary.exhausted += 1
            log_event(
                "removal.needs_manual_follow_up",
                level=logging.WARNING,
                item_id=item.id,
                attempts=item.removal_attempts,
            )
            continue
        report = remove_from_other_channels(db, item, item.last_sale_channel or "")
        if report.removed:
            summary.removed += 1
        else:
            summary.still_incomplete += 1

    log_event(
        "removal.retry_completed",
        considered=summary.considered,
        removed=summary.removed,
        still_incomplete=summary.still_incomplete,
        exhausted=summary.exhausted,
    )
    return summary
