import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_sync.core.observability import log_event
from inventory_sync.models.inventory import InventoryItem
from inventory_sync.schemas.transactions import ExternalTransaction, LineItem, ResolutionContext
from inventory_sync.services.ledger import apply_sale
from inventory_sync.services.removal_service import remove_from_other_channels
from inventory_sync.services.resolver import CATEGORY_MISMATCH, UNMATCHED, ParentLookup, resolve_line_item, seller_prefix

OTHER_SELLER = "other_seller"


@dataclass(frozen=True)
class LineItemOutcome:
    status: str
    item_id: str | None = None
    applied: bool = False
    already_applied: bool = False
    removal_incomplete: bool = False


@dataclass
class TransactionOutcome:
    processed: int = 0
    matched: int = 0
    applied: int = 0
    already_applied: int = 0
    unmatched: int = 0
    category_mismatched: int = 0
    other_seller: int = 0
    removal_incomplete: int = 0

    def add(self, outcome: LineItemOutcome) -> None:
        self.processed += 1
        if outcome.status == UNMATCHED:
            self.unmatched += 1
            return
        if outcome.status == CATEGORY_MISMATCH:
            self.category_mismatched += 1
            return
        if outcome.status == OTHER_SELLER:
            self.other_seller += 1
            return
        self.matched += 1
        if outcome.applied:
            self.applied += 1
        if outcome.already_applied:
            self.already_applied += 1
        if outcome.removal_incomplete:
            self.removal_incomplete += 1


def process_line_item(
    db: Session,
    line_item: LineItem,
    context: ResolutionContext,
    *,
    transaction: ExternalTransaction,
    parent_lookup: ParentLookup | None = None,
) -> LineItemOutcome:
    """
    Resolve, apply and propagate one sold line.
    Expects a session with no pending changes: the ledger commits or rolls back on its own.
    LedgerUnavailableError propagates to the caller.
    """
    resolution = resolve_line_item(db, line_item, context, parent_lookup=parent_lookup)
    seller = context.seller_code
    if seller and resolution.item_id and _belongs_to_other_seller(db, resolution.item_id, seller):
        log_event(
            "pipeline.other_seller_skipped",
            item_id=resolution.item_id,
            seller_code=seller,
            transaction_id=transaction.external_id,
        )
        return LineItemOutcome(status=OTHER_SELLER, item_id=resolution.item_id)
    if not resolution.matched:
        return LineItemOutcome(status=resolution.status, item_id=resolution.item_id)

    result = apply_sale(
        db,
        item_id=resolution.item_id,
        transaction_id=transaction.external_id,
        channel_name=context.channel_name,
        units_sold=line_item.quantity_sold,
        realized_price_per_unit=line_item.unit_price,
        sold_at=transaction.closed_at,
    )
    if not result.applied:
        return LineItemOutcome(status=resolution.status, item_id=resolution.item_id, already_applied=True)

    removal_incomplete = False
    if result.transitioned_to_zero:
        item = db.get(InventoryItem, resolution.item_id)
        try:
            report = remove_from_other_channels(db, item, context.channel_name)
            removal_incomplete = report.incomplete
        except SQLAlchemyError as exc:
            # the sale is committed; a later retry picks the removal up
            db.rollback()
            removal_incomplete = True
            log_event(
                "removal.not_recorded",
                level=logging.ERROR,
                item_id=resolution.item_id,
                error=str(exc),
            )
            _flag_removal_incomplete(db, resolution.item_id)

    return LineItemOutcome(
        status=resolution.status,
        item_id=resolution.item_id,
        applied=True,
        removal_incomplete=removal_incomplete,
    )


def _belongs_to_other_seller(db: Session, item_id: str, seller_code: str) -> bool:
    """Pieces with no known owner (numeric codes, no seller_code) stay in scope for every seller."""
    item = db.get(InventoryItem, item_id)
    if item is None:
        return False
    owner = item.seller_code or seller_prefix(item.code)
    return bool(owner) and owner.upper() != seller_code.upper()


def _flag_removal_incomplete(db: Session, item_id: str) -> None:
    try:
        item = db.get(InventoryItem, item_id)
        if item is not None:
            item.removal_incomplete = True
            db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        log_event("removal.flag_failed", level=logging.ERROR, item_id=item_id, error=str(exc))


def process_transaction(
    db: Session,
    transaction: ExternalTransaction,
    *,
    parent_lookup: ParentLookup | None = None,
) -> TransactionOutcome:
    context = ResolutionContext(channel_name=transaction.channel_name, seller_code=transaction.seller_code)
    outcome = TransactionOutcome()
    for line_item in transaction.line_items:
        outcome.add(
            process_line_item(
                db,
                line_item,
                context,
                transaction=transaction,
                parent_lookup=parent_lookup,
            )
        )
    log_event(
        "pipeline.transaction_processed",
        transaction_id=transaction.external_id,
        channel=transaction.channel_name,
        processed=outcome.processed,
        applied=outcome.applied,
        already_applied=outcome.already_applied,
        unmatched=outcome.unmatched,
        category_mismatched=outcome.category_mismatched,
        other_seller=outcome.other_seller,
        removal_incomplete=outcome.removal_incomplete,
    )
    return outcome
