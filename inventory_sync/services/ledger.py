"""
Ledger writes for sales.

A sale is keyed by (item_id, transaction_id). The sale_records unique
constraint is the only guard against double application, so redelivered
webhooks and overlapping reconciliation windows are safe without locks.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_sync.core.errors import ItemNotFoundError, LedgerUnavailableError
from inventory_sync.core.id_utils import generate_shortuuid
from inventory_sync.core.money import to_money
from inventory_sync.core.observability import log_event
from inventory_sync.models.inventory import InventoryItem
from inventory_sync.models.sales import SaleRecord


@dataclass(frozen=True)
class LedgerResult:
    applied: bool
    new_quantity: int
    lifecycle_state: str
    transitioned_to_zero: bool = False


def _already_applied(db: Session, item_id: str, transaction_id: str) -> bool:
    return db.execute(
        select(SaleRecord.id)
        .where(SaleRecord.item_id == item_id, SaleRecord.transaction_id == transaction_id)
        .limit(1)
    ).first() is not None


def apply_sale(
    db: Session,
    *,
    item_id: str,
    transaction_id: str,
    channel_name: str,
    units_sold: int,
    realized_price_per_unit: Decimal | float | None,
    sold_at: datetime | None = None,
) -> LedgerResult:
    """Record a sale once and commit it. Never calls channel adapters."""
    if units_sold < 1:
        raise ValueError("units_sold must be >= 1")
    sold_at = sold_at or datetime.now(timezone.utc)
    unit_price = to_money(realized_price_per_unit) if realized_price_per_unit is not None else None

    try:
        item = db.execute(
            select(InventoryItem).where(InventoryItem.id == item_id).with_for_update()
        ).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(item_id)

        if _already_applied(db, item_id, transaction_id):
            db.rollback()
            log_event("ledger.duplicate", item_id=item_id, transaction_id=transaction_id, channel=channel_name)
            return LedgerResult(applied=False, new_quantity=item.quantity, lifecycle_state=item.lifecycle_state)

        try:
            with db.begin_nested():
                # unit 0 first: the constraint on it rejects a concurrent duplicate
                for unit_index in range(units_sold):
                    db.add(
                        SaleRecord(
                            id=generate_shortuuid(),
                            item_id=item_id,
                            transaction_id=transaction_id,
                            unit_index=unit_index,
                            channel_name=channel_name,
                            realized_price=unit_price,
                            sold_at=sold_at,
                        )
                    )
                    db.flush()
                transitioned = item.record_units_sold(
                    units_sold,
                    transaction_id=transaction_id,
                    channel_name=channel_name,
                    realized_price=unit_price,
                    at=sold_at,
                )
                db.flush()
        except IntegrityError:
            db.rollback()
            log_event("ledger.duplicate", item_id=item_id, transaction_id=transaction_id, channel=channel_name)
            item = db.get(InventoryItem, item_id)
            return LedgerResult(applied=False, new_quantity=item.quantity, lifecycle_state=item.lifecycle_state)

        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        log_event(
            "ledger.unavailable",
            level=logging.ERROR,
            item_id=item_id,
            transaction_id=transaction_id,
            error=str(exc),
        )
        raise LedgerUnavailableError(f"Could not record sale {transaction_id} for item {item_id}") from exc

    log_event(
        "ledger.applied",
        item_id=item_id,
        transaction_id=transaction_id,
        channel=channel_name,
        units=units_sold,
        new_quantity=item.quantity,
        lifecycle_state=item.lifecycle_state,
        transitioned_to_zero=transitioned,
    )
    return LedgerResult(
        applied=True,
        new_quantity=item.quantity,
        lifecycle_state=item.lifecycle_state,
        transitioned_to_zero=transitioned,
    )
