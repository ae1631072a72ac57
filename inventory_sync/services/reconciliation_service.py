"""
Catch-up path for sales whose webhooks never arrived.

Pulls completed POS orders for a closed-at window and runs each one through
the same pipeline as webhooks. The ledger's uniqueness guard makes
overlapping windows and repeated runs safe.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from inventory_sync.core.config import settings
from inventory_sync.core.errors import ChannelApiError, ChannelNotConfiguredError, LedgerUnavailableError
from inventory_sync.core.id_utils import generate_shortuuid
from inventory_sync.core.observability import log_event
from inventory_sync.models.reconciliation import ReconciliationRun
from inventory_sync.services.pos_client import PosClient
from inventory_sync.services.removal_service import retry_incomplete_removals
from inventory_sync.services.sale_pipeline import TransactionOutcome, process_transaction
from inventory_sync.services.webhook_service import order_to_transaction

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_ABORTED = "aborted"
RUN_FAILED = "failed"


@dataclass
class ReconciliationSummary:
    run_id: str
    status: str
    transactions: int = 0
    line_items: int = 0
    matched: int = 0
    applied: int = 0
    unmatched: int = 0
    category_mismatched: int = 0
    already_applied: int = 0
    other_seller: int = 0
    removal_incomplete: int = 0
    error: str | None = None

    def add(self, outcome: TransactionOutcome) -> None:
        self.transactions += 1
        self.line_items += outcome.processed
        self.matched += outcome.matched
        self.applied += outcome.applied
        self.unmatched += outcome.unmatched
        self.category_mismatched += outcome.category_mismatched
        self.already_applied += outcome.already_applied
        self.other_seller += outcome.other_seller
        self.removal_incomplete += outcome.removal_incomplete

    def as_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "transactions": self.transactions,
            "line_items": self.line_items,
            "matched": self.matched,
            "applied": self.applied,
            "unmatched": self.unmatched,
            "category_mismatched": self.category_mismatched,
            "already_applied": self.already_applied,
            "other_seller": self.other_seller,
            "removal_incomplete": self.removal_incomplete,
            "error": self.error,
        }


def default_window(now: datetime | None = None) -> tuple[datetime, datetime]:
    end = now or datetime.now(timezone.utc)
    return end - timedelta(hours=settings.reconcile_default_window_hours), end


def _save_progress(db: Session, run: ReconciliationRun, summary: ReconciliationSummary) -> None:
    run.status = summary.status
    run.transactions = summary.transactions
    run.line_items = summary.line_items
    run.matched = summary.matched
    run.applied = summary.applied
    run.unmatched = summary.unmatched
    run.category_mismatched = summary.category_mismatched
    run.already_applied = summary.already_applied
    run.other_seller = summary.other_seller
    run.removal_incomplete = summary.removal_incomplete
    run.error = summary.error
    if summary.status != RUN_RUNNING:
        run.finished_at = datetime.now(timezone.utc)
    db.commit()


def reconcile(
    db: Session,
    *,
    window_start: datetime,
    window_end: datetime,
    seller_code: str | None = None,
    pos_client: PosClient | None = None,
    should_abort: Callable[[], bool] | None = None,
) -> ReconciliationSummary:
    """
    Apply every completed POS order closed within the window that the ledger has not seen.
    Commits after each transaction so an abort or crash keeps the work done so far.
    With seller_code set every line is still resolved; lines that land on another
    seller's piece are counted as other_seller and left untouched.
    """
    if window_start >= window_end:
        raise ValueError("window_start must be before window_end")
    client = pos_client or PosClient()
    seller = seller_code.strip().upper() if seller_code else None

    run = ReconciliationRun(
        id=generate_shortuuid(),
        window_start=window_start,
        window_end=window_end,
        seller_code=seller,
        status=RUN_RUNNING,
    )
    db.add(run)
    db.commit()
    summary = ReconciliationSummary(run_id=run.id, status=RUN_RUNNING)
    log_event("reconcile.started", run_id=run.id, window_start=window_start, window_end=window_end, seller_code=seller)

    try:
        if not client.is_configured():
            raise ChannelNotConfiguredError("pos")
        for order in client.search_completed_orders(window_start, window_end):
            if should_abort is not None and should_abort():
                summary.status = RUN_ABORTED
                log_event("reconcile.aborted", level=logging.WARNING, run_id=run.id, transactions=summary.transactions)
                break
            if not order.get("id") or order.get("state", "COMPLETED") != "COMPLETED":
                continue
            transaction = order_to_transaction(order)
            if seller:
                transaction = transaction.model_copy(update={"seller_code": seller})
            summary.add(process_transaction(db, transaction, parent_lookup=client.parent_item_id))
            _save_progress(db, db.get(ReconciliationRun, run.id), summary)
        else:
            summary.status = RUN_COMPLETED
    except (ChannelApiError, ChannelNotConfiguredError, LedgerUnavailableError) as exc:
        db.rollback()
        summary.status = RUN_FAILED
        summary.error = str(exc)
        log_event("reconcile.failed", level=logging.ERROR, run_id=run.id, error=str(exc))

    if summary.status == RUN_COMPLETED:
        retry_incomplete_removals(db)

    _save_progress(db, db.get(ReconciliationRun, run.id), summary)
    log_event("reconcile.completed", **summary.as_dict())
    return summary
