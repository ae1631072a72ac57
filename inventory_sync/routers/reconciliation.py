from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_sync.core.api_docs import error_responses
from inventory_sync.core.deps import get_db
from inventory_sync.core.observability import log_event
from inventory_sync.core.permissions import READ_ROLES, WRITE_ROLES, require_operator_roles
from inventory_sync.models.reconciliation import ReconciliationRun
from inventory_sync.schemas.common import PaginationMeta
from inventory_sync.schemas.reconciliation import (
    ReconciliationRunCreate,
    ReconciliationRunListOut,
    ReconciliationRunOut,
    RemovalRetryOut,
)
from inventory_sync.services.reconciliation_service import default_window, reconcile
from inventory_sync.services.removal_service import retry_incomplete_removals

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _run_out(run: ReconciliationRun) -> ReconciliationRunOut:
    return ReconciliationRunOut(
        id=run.id,
        window_start=run.window_start,
        window_end=run.window_end,
        seller_code=run.seller_code,
        status=run.status,
        transactions=run.transactions,
        line_items=run.line_items,
        matched=run.matched,
        applied=run.applied,
        unmatched=run.unmatched,
        category_mismatched=run.category_mismatched,
        already_applied=run.already_applied,
        other_seller=run.other_seller,
        removal_incomplete=run.removal_incomplete,
        error=run.error,
        started_at=run.started_at,
        finished_at=run.finished_at,
    )


@router.post(
    "/runs",
    response_model=ReconciliationRunOut,
    status_code=201,
    summary="Run a reconciliation pass over a closed-at window",
    responses=error_responses(400, 401, 403, 422, 500, path="/reconciliation/runs"),
)
def create_run(
    payload: ReconciliationRunCreate,
    db: Session = Depends(get_db),
    operator=Depends(require_operator_roles(*WRITE_ROLES)),
):
    default_start, default_end = default_window()
    window_start = _as_utc(payload.window_start) or default_start
    window_end = _as_utc(payload.window_end) or default_end
    if window_start >= window_end:
        raise HTTPException(status_code=400, detail="window_start must be before window_end")

    log_event("reconcile.requested", operator=operator.subject, seller_code=payload.seller_code)
    summary = reconcile(
        db,
        window_start=window_start,
        window_end=window_end,
        seller_code=payload.seller_code,
    )
    run = db.get(ReconciliationRun, summary.run_id)
    return _run_out(run)


@router.get(
    "/runs",
    response_model=ReconciliationRunListOut,
    summary="List reconciliation runs",
    responses=error_responses(401, 403, 422, 500, path="/reconciliation/runs"),
)
def list_runs(
    status: str | None = Query(default=None, description="Run status filter"),
    limit: int = Query(default=20, ge=1, le=100, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
    operator=Depends(require_operator_roles(*READ_ROLES)),
):
    count_stmt = select(func.count(ReconciliationRun.id))
    stmt = select(ReconciliationRun)
    if status:
        count_stmt = count_stmt.where(ReconciliationRun.status == status)
        stmt = stmt.where(ReconciliationRun.status == status)

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(
        stmt.order_by(ReconciliationRun.started_at.desc(), ReconciliationRun.id.desc()).offset(offset).limit(limit)
    ).scalars().all()
    items = [_run_out(row) for row in rows]
    count = len(items)
    return ReconciliationRunListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.post(
    "/removals/retry",
    response_model=RemovalRetryOut,
    summary="Retry channel removals left incomplete",
    responses=error_responses(401, 403, 500, path="/reconciliation/removals/retry"),
)
def retry_removals(
    max_attempts: int | None = Query(default=None, ge=1, le=50),
    db: Session = Depends(get_db),
    operator=Depends(require_operator_roles(*WRITE_ROLES)),
):
    summary = retry_incomplete_removals(db, max_attempts=max_attempts)
    log_event("removal.retry_requested", operator=operator.subject, considered=summary.considered)
    return RemovalRetryOut(
        considered=summary.considered,
        removed=summary.removed,
        still_incomplete=summary.still_incomplete,
        exhausted=summary.exhausted,
    )
