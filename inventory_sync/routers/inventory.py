from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_sync.core.api_docs import error_responses
from inventory_sync.core.deps import get_db
from inventory_sync.core.errors import LifecycleTransitionError, ListingTransitionError
from inventory_sync.core.id_utils import generate_shortuuid
from inventory_sync.core.money import to_money
from inventory_sync.core.observability import log_event
from inventory_sync.core.permissions import READ_ROLES, WRITE_ROLES, require_operator_roles
from inventory_sync.models.inventory import LIFECYCLE_ACTIVE, LIFECYCLE_STATES, InventoryItem
from inventory_sync.models.listing import LISTING_LISTED, LISTING_NOT_LISTED, LISTING_WITHDRAWN, ChannelListing
from inventory_sync.models.sales import SaleRecord
from inventory_sync.schemas.common import PaginationMeta
from inventory_sync.schemas.inventory import (
    ChannelActionOut,
    ChannelListingOut,
    InventoryItemCreate,
    InventoryItemDetailOut,
    InventoryItemListOut,
    InventoryItemOut,
    QuantityUpdateIn,
    RestockIn,
    SaleRecordOut,
)
from inventory_sync.services.channel_adapters import ChannelAdapter, ChannelResult, get_channel_adapter
from inventory_sync.services.removal_service import get_or_create_listing

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _get_item(db: Session, item_id: str) -> InventoryItem:
    item = db.get(InventoryItem, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return item


def _get_adapter(channel: str) -> ChannelAdapter:
    try:
        return get_channel_adapter(channel)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _item_out(item: InventoryItem, model=InventoryItemOut, **extra):
    return model(
        id=item.id,
        code=item.code,
        name=item.name,
        category=item.category,
        seller_code=item.seller_code,
        price=float(item.price),
        quantity=item.quantity,
        is_small_batch=item.is_small_batch,
        lifecycle_state=item.lifecycle_state,
        removal_incomplete=item.removal_incomplete,
        removal_attempts=item.removal_attempts,
        realized_price=float(item.realized_price) if item.realized_price is not None else None,
        last_applied_transaction_id=item.last_applied_transaction_id,
        last_sale_channel=item.last_sale_channel,
        pos_item_ref=item.pos_item_ref,
        pos_variation_ref=item.pos_variation_ref,
        pos_catalog_ref=item.pos_catalog_ref,
        market_listing_ref=item.market_listing_ref,
        market_offer_ref=item.market_offer_ref,
        sold_at=item.sold_at,
        out_of_stock_at=item.out_of_stock_at,
        removed_at=item.removed_at,
        created_at=item.created_at,
        **extra,
    )


def _listing_out(listing: ChannelListing) -> ChannelListingOut:
    return ChannelListingOut(
        channel=listing.channel,
        state=listing.state,
        listing_ref=listing.listing_ref,
        offer_ref=listing.offer_ref,
        last_error=listing.last_error,
        last_error_kind=listing.last_error_kind,
        attempts=listing.attempts,
        listed_at=listing.listed_at,
        withdrawn_at=listing.withdrawn_at,
    )


def _action_out(channel: str, result: ChannelResult, listing: ChannelListing) -> ChannelActionOut:
    return ChannelActionOut(
        channel=channel,
        outcome=result.outcome,
        action=result.action,
        already=result.already,
        listing_ref=result.listing_ref,
        offer_ref=result.offer_ref,
        error=result.error,
        listing_state=listing.state,
    )


def _fail_channel_call(db: Session, listing: ChannelListing, result: ChannelResult) -> None:
    listing.record_failure(result.error, result.outcome)
    db.commit()
    log_event("listing.channel_failed", item_id=listing.item_id, channel=listing.channel, error=result.error)
    raise HTTPException(
        status_code=502,
        detail=f"{listing.channel} {result.action} failed ({result.outcome}): {result.error}",
    )


@router.post(
    "/items",
    response_model=InventoryItemOut,
    status_code=201,
    summary="Intake a new piece",
    responses=error_responses(400, 401, 403, 422, 500),
)
def create_item(
    payload: InventoryItemCreate,
    db: Session = Depends(get_db),
    operator=Depends(require_operator_roles(*WRITE_ROLES)),
):
    item = InventoryItem(
        id=generate_shortuuid(),
        code=payload.code,
        name=payload.name.strip(),
        category=payload.category,
        seller_code=payload.seller_code,
        price=to_money(payload.price),
        quantity=payload.quantity if payload.is_small_batch else 1,
        is_small_batch=payload.is_small_batch,
        lifecycle_state=LIFECYCLE_ACTIVE,
        removal_incomplete=False,
        removal_attempts=0,
        pos_item_ref=payload.pos_item_ref,
        pos_variation_ref=payload.pos_variation_ref,
        pos_catalog_ref=payload.pos_catalog_ref,
        market_listing_ref=payload.market_listing_ref,
        market_offer_ref=payload.market_offer_ref,
    )
    db.add(item)
    db.flush()
    for channel in ("pos", "marketplace"):
        get_or_create_listing(db, item, channel)
    db.commit()
    db.refresh(item)
    log_event("inventory.item_created", item_id=item.id, code=item.code, operator=operator.subject)
    return _item_out(item)


@router.get(
    "/items",
    response_model=InventoryItemListOut,
    summary="List inventory items",
    responses=error_responses(401, 403, 422, 500),
)
def list_items(
    state: str | None = Query(default=None, description="Lifecycle state filter"),
    code: str | None = Query(default=None, description="Exact code filter"),
    removal_incomplete: bool | None = Query(default=None, description="Only items whose removal is incomplete"),
    limit: int = Query(default=50, ge=1, le=200, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
    operator=Depends(require_operator_roles(*READ_ROLES)),
):
    if state and state not in LIFECYCLE_STATES:
        raise HTTPException(status_code=400, detail=f"Unknown lifecycle state '{state}'")

    count_stmt = select(func.count(InventoryItem.id))
    stmt = select(InventoryItem)
    if state:
        count_stmt = count_stmt.where(InventoryItem.lifecycle_state == state)
        stmt = stmt.where(InventoryItem.lifecycle_state == state)
    if code:
        count_stmt = count_stmt.where(InventoryItem.code == code.strip().upper())
        stmt = stmt.where(InventoryItem.code == code.strip().upper())
    if removal_incomplete is not None:
        count_stmt = count_stmt.where(InventoryItem.removal_incomplete.is_(removal_incomplete))
        stmt = stmt.where(InventoryItem.removal_incomplete.is_(removal_incomplete))

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(
        stmt.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc()).offset(offset).limit(limit)
    ).scalars().all()
    items = [_item_out(row) for row in rows]
    count = len(items)
    return InventoryItemListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.get(
    "/items/{item_id}",
    response_model=InventoryItemDetailOut,
    summary="Get an item with its listings and sales",
    responses=error_responses(401, 403, 404, 500),
)
def get_item(
    item_id: str,
    db: Session = Depends(get_db),
    operator=Depends(require_operator_roles(*READ_ROLES)),
):
    item = _get_item(db, item_id)
    listings = db.execute(
        select(ChannelListing).where(ChannelListing.item_id == item.id).order_by(ChannelListing.channel)
    ).scalars().all()
    sales = db.execute(
        select(SaleRecord)
        .where(SaleRecord.item_id == item.id)
        .order_by(SaleRecord.sold_at.asc(), SaleRecord.unit_index.asc())
    ).scalars().all()
    return _item_out(
        item,
        InventoryItemDetailOut,
        listings=[_listing_out(listing) for listing in listings],
        sales=[
            SaleRecordOut(
                transaction_id=sale.transaction_id,
                unit_index=sale.unit_index,
                channel_name=sale.channel_name,
                realized_price=float(sale.realized_price) if sale.realized_price is not None else None,
                sold_at=sale.sold_at,
            )
            for sale in sales
        ],
    )


@router.post(
    "/items/{item_id}/restock",
    response_model=InventoryItemOut,
    summary="Restock a small-batch item that ran out",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def restock_item(
    item_id: str,
    payload: RestockIn,
    db: Session = Depends(get_db),
    operator=Depends(require_operator_roles(*WRITE_ROLES)),
):
    item = _get_item(db, item_id)
    try:
        item.restock(payload.quantity)
    except LifecycleTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    db.commit()
    db.refresh(item)
    log_event("inventory.item_restocked", item_id=item.id, quantity=item.quantity, operator=operator.subject)
    return _item_out(item)


@router.post(
    "/items/{item_id}/listings/{channel}/publish",
    response_model=ChannelActionOut,
    summary="Publish an item on a channel",
    responses=error_responses(401, 403, 404, 409, 502, 500),
)
def publish_listing(
    item_id: str,
    channel: str,
    db: Session = Depends(get_db),
    operator=Depends(require_operator_roles(*WRITE_ROLES)),
):
    item = _get_item(db, item_id)
    adapter = _get_adapter(channel)
    if item.lifecycle_state != LIFECYCLE_ACTIVE:
        raise HTTPException(status_code=409, detail="Only active items can be published")
    if not adapter.is_configured():
        raise HTTPException(status_code=409, detail=f"Channel '{adapter.name}' is not configured")
    listing = get_or_create_listing(db, item, adapter.name)
    if listing.state == LISTING_WITHDRAWN:
        raise HTTPException(
            status_code=409,
            detail=str(ListingTransitionError(adapter.name, listing.state, LISTING_LISTED)),
        )

    result = adapter.publish(item)
    if not result.ok:
        _fail_channel_call(db, listing, result)
    listing.mark_listed(listing_ref=result.listing_ref, offer_ref=result.offer_ref)
    db.commit()
    log_event("listing.published", item_id=item.id, channel=adapter.name, operator=operator.subject)
    return _action_out(adapter.name, result, listing)


@router.post(
    "/items/{item_id}/listings/{channel}/withdraw",
    response_model=ChannelActionOut,
    summary="Withdraw an item from a channel",
    responses=error_responses(401, 403, 404, 409, 502, 500),
)
def withdraw_listing(
    item_id: str,
    channel: str,
    db: Session = Depends(get_db),
    operator=Depends(require_operator_roles(*WRITE_ROLES)),
):
    item = _get_item(db, item_id)
    adapter = _get_adapter(channel)
    listing = get_or_create_listing(db, item, adapter.name)
    if listing.state == LISTING_WITHDRAWN:
        db.commit()
        return _action_out(adapter.name, ChannelResult.success("withdraw", already=True), listing)
    if listing.state == LISTING_NOT_LISTED:
        raise HTTPException(
            status_code=409,
            detail=str(ListingTransitionError(adapter.name, listing.state, LISTING_WITHDRAWN)),
        )

    result = adapter.withdraw(item)
    if not result.ok:
        _fail_channel_call(db, listing, result)
    listing.mark_withdrawn()
    db.commit()
    log_event("listing.withdrawn", item_id=item.id, channel=adapter.name, operator=operator.subject)
    return _action_out(adapter.name, result, listing)


@router.put(
    "/items/{item_id}/listings/{channel}/quantity",
    response_model=ChannelActionOut,
    summary="Push a quantity to a channel",
    responses=error_responses(401, 403, 404, 409, 422, 502, 500),
)
def update_listing_quantity(
    item_id: str,
    channel: str,
    payload: QuantityUpdateIn,
    db: Session = Depends(get_db),
    operator=Depends(require_operator_roles(*WRITE_ROLES)),
):
    item = _get_item(db, item_id)
    adapter = _get_adapter(channel)
    listing = get_or_create_listing(db, item, adapter.name)
    if listing.state != LISTING_LISTED:
        raise HTTPException(status_code=409, detail=f"Listing on '{adapter.name}' is {listing.state}")

    result = adapter.update_quantity(item, payload.quantity)
    if not result.ok:
        _fail_channel_call(db, listing, result)
    if payload.quantity == 0:
        listing.mark_withdrawn()
    db.commit()
    log_event(
        "listing.quantity_updated",
        item_id=item.id,
        channel=adapter.name,
        quantity=payload.quantity,
        operator=operator.subject,
    )
    return _action_out(adapter.name, result, listing)
