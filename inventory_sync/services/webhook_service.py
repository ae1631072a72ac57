"""
Turns verified webhook payloads into ExternalTransactions and runs them
through the sale pipeline. Signature checks happen in the router before
anything here is called.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_sync.core.id_utils import generate_shortuuid
from inventory_sync.core.money import cents_to_money
from inventory_sync.core.observability import log_event
from inventory_sync.models.webhook import WebhookEvent
from inventory_sync.schemas.transactions import ExternalTransaction, LineItem
from inventory_sync.schemas.webhooks import WebhookAckOut
from inventory_sync.services.pos_client import PosClient
from inventory_sync.services.resolver import ParentLookup
from inventory_sync.services.sale_pipeline import TransactionOutcome, process_transaction

POS_ORDER_EVENTS = {"order.created", "order.updated"}
POS_PAYMENT_EVENTS = {"payment.created", "payment.updated"}
MARKETPLACE_SALE_TOPICS = {"MARKETPLACE.ORDER.PURCHASE", "ITEM_SOLD"}

STATUS_IGNORED = "ignored"
STATUS_ACKNOWLEDGED = "acknowledged"


@dataclass(frozen=True)
class ParsedEvent:
    event_id: str | None
    event_type: str | None
    transaction: ExternalTransaction | None = None
    ignored_reason: str | None = None


def _money_amount(money: Any) -> Decimal | None:
    if not isinstance(money, dict) or money.get("amount") is None:
        return None
    return cents_to_money(money["amount"])


def _parse_quantity(raw: Any) -> int:
    try:
        return max(1, int(Decimal(str(raw))))
    except (ArithmeticError, ValueError, TypeError):
        return 1


def order_to_transaction(order: dict) -> ExternalTransaction:
    """
    Map a POS order to a transaction. Orders created by the shop's own checkout
    carry metadata.productId and are attributed to the shop channel.
    """
    metadata = order.get("metadata") or {}
    product_ids = [p.strip() for p in str(metadata.get("productId") or "").split(",") if p.strip()]
    channel_name = "shop" if product_ids else "pos"

    line_items: list[LineItem] = []
    for index, line in enumerate(order.get("line_items") or []):
        line_items.append(
            LineItem(
                catalog_ref=line.get("catalog_object_id"),
                display_name=line.get("name"),
                internal_ref=product_ids[index] if index < len(product_ids) else None,
                quantity_sold=_parse_quantity(line.get("quantity")),
                total_price=_money_amount(line.get("total_money")),
            )
        )
    return ExternalTransaction(
        external_id=str(order.get("id") or ""),
        channel_name=channel_name,
        closed_at=order.get("closed_at"),
        line_items=line_items,
    )


def parse_pos_event(payload: dict, *, pos_client: PosClient) -> ParsedEvent:
    event_id = payload.get("event_id")
    event_type = payload.get("type")
    data_object = (payload.get("data") or {}).get("object") or {}

    if event_type in POS_ORDER_EVENTS:
        order = data_object.get("order")
        if not order:
            return ParsedEvent(event_id, event_type, ignored_reason="Event carries no order")
    elif event_type in POS_PAYMENT_EVENTS:
        payment = data_object.get("payment") or {}
        if payment.get("status") != "COMPLETED":
            return ParsedEvent(event_id, event_type, ignored_reason="Payment not completed")
        if not payment.get("order_id"):
            return ParsedEvent(event_id, event_type, ignored_reason="Payment has no order")
        order = pos_client.retrieve_order(payment["order_id"])
    else:
        return ParsedEvent(event_id, event_type, ignored_reason="Event type not handled")

    if order.get("state") != "COMPLETED":
        return ParsedEvent(event_id, event_type, ignored_reason="Order not completed")
    if not order.get("id"):
        return ParsedEvent(event_id, event_type, ignored_reason="Order has no id")
    return ParsedEvent(event_id, event_type, transaction=order_to_transaction(order))


def parse_marketplace_event(payload: dict) -> ParsedEvent:
    metadata = payload.get("metadata") or {}
    topic = metadata.get("topic") or payload.get("topic")
    notification = payload.get("notification") or {}
    event_id = notification.get("notificationId") or payload.get("notificationId")
    if topic not in MARKETPLACE_SALE_TOPICS:
        return ParsedEvent(event_id, topic, ignored_reason="Topic not handled")

    resource = notification.get("data") or payload.get("resource") or payload
    transaction_id = resource.get("orderId") or event_id
    if not transaction_id:
        return ParsedEvent(event_id, topic, ignored_reason="Notification has no order id")

    line_items: list[LineItem] = []
    for line in resource.get("lineItems") or []:
        sku = line.get("sku") or line.get("SKU")
        if not sku:
            continue
        total = (line.get("total") or {}).get("value") or (line.get("price") or {}).get("value")
        line_items.append(
            LineItem(
                catalog_ref=str(sku),
                display_name=line.get("title"),
                quantity_sold=_parse_quantity(line.get("quantity") or 1),
                total_price=Decimal(str(total)) if total is not None else None,
            )
        )
    return ParsedEvent(
        event_id,
        topic,
        transaction=ExternalTransaction(
            external_id=str(transaction_id),
            channel_name="marketplace",
            closed_at=resource.get("creationDate"),
            line_items=line_items,
        ),
    )


def _record_event(
    db: Session,
    *,
    provider: str,
    parsed: ParsedEvent,
    status: str,
    payload: dict,
    applied_count: int = 0,
) -> None:
    try:
        db.add(
            WebhookEvent(
                id=generate_shortuuid(),
                provider=provider,
                event_id=parsed.event_id,
                event_type=parsed.event_type,
                status=status,
                reason=parsed.ignored_reason,
                applied_count=applied_count,
                payload_json=payload,
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        # the audit row is not part of the sale; losing it must not fail the ack
        db.rollback()
        log_event("webhook.event_log_failed", level=logging.ERROR, provider=provider, error=str(exc))


def handle_event(
    db: Session,
    *,
    provider: str,
    payload: dict,
    parsed: ParsedEvent,
    parent_lookup: ParentLookup | None = None,
) -> WebhookAckOut:
    log_event("webhook.parsed", provider=provider, event_id=parsed.event_id, event_type=parsed.event_type)
    if parsed.transaction is None:
        log_event(
            "webhook.ignored",
            provider=provider,
            event_id=parsed.event_id,
            event_type=parsed.event_type,
            reason=parsed.ignored_reason,
        )
        _record_event(db, provider=provider, parsed=parsed, status=STATUS_IGNORED, payload=payload)
        return WebhookAckOut(status=STATUS_IGNORED, event_id=parsed.event_id)

    outcome: TransactionOutcome = process_transaction(
        db,
        parsed.transaction,
        parent_lookup=parent_lookup,
    )
    _record_event(
        db,
        provider=provider,
        parsed=parsed,
        status=STATUS_ACKNOWLEDGED,
        payload=payload,
        applied_count=outcome.applied,
    )
    log_event(
        "webhook.acknowledged",
        provider=provider,
        event_id=parsed.event_id,
        transaction_id=parsed.transaction.external_id,
        applied=outcome.applied,
    )
    return WebhookAckOut(
        status=STATUS_ACKNOWLEDGED,
        event_id=parsed.event_id,
        processed=outcome.processed,
        applied=outcome.applied,
        already_applied=outcome.already_applied,
        unmatched=outcome.unmatched,
        category_mismatched=outcome.category_mismatched,
        removal_incomplete=outcome.removal_incomplete,
    )


def parse_or_ignore(parse, payload: Any, **kwargs) -> ParsedEvent:
    """Run a parser; malformed payloads become ignored events instead of errors."""
    if not isinstance(payload, dict):
        return ParsedEvent(None, None, ignored_reason="Payload is not a JSON object")
    try:
        return parse(payload, **kwargs)
    except (ValidationError, AttributeError, TypeError) as exc:
        return ParsedEvent(
            payload.get("event_id") or payload.get("notificationId"),
            payload.get("type") or payload.get("topic"),
            ignored_reason=f"Malformed payload: {exc}",
        )
