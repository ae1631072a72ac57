import hmac
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from inventory_sync.core.api_docs import error_responses
from inventory_sync.core.config import settings
from inventory_sync.core.deps import get_db
from inventory_sync.core.errors import ChannelApiError, ChannelNotConfiguredError, LedgerUnavailableError
from inventory_sync.core.observability import log_event
from inventory_sync.core.security import compute_challenge_response, compute_webhook_signature
from inventory_sync.schemas.webhooks import ChallengeOut, WebhookAckOut
from inventory_sync.services.pos_client import PosClient
from inventory_sync.services.resolver import ParentLookup
from inventory_sync.services.webhook_service import (
    ParsedEvent,
    handle_event,
    parse_marketplace_event,
    parse_or_ignore,
    parse_pos_event,
)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

POS_SIGNATURE_HEADER = "X-Square-Hmacsha256-Signature"
MARKETPLACE_SIGNATURE_HEADER = "X-Marketplace-Signature"


def _assert_webhook_signature(
    provider: str,
    secret: str | None,
    payload_bytes: bytes,
    signature_header: str | None,
) -> None:
    if not secret:
        log_event("webhook.rejected", level=logging.WARNING, provider=provider, reason="no_secret_configured")
        raise HTTPException(status_code=401, detail="Webhook signature key is not configured")
    if not signature_header:
        log_event("webhook.rejected", level=logging.WARNING, provider=provider, reason="missing_signature")
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    expected = compute_webhook_signature(secret, payload_bytes)
    if not hmac.compare_digest(signature_header.strip(), expected):
        log_event("webhook.rejected", level=logging.WARNING, provider=provider, reason="invalid_signature")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


def _load_json(raw_body: bytes):
    try:
        return json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON") from exc


def _handle(
    db: Session,
    provider: str,
    payload: dict,
    parsed: ParsedEvent,
    parent_lookup: ParentLookup | None = None,
) -> WebhookAckOut:
    try:
        return handle_event(db, provider=provider, payload=payload, parsed=parsed, parent_lookup=parent_lookup)
    except LedgerUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def _process_pos_event(db: Session, payload) -> WebhookAckOut:
    with PosClient() as pos_client:
        try:
            parsed = parse_or_ignore(parse_pos_event, payload, pos_client=pos_client)
        except (ChannelApiError, ChannelNotConfiguredError) as exc:
            log_event("webhook.order_fetch_failed", level=logging.ERROR, provider="pos", error=str(exc))
            raise HTTPException(status_code=502, detail=f"Could not fetch order: {exc}") from exc
        parent_lookup = pos_client.parent_item_id if pos_client.is_configured() else None
        return _handle(db, "pos", payload if isinstance(payload, dict) else {}, parsed, parent_lookup)


def _process_marketplace_event(db: Session, payload) -> WebhookAckOut:
    parsed = parse_or_ignore(parse_marketplace_event, payload)
    return _handle(db, "marketplace", payload if isinstance(payload, dict) else {}, parsed)


@router.post(
    "/pos",
    response_model=WebhookAckOut,
    summary="Receive point-of-sale order and payment events",
    responses=error_responses(400, 401, 502, 503, 500, path="/webhooks/pos"),
)
async def pos_webhook(request: Request, db: Session = Depends(get_db)):
    raw_body = await request.body()
    log_event("webhook.received", provider="pos", size=len(raw_body))
    _assert_webhook_signature(
        "pos",
        settings.pos_webhook_signature_key,
        raw_body,
        request.headers.get(POS_SIGNATURE_HEADER),
    )
    payload = _load_json(raw_body)
    # order fetches, channel withdrawals and commits all block
    return await run_in_threadpool(_process_pos_event, db, payload)


@router.post(
    "/marketplace",
    response_model=WebhookAckOut,
    summary="Receive marketplace sale notifications",
    responses=error_responses(400, 401, 503, 500, path="/webhooks/marketplace"),
)
async def marketplace_webhook(request: Request, db: Session = Depends(get_db)):
    raw_body = await request.body()
    log_event("webhook.received", provider="marketplace", size=len(raw_body))
    _assert_webhook_signature(
        "marketplace",
        settings.marketplace_webhook_secret,
        raw_body,
        request.headers.get(MARKETPLACE_SIGNATURE_HEADER),
    )
    payload = _load_json(raw_body)
    return await run_in_threadpool(_process_marketplace_event, db, payload)


@router.get(
    "/marketplace",
    response_model=ChallengeOut,
    summary="Answer the marketplace endpoint verification challenge",
    responses=error_responses(400, 500, path="/webhooks/marketplace"),
)
def marketplace_challenge(challenge_code: str = Query(min_length=1)):
    if not settings.marketplace_verification_token or not settings.marketplace_endpoint_url:
        raise HTTPException(status_code=400, detail="Marketplace verification is not configured")
    return ChallengeOut(
        challengeResponse=compute_challenge_response(
            challenge_code,
            settings.marketplace_verification_token,
            settings.marketplace_endpoint_url,
        )
    )
