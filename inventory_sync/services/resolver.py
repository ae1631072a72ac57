"""
Maps a line item reported by a channel to one inventory item.

Strategies run in order and the first hit wins. A miss is a normal outcome:
the resolver reports it and never raises.
"""
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from inventory_sync.core.config import settings
from inventory_sync.core.errors import ChannelApiError, ChannelNotConfiguredError
from inventory_sync.core.observability import log_event
from inventory_sync.models.inventory import InventoryItem
from inventory_sync.schemas.transactions import LineItem, ResolutionContext

MATCHED = "matched"
UNMATCHED = "unmatched"
CATEGORY_MISMATCH = "category_mismatch"

DISPLAY_CODE_PATTERNS = (
    re.compile(r"^([A-Z]{2,3}\d+)\s*-"),
    re.compile(r"^(\d+)\s*-"),
    re.compile(r"^([A-Z]{2,3}\d+)\s+"),
)
_SELLER_PREFIX = re.compile(r"^([A-Z]+)")

ParentLookup = Callable[[str], str | None]


@dataclass(frozen=True)
class ResolutionResult:
    status: str
    item_id: str | None = None
    strategy: str | None = None
    code: str | None = None
    reason: str | None = None

    @property
    def matched(self) -> bool:
        return self.status == MATCHED


@dataclass(frozen=True)
class _Candidate:
    item: InventoryItem
    code: str | None = None


def extract_display_code(display_name: str | None) -> str | None:
    if not display_name:
        return None
    text = display_name.strip()
    for pattern in DISPLAY_CODE_PATTERNS:
        match = pattern.match(text)
        if match:
            return match.group(1).upper()
    return None


def seller_prefix(code: str | None) -> str | None:
    if not code:
        return None
    match = _SELLER_PREFIX.match(code.upper())
    return match.group(1) if match else None


def _most_recent(db: Session, *conditions, strategy: str) -> InventoryItem | None:
    items = db.execute(
        select(InventoryItem)
        .where(or_(*conditions))
        .order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
    ).scalars().all()
    if not items:
        return None
    if len(items) > 1:
        log_event(
            "resolver.ambiguous_code",
            level=logging.WARNING,
            strategy=strategy,
            chosen_item_id=items[0].id,
            candidate_ids=[item.id for item in items],
        )
    return items[0]


def _match_internal_ref(db, line_item, context, parent_lookup) -> _Candidate | None:
    if not line_item.internal_ref:
        return None
    item = db.get(InventoryItem, line_item.internal_ref)
    return _Candidate(item) if item else None


def _match_pos_variation_ref(db, line_item, context, parent_lookup) -> _Candidate | None:
    ref = line_item.catalog_ref
    if not ref:
        return None
    item = _most_recent(
        db,
        InventoryItem.pos_variation_ref == ref,
        InventoryItem.pos_catalog_ref == ref,
        strategy="pos_variation_ref",
    )
    return _Candidate(item) if item else None


def _match_pos_item_ref(db, line_item, context, parent_lookup) -> _Candidate | None:
    ref = line_item.catalog_ref
    if not ref:
        return None
    refs = [ref]
    if parent_lookup is not None:
        try:
            parent = parent_lookup(ref)
        except (ChannelApiError, ChannelNotConfiguredError) as exc:
            log_event("resolver.parent_lookup_failed", level=logging.WARNING, catalog_ref=ref, error=str(exc))
            parent = None
        if parent and parent != ref:
            refs.append(parent)
    item = _most_recent(
        db,
        InventoryItem.pos_item_ref.in_(refs),
        InventoryItem.pos_catalog_ref.in_(refs),
        strategy="pos_item_ref",
    )
    return _Candidate(item) if item else None


def _match_marketplace_ref(db, line_item, context, parent_lookup) -> _Candidate | None:
    if context.channel_name != "marketplace" or not line_item.catalog_ref:
        return None
    ref = line_item.catalog_ref
    item = _most_recent(
        db,
        InventoryItem.market_listing_ref == ref,
        InventoryItem.market_offer_ref == ref,
        InventoryItem.code == ref.strip().upper(),
        strategy="marketplace_ref",
    )
    return _Candidate(item) if item else None


def _match_display_code(db, line_item, context, parent_lookup) -> _Candidate | None:
    code = extract_display_code(line_item.display_name)
    if not code:
        return None
    item = _most_recent(db, InventoryItem.code == code, strategy="display_code")
    return _Candidate(item, code=code) if item else None


STRATEGIES: tuple[tuple[str, Callable], ...] = (
    ("internal_ref", _match_internal_ref),
    ("pos_variation_ref", _match_pos_variation_ref),
    ("pos_item_ref", _match_pos_item_ref),
    ("marketplace_ref", _match_marketplace_ref),
    ("display_code", _match_display_code),
)


def _category_allowed(item: InventoryItem, code: str, context: ResolutionContext) -> bool:
    seller = (context.seller_code or seller_prefix(code) or "").upper()
    authorized = settings.authorized_categories(seller)
    if authorized is None:
        return True
    allowed = {category.strip().lower() for category in authorized}
    return (item.category or "").strip().lower() in allowed


def resolve_line_item(
    db: Session,
    line_item: LineItem,
    context: ResolutionContext,
    *,
    parent_lookup: ParentLookup | None = None,
) -> ResolutionResult:
    for name, strategy in STRATEGIES:
        candidate = strategy(db, line_item, context, parent_lookup)
        if candidate is None:
            continue
        item = candidate.item
        if candidate.code and not _category_allowed(item, candidate.code, context):
            log_event(
                "resolver.category_mismatch",
                level=logging.WARNING,
                strategy=name,
                item_id=item.id,
                code=candidate.code,
                category=item.category,
                seller_code=context.seller_code or seller_prefix(candidate.code),
            )
            return ResolutionResult(
                status=CATEGORY_MISMATCH,
                item_id=item.id,
                strategy=name,
                code=candidate.code,
                reason="Item category is not authorized for this seller",
            )
        log_event("resolver.matched", strategy=name, item_id=item.id, code=item.code)
        return ResolutionResult(status=MATCHED, item_id=item.id, strategy=name, code=item.code)

    log_event(
        "resolver.unmatched",
        level=logging.WARNING,
        channel=context.channel_name,
        catalog_ref=line_item.catalog_ref,
        display_name=line_item.display_name,
    )
    return ResolutionResult(status=UNMATCHED, reason="No strategy matched the line item")
