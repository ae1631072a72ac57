from datetime import datetime, timedelta, timezone

import pytest

from inventory_sync.core.config import settings
from inventory_sync.core.errors import ChannelApiError
from inventory_sync.schemas.transactions import LineItem, ResolutionContext
from inventory_sync.services.resolver import (
    CATEGORY_MISMATCH,
    MATCHED,
    UNMATCHED,
    extract_display_code,
    resolve_line_item,
    seller_prefix,
)


@pytest.fixture(autouse=True)
def _no_seller_gates(monkeypatch):
    monkeypatch.setattr(settings, "seller_categories", {})


def _pos_context(seller_code: str | None = None) -> ResolutionContext:
    return ResolutionContext(channel_name="pos", seller_code=seller_code)


@pytest.mark.parametrize(
    ("display_name", "expected"),
    [
        ("AB12 - Manteau laine", "AB12"),
        ("ABC123-Robe", "ABC123"),
        ("4521 - Sac cuir", "4521"),
        ("ab12 - lower case", None),
        ("AB12 Veste", "AB12"),
        ("Manteau AB12", None),
        ("", None),
        (None, None),
    ],
)
def test_extract_display_code_patterns(display_name, expected):
    assert extract_display_code(display_name) == expected


def test_seller_prefix_uses_leading_letters():
    assert seller_prefix("ABC123") == "ABC"
    assert seller_prefix("4521") is None
    assert seller_prefix(None) is None


def test_variation_ref_matches_before_display_code(db, make_item):
    by_variation = make_item(db, code="ZZ1", pos_variation_ref="VAR-1")
    make_item(db, code="AB12")

    result = resolve_line_item(
        db,
        LineItem(catalog_ref="VAR-1", display_name="AB12 - Manteau"),
        _pos_context(),
    )

    assert result.status == MATCHED
    assert result.item_id == by_variation.id
    assert result.strategy == "pos_variation_ref"


def test_legacy_catalog_ref_matches_variation_strategy(db, make_item):
    item = make_item(db, pos_catalog_ref="LEGACY-9")

    result = resolve_line_item(db, LineItem(catalog_ref="LEGACY-9"), _pos_context())

    assert result.item_id == item.id
    assert result.strategy == "pos_variation_ref"


def test_parent_item_lookup_resolves_variation_to_item(db, make_item):
    item = make_item(db, pos_item_ref="ITEM-7")
    lookups: list[str] = []

    def parent_lookup(variation_id: str) -> str | None:
        lookups.append(variation_id)
        return "ITEM-7"

    result = resolve_line_item(
        db,
        LineItem(catalog_ref="VAR-UNKNOWN"),
        _pos_context(),
        parent_lookup=parent_lookup,
    )

    assert result.status == MATCHED
    assert result.item_id == item.id
    assert result.strategy == "pos_item_ref"
    assert lookups == ["VAR-UNKNOWN"]


def test_parent_lookup_failure_falls_through_to_display_code(db, make_item):
    item = make_item(db, code="AB12")

    def parent_lookup(variation_id: str) -> str | None:
        raise ChannelApiError("boom", status_code=500, retryable=True)

    result = resolve_line_item(
        db,
        LineItem(catalog_ref="VAR-X", display_name="AB12 - Manteau"),
        _pos_context(),
        parent_lookup=parent_lookup,
    )

    assert result.item_id == item.id
    assert result.strategy == "display_code"


def test_internal_ref_matches_shop_sales(db, make_item):
    item = make_item(db)

    result = resolve_line_item(
        db,
        LineItem(internal_ref=item.id, display_name="anything"),
        ResolutionContext(channel_name="shop"),
    )

    assert result.strategy == "internal_ref"
    assert result.item_id == item.id


def test_marketplace_sku_only_matches_on_marketplace_channel(db, make_item):
    item = make_item(db, code="CD7")

    on_marketplace = resolve_line_item(
        db,
        LineItem(catalog_ref="cd7"),
        ResolutionContext(channel_name="marketplace"),
    )
    on_pos = resolve_line_item(db, LineItem(catalog_ref="CD7"), _pos_context())

    assert on_marketplace.status == MATCHED
    assert on_marketplace.item_id == item.id
    assert on_marketplace.strategy == "marketplace_ref"
    assert on_pos.status == UNMATCHED


def test_unmatched_never_raises(db):
    result = resolve_line_item(
        db,
        LineItem(catalog_ref="nope", display_name="Foulard sans code"),
        _pos_context(),
    )

    assert result.status == UNMATCHED
    assert result.item_id is None


def test_duplicate_codes_prefer_most_recent_item(db, make_item):
    now = datetime.now(timezone.utc)
    make_item(db, code="AB12", created_at=now - timedelta(days=30))
    newest = make_item(db, code="AB12", created_at=now)

    result = resolve_line_item(db, LineItem(display_name="AB12 - Manteau"), _pos_context())

    assert result.item_id == newest.id


def test_category_gate_rejects_unauthorized_category(db, make_item, monkeypatch):
    monkeypatch.setattr(settings, "seller_categories", {"AB": ["AB - Veste"]})
    item = make_item(db, code="AB12", category="AB - Manteau")

    result = resolve_line_item(db, LineItem(display_name="AB12 - Manteau"), _pos_context())

    assert result.status == CATEGORY_MISMATCH
    assert result.item_id == item.id
    assert result.code == "AB12"


def test_category_gate_uses_context_seller_before_prefix(db, make_item, monkeypatch):
    monkeypatch.setattr(
        settings,
        "seller_categories",
        {"AB": ["AB - Veste"], "XY": ["AB - Manteau"]},
    )
    item = make_item(db, code="AB12", category="AB - Manteau")

    result = resolve_line_item(db, LineItem(display_name="AB12 - Manteau"), _pos_context(seller_code="XY"))

    assert result.status == MATCHED
    assert result.item_id == item.id


def test_sellers_without_configured_categories_are_not_gated(db, make_item, monkeypatch):
    monkeypatch.setattr(settings, "seller_categories", {"QQ": ["QQ - Bague"]})
    make_item(db, code="AB12", category="AB - Manteau")

    result = resolve_line_item(db, LineItem(display_name="AB12 - Manteau"), _pos_context())

    assert result.status == MATCHED
