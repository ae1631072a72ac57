from decimal import Decimal

import pytest

from inventory_sync.core.config import settings
from inventory_sync.services.marketplace_catalog import (
    DEFAULT_CATEGORY_ID,
    category_keyword,
    estimate_shipping,
    marketplace_category_id,
    marketplace_price,
)


def test_category_keyword_strips_seller_prefix():
    assert category_keyword("AB - Manteau") == "manteau"
    assert category_keyword("Robe") == "robe"
    assert category_keyword(None) == ""


@pytest.mark.parametrize(
    ("category", "expected"),
    [
        ("AB - Bague", "67681"),
        ("AB - Sac", "169291"),
        ("CD - Robe", "63861"),
        ("CD - Objet", DEFAULT_CATEGORY_ID),
        ("AB - Bagues", "67681"),
        ("AB - A", DEFAULT_CATEGORY_ID),
        ("AB - ve", DEFAULT_CATEGORY_ID),
        (None, DEFAULT_CATEGORY_ID),
    ],
)
def test_marketplace_category_id(category, expected):
    assert marketplace_category_id(category) == expected


def test_category_map_setting_extends_keywords(monkeypatch):
    monkeypatch.setattr(settings, "marketplace_category_map", {"foulard": "45238"})

    assert marketplace_category_id("AB - Foulard") == "45238"


@pytest.mark.parametrize(
    ("category", "weight", "package_type"),
    [
        ("AB - Collier", 50, "ENVELOPE"),
        ("AB - Ceinture", 200, "SMALL_BOX"),
        ("AB - Sac", 500, "MEDIUM_BOX"),
        ("AB - Chaussure", 800, "MEDIUM_BOX"),
        ("AB - Manteau", 1000, "MEDIUM_BOX"),
        ("AB - Pull", 400, "SMALL_BOX"),
    ],
)
def test_estimate_shipping(category, weight, package_type):
    estimate = estimate_shipping(category)
    assert estimate.weight_grams == weight
    assert estimate.package_type == package_type


def test_marketplace_price_applies_markup_rate_and_charm_ending(monkeypatch):
    monkeypatch.setattr(settings, "marketplace_price_markup", 0.10)
    monkeypatch.setattr(settings, "marketplace_exchange_rate", 1.08)

    assert marketplace_price(Decimal("120.00")) == Decimal("142.99")
    assert marketplace_price(Decimal("10")) == Decimal("11.99")
