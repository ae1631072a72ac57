import math
from dataclasses import dataclass
from decimal import Decimal

from inventory_sync.core.config import settings
from inventory_sync.core.money import to_money

DEFAULT_CATEGORY_ID = "11450"

# internal category keyword -> marketplace leaf category
CATEGORY_KEYWORDS: dict[str, str] = {
    "bague": "67681",
    "broche": "50647",
    "collier": "67662",
    "bracelet": "67651",
    "boucle": "67671",
    "chemise": "57991",
    "haut": "53159",
    "pantalon": "57989",
    "veste": "57988",
    "manteau": "57988",
    "pull": "11484",
    "robe": "63861",
    "jupe": "63864",
    "ceinture": "2993",
    "chaussure": "63889",
    "lunette": "79720",
    "sac": "169291",
    "carré": "45238",
}


@dataclass(frozen=True)
class ShippingEstimate:
    weight_grams: int
    package_type: str


_JEWELLERY = ("bague", "broche", "boucle", "collier", "bracelet")
_SMALL_ACCESSORIES = ("ceinture", "lunette", "carré")
_COATS = ("manteau", "veste")


def category_keyword(category: str | None) -> str:
    """Keyword part of an internal category such as "AB - Manteau"."""
    if not category:
        return ""
    _, sep, tail = category.partition(" - ")
    return (tail if sep else category).strip().lower()


def marketplace_category_id(category: str | None) -> str:
    keyword = category_keyword(category)
    if not keyword:
        return DEFAULT_CATEGORY_ID
    table = {**CATEGORY_KEYWORDS, **settings.marketplace_category_map}
    for known, category_id in table.items():
        if known in keyword:
            return category_id
    return DEFAULT_CATEGORY_ID


def estimate_shipping(category: str | None) -> ShippingEstimate:
    keyword = category_keyword(category)
    if any(k in keyword for k in _JEWELLERY):
        return ShippingEstimate(50, "ENVELOPE")
    if any(k in keyword for k in _SMALL_ACCESSORIES):
        return ShippingEstimate(200, "SMALL_BOX")
    if "sac" in keyword:
        return ShippingEstimate(500, "MEDIUM_BOX")
    if "chaussure" in keyword:
        return ShippingEstimate(800, "MEDIUM_BOX")
    if any(k in keyword for k in _COATS):
        return ShippingEstimate(1000, "MEDIUM_BOX")
    return ShippingEstimate(400, "SMALL_BOX")


def marketplace_price(shop_price: Decimal | float) -> Decimal:
    """Shop price plus markup, converted, floored and suffixed .99."""
    raw = Decimal(str(shop_price)) * Decimal(str(1 + settings.marketplace_price_markup))
    converted = raw * Decimal(str(settings.marketplace_exchange_rate))
    return to_money(Decimal(math.floor(converted)) + Decimal("0.99"))
