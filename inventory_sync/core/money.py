from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
CENTS = Decimal(100)


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def cents_to_money(amount: int | str) -> Decimal:
    """Minor units as sent by the point of sale (1250 -> 12.50)."""
    return to_money(Decimal(str(amount)) / CENTS)


def money_to_cents(value: Decimal | int | float | str) -> int:
    return int((to_money(value) * CENTS).to_integral_value(rounding=ROUND_HALF_UP))
