from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")

DELIVERY_FEE_RATE = Decimal("0.05")
DELIVERY_FEE_MIN = Decimal("30")
DELIVERY_FEE_MAX = Decimal("100")

HANDLING_RATE = Decimal("0.02")
HANDLING_MIN = Decimal("10")
HANDLING_MAX = Decimal("50")

TAX_RATE = Decimal("0.05")


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    delivery_fee: Decimal
    handling_charge: Decimal
    tax: Decimal
    total: Decimal


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return min(max(low, value), high)


def compute_breakdown(items) -> PriceBreakdown:
    """Price an order from its line items (each with `quantity` and `unit_price`).

    Runs once when the order is placed; the result is stored on the order and
    never recomputed, even if the menu price changes later.
    """
    subtotal = sum((Decimal(str(i.unit_price)) * i.quantity for i in items), Decimal("0"))
    delivery_fee = _clamp(subtotal * DELIVERY_FEE_RATE, DELIVERY_FEE_MIN, DELIVERY_FEE_MAX)
    handling = _clamp(subtotal * HANDLING_RATE, HANDLING_MIN, HANDLING_MAX)
    tax = subtotal * TAX_RATE

    subtotal, delivery_fee, handling, tax = map(_money, (subtotal, delivery_fee, handling, tax))
    return PriceBreakdown(
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        handling_charge=handling,
        tax=tax,
        total=subtotal + delivery_fee + handling + tax,
    )
