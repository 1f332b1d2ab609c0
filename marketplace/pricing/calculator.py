from decimal import Decimal, ROUND_FLOOR

from .schemas import DiscountCategory, DiscountRule

WHOLE_UNIT = Decimal("1")


class MalformedDiscountError(ValueError):
    """Raised when an amount is requested for a discount with no usable payload."""


def floor_amount(value: Decimal) -> Decimal:
    """Truncate to whole currency units. Never rounds up."""
    return value.quantize(WHOLE_UNIT, rounding=ROUND_FLOOR)


def compute_amount(discount: DiscountRule, base: Decimal) -> Decimal:
    """Amount ``discount`` takes off ``base``.

    Shipping discounts are flat and clamped to ``base`` (shipping never goes
    below zero). Seasonal and special discounts are ``base * rate`` capped at
    ``max_discount_amount`` and floored to whole units.
    """
    payload = discount.payload
    if payload is None:
        raise MalformedDiscountError(
            f"Discount {discount.code} cannot be priced: {discount.integrity_problem}"
        )

    base = Decimal(base)
    if base <= 0:
        return Decimal("0")

    if discount.category == DiscountCategory.shipping:
        return max(Decimal("0"), min(payload.discount_amount, base))

    if discount.category in (DiscountCategory.seasonal, DiscountCategory.special):
        raw = base * payload.discount_rate
        if payload.max_discount_amount is not None:
            raw = min(raw, payload.max_discount_amount)
        return max(Decimal("0"), floor_amount(raw))

    raise MalformedDiscountError(f"Unhandled discount category: {discount.category}")
