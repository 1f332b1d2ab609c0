from typing import Optional

from .schemas import (
    DiscountCategory,
    DiscountRule,
    EligibilityContext,
    IneligibilityReason,
)


def check_eligibility(discount: DiscountRule, context: EligibilityContext) -> Optional[IneligibilityReason]:
    """Return the first rule ``discount`` fails for ``context``, or None if usable.

    Rules are checked in a fixed order (payload, active flag, time window,
    usage limit, minimum purchase, store/product-type scope) so the reason
    reported for a given input is always the same.
    """
    payload = discount.payload
    if payload is None:
        return IneligibilityReason.malformed_payload

    if not discount.is_active:
        return IneligibilityReason.inactive

    # window is half-open: [start, end)
    if context.now < discount.start_datetime:
        return IneligibilityReason.not_started
    if context.now >= discount.end_datetime:
        return IneligibilityReason.expired

    if discount.usage_limit is not None and discount.usage_count >= discount.usage_limit:
        return IneligibilityReason.usage_limit_reached

    if context.subtotal < discount.min_purchase_amount:
        return IneligibilityReason.below_minimum_purchase

    if discount.category == DiscountCategory.special:
        if payload.store_id != context.store_id:
            return IneligibilityReason.wrong_store
        if payload.product_type_id is not None and payload.product_type_id not in context.product_type_ids:
            return IneligibilityReason.product_type_mismatch

    return None


def is_eligible(discount: DiscountRule, context: EligibilityContext) -> bool:
    return check_eligibility(discount, context) is None
