from decimal import Decimal
from typing import Iterable, Optional, Tuple

from .calculator import compute_amount
from .eligibility import is_eligible
from .schemas import DiscountRule, EligibilityContext


def select_best_with_amount(
    candidates: Iterable[DiscountRule],
    base: Decimal,
    context: EligibilityContext,
) -> Optional[Tuple[DiscountRule, Decimal]]:
    best: Optional[DiscountRule] = None
    best_amount = Decimal("0")
    for discount in candidates:
        if not is_eligible(discount, context):
            continue
        amount = compute_amount(discount, base)
        # strictly greater: on a tie the earlier candidate stays
        if amount > best_amount:
            best, best_amount = discount, amount
    if best is None:
        return None
    return best, best_amount


def select_best(
    candidates: Iterable[DiscountRule],
    base: Decimal,
    context: EligibilityContext,
) -> Optional[DiscountRule]:
    """Eligible candidate giving the largest amount on ``base``.

    Ties go to the first candidate in input order, so callers should pass a
    deterministically ordered list. Returns None when nothing is eligible or
    every eligible candidate is worth zero.
    """
    picked = select_best_with_amount(candidates, base, context)
    return picked[0] if picked else None
