"""Per-store checkout pricing.

``price`` turns store order groups into priced results: shipping (with the
free-shipping waiver), the buyer's shipping and seasonal codes, and the best
automatic special discount for each store. ``price_cart`` is the entry point
used by the checkout service; it validates and groups a raw cart first.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from marketplace.errors import InvalidPricingInput

from .eligibility import check_eligibility
from .grouping import group_by_store, validate_cart
from .schemas import (
    AppliedDiscount,
    CartLine,
    DiscountCategory,
    DiscountRule,
    DiscountSelections,
    EligibilityContext,
    ExcludedDiscount,
    IneligibilityReason,
    OrderPricingResult,
    PricingReport,
    RejectedCode,
    StoreOrderGroup,
    as_utc,
)
from .selector import select_best_with_amount

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
NEGATIVE_TOTAL_CLAMPED = "negative_total_clamped"


class _Catalog:
    """Discount snapshot split into usable rules and integrity failures."""

    def __init__(self, discounts: Iterable[DiscountRule]):
        self.usable: List[DiscountRule] = []
        self.excluded: List[ExcludedDiscount] = []
        self.by_code: Dict[str, DiscountRule] = {}
        self.broken_codes = set()

        for discount in discounts:
            problem = discount.integrity_problem
            if problem is not None:
                logger.warning("Excluding discount %s (%s) from pricing: %s", discount.code, discount.id, problem)
                self.excluded.append(ExcludedDiscount(discount_id=discount.id, code=discount.code, problem=problem))
                self.broken_codes.add(discount.code.upper())
                continue
            self.usable.append(discount)
            self.by_code.setdefault(discount.code.upper(), discount)

    def specials_for(self, store_id: str) -> List[DiscountRule]:
        return [
            d for d in self.usable
            if d.category == DiscountCategory.special and d.special.store_id == store_id
        ]

    def resolve(self, code: str, category: DiscountCategory) -> Tuple[Optional[DiscountRule], Optional[IneligibilityReason]]:
        if code in self.broken_codes:
            return None, IneligibilityReason.malformed_payload
        discount = self.by_code.get(code)
        if discount is None:
            return None, IneligibilityReason.unknown_code
        if discount.category != category:
            return None, IneligibilityReason.wrong_category
        return discount, None


def _applied(discount: DiscountRule, amount: Decimal) -> AppliedDiscount:
    return AppliedDiscount(
        discount_id=discount.id,
        code=discount.code,
        name=discount.name,
        category=discount.category,
        amount=amount,
    )


def _apply_buyer_code(
    catalog: _Catalog,
    code: str,
    category: DiscountCategory,
    base: Decimal,
    context: EligibilityContext,
) -> Tuple[Optional[AppliedDiscount], Optional[RejectedCode]]:
    discount, reason = catalog.resolve(code, category)
    if discount is not None:
        picked = select_best_with_amount([discount], base, context)
        if picked is not None:
            return _applied(*picked), None
        reason = check_eligibility(discount, context) or IneligibilityReason.zero_amount
    return None, RejectedCode(code=code, category=category, reason=reason)


def _price_group(
    group: StoreOrderGroup,
    selections: DiscountSelections,
    catalog: _Catalog,
    free_shipping_threshold: Decimal,
    base_shipping_fee: Decimal,
    now: datetime,
) -> OrderPricingResult:
    context = EligibilityContext(
        subtotal=group.subtotal,
        now=now,
        store_id=group.store_id,
        product_type_ids=group.product_type_ids,
    )
    rejected: List[RejectedCode] = []
    anomalies: List[str] = []

    shipping_code = None
    free_shipping = group.subtotal >= free_shipping_threshold
    if free_shipping:
        shipping, shipping_discount = ZERO, base_shipping_fee
        if selections.shipping_code:
            rejected.append(RejectedCode(
                code=selections.shipping_code,
                category=DiscountCategory.shipping,
                reason=IneligibilityReason.shipping_already_free,
            ))
    else:
        shipping, shipping_discount = base_shipping_fee, ZERO
        if selections.shipping_code:
            shipping_code, rejection = _apply_buyer_code(
                catalog, selections.shipping_code, DiscountCategory.shipping, base_shipping_fee, context
            )
            if shipping_code is not None:
                shipping_discount = shipping_code.amount
                shipping = max(ZERO, base_shipping_fee - shipping_code.amount)
            else:
                rejected.append(rejection)

    special = None
    picked = select_best_with_amount(catalog.specials_for(group.store_id), group.subtotal, context)
    if picked is not None:
        special = _applied(*picked)

    seasonal = None
    if selections.seasonal_code:
        seasonal, rejection = _apply_buyer_code(
            catalog, selections.seasonal_code, DiscountCategory.seasonal, group.subtotal, context
        )
        if rejection is not None:
            rejected.append(rejection)

    total_discount = (special.amount if special else ZERO) + (seasonal.amount if seasonal else ZERO)
    total = group.subtotal + shipping - total_discount
    if total < 0:
        logger.warning(
            "Store %s priced to a negative total (%s); clamping to zero and flagging for review",
            group.store_id, total,
        )
        anomalies.append(NEGATIVE_TOTAL_CLAMPED)
        total = ZERO

    return OrderPricingResult(
        store_id=group.store_id,
        store_name=group.store_name,
        items=group.items,
        subtotal=group.subtotal,
        base_shipping_fee=base_shipping_fee,
        shipping=shipping,
        shipping_discount=shipping_discount,
        shipping_code=shipping_code,
        seasonal=seasonal,
        special=special,
        total_discount=total_discount,
        total=total,
        free_shipping=free_shipping,
        rejected_codes=tuple(rejected),
        anomalies=tuple(anomalies),
    )


def price(
    groups: Sequence[StoreOrderGroup],
    selections: DiscountSelections,
    all_discounts: Iterable[DiscountRule],
    free_shipping_threshold: Decimal,
    base_shipping_fee: Decimal,
    now: datetime,
) -> PricingReport:
    """Price every store group independently; one result per group, in order.

    Discounts whose payload does not match their category are left out and
    listed in ``PricingReport.excluded_discounts``. A buyer code that cannot
    be applied is reported on the group as a ``RejectedCode``; it never fails
    the checkout.
    """
    if now is None:
        raise InvalidPricingInput("missing_timestamp")
    free_shipping_threshold = Decimal(free_shipping_threshold)
    base_shipping_fee = Decimal(base_shipping_fee)
    if free_shipping_threshold < 0 or base_shipping_fee < 0:
        raise InvalidPricingInput("invalid_shipping_policy")

    now = as_utc(now)
    catalog = _Catalog(all_discounts)
    results = tuple(
        _price_group(group, selections, catalog, free_shipping_threshold, base_shipping_fee, now)
        for group in groups
    )
    return PricingReport(
        results=results,
        excluded_discounts=tuple(catalog.excluded),
        evaluated_at=now,
        subtotal=sum((r.subtotal for r in results), ZERO),
        shipping=sum((r.shipping for r in results), ZERO),
        total_discount=sum((r.total_discount for r in results), ZERO),
        total=sum((r.total for r in results), ZERO),
    )


def price_cart(
    items: Sequence[CartLine],
    selections: DiscountSelections,
    all_discounts: Iterable[DiscountRule],
    free_shipping_threshold: Decimal,
    base_shipping_fee: Decimal,
    now: datetime,
) -> PricingReport:
    selected = validate_cart(items)
    return price(
        group_by_store(selected),
        selections,
        all_discounts,
        free_shipping_threshold,
        base_shipping_fee,
        now,
    )
