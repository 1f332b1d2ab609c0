import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.config import Config
from marketplace.db.models import utcnow
from marketplace.db.snapshots import load_cart_lines, load_discount_rule, load_discount_rules
from marketplace.pricing.aggregator import price
from marketplace.pricing.calculator import compute_amount
from marketplace.pricing.eligibility import check_eligibility
from marketplace.pricing.grouping import group_by_store, validate_cart
from marketplace.pricing.schemas import (
    DiscountCategory,
    DiscountRule,
    DiscountSelections,
    EligibilityContext,
    IneligibilityReason,
    PricingReport,
    StoreOrderGroup,
    as_utc,
)
from marketplace.user_dashboard.checkouts.schemas import AppliedDiscountResponse, CartItemInput
from .schemas import (
    AvailableDiscountResponse,
    DiscountSummary,
    RecommendedCode,
    RecommendedDiscountsResponse,
    ValidateDiscountRequest,
    ValidateDiscountResponse,
)

ZERO = Decimal("0")

# buyer-chosen category -> DiscountSelections field and the result attribute it fills
CODE_SLOTS = {
    DiscountCategory.shipping: ("shipping_code", "shipping_code"),
    DiscountCategory.seasonal: ("seasonal_code", "seasonal"),
}


class BuyerDiscountService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = logging.getLogger(__name__)

    async def _groups(self, items: Sequence[CartItemInput]) -> List[StoreOrderGroup]:
        lines = await load_cart_lines(self.session, items)
        return group_by_store(validate_cart(lines))

    def _price(self, groups, rules, selections: DiscountSelections, now: datetime) -> PricingReport:
        return price(groups, selections, rules, Config.FREE_SHIPPING_THRESHOLD, Config.BASE_SHIPPING_FEE, now)

    async def validate_code(self, code: str, data: ValidateDiscountRequest, now: Optional[datetime] = None) -> ValidateDiscountResponse:
        """Check one code against an order amount and say why it does not apply."""
        now = as_utc(now or utcnow())
        rule = await load_discount_rule(self.session, code)
        if rule is None:
            return ValidateDiscountResponse(valid=False, reason=IneligibilityReason.unknown_code)

        summary = DiscountSummary.from_rule(rule)
        # checkout waives shipping at the threshold, leaving nothing to discount
        if rule.category == DiscountCategory.shipping and data.order_amount >= Config.FREE_SHIPPING_THRESHOLD:
            return ValidateDiscountResponse(valid=False, reason=IneligibilityReason.shipping_already_free, discount=summary)

        context = EligibilityContext(
            subtotal=data.order_amount,
            now=now,
            store_id=str(data.store_uid) if data.store_uid else "",
            product_type_ids=frozenset(str(uid) for uid in data.product_type_uids),
        )
        reason = check_eligibility(rule, context)
        if reason is not None:
            return ValidateDiscountResponse(valid=False, reason=reason, discount=summary)

        base = Config.BASE_SHIPPING_FEE if rule.category == DiscountCategory.shipping else data.order_amount
        return ValidateDiscountResponse(valid=True, discount=summary, amount=compute_amount(rule, base))

    async def available(self, items: Sequence[CartItemInput], now: Optional[datetime] = None) -> List[AvailableDiscountResponse]:
        """Live discounts that would take something off this cart, per store."""
        now = as_utc(now or utcnow())
        groups = await self._groups(items)
        rules = await load_discount_rules(self.session, now)

        available = []
        for rule in rules:
            if rule.integrity_problem is not None:
                continue
            store_uids, savings = [], ZERO
            for group in groups:
                if rule.category == DiscountCategory.shipping:
                    if group.subtotal >= Config.FREE_SHIPPING_THRESHOLD:
                        continue
                    base = Config.BASE_SHIPPING_FEE
                else:
                    base = group.subtotal
                context = EligibilityContext(
                    subtotal=group.subtotal,
                    now=now,
                    store_id=group.store_id,
                    product_type_ids=group.product_type_ids,
                )
                if check_eligibility(rule, context) is not None:
                    continue
                amount = compute_amount(rule, base)
                if amount > 0:
                    store_uids.append(group.store_id)
                    savings += amount
            if store_uids:
                available.append(AvailableDiscountResponse(
                    **DiscountSummary.from_rule(rule).model_dump(),
                    store_uids=store_uids,
                    estimated_savings=savings,
                ))
        return available

    def _best_code(self, groups, rules: List[DiscountRule], category: DiscountCategory, now: datetime) -> Optional[RecommendedCode]:
        field, attribute = CODE_SLOTS[category]
        best = None
        for rule in rules:
            if rule.category != category or rule.integrity_problem is not None:
                continue
            report = self._price(groups, rules, DiscountSelections(**{field: rule.code}), now)
            savings = sum(
                (getattr(r, attribute).amount for r in report.results if getattr(r, attribute) is not None),
                ZERO,
            )
            # strictly greater keeps the first of equal candidates
            if savings > 0 and (best is None or savings > best.savings):
                best = RecommendedCode(
                    discount_uid=rule.id,
                    code=rule.code,
                    name=rule.name,
                    category=category,
                    savings=savings,
                )
        return best

    async def recommended(self, items: Sequence[CartItemInput], now: Optional[datetime] = None) -> RecommendedDiscountsResponse:
        """Best shipping code and best seasonal code for this cart.

        Each candidate is priced through the full checkout pricing, so the
        recommendation matches what checkout would charge with it.
        """
        now = as_utc(now or utcnow())
        groups = await self._groups(items)
        rules = await load_discount_rules(self.session, now)

        shipping = self._best_code(groups, rules, DiscountCategory.shipping, now)
        seasonal = self._best_code(groups, rules, DiscountCategory.seasonal, now)
        report = self._price(
            groups,
            rules,
            DiscountSelections(
                shipping_code=shipping.code if shipping else None,
                seasonal_code=seasonal.code if seasonal else None,
            ),
            now,
        )

        specials = [AppliedDiscountResponse.from_applied(r.special) for r in report.results if r.special is not None]
        total_savings = sum(
            (r.total_discount + (r.shipping_code.amount if r.shipping_code else ZERO) for r in report.results),
            ZERO,
        )
        return RecommendedDiscountsResponse(
            shipping=shipping,
            seasonal=seasonal,
            specials=specials,
            total_savings=total_savings,
            total=report.total,
        )
