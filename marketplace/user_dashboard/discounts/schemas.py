from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import uuid
from pydantic import BaseModel, Field

from marketplace.pricing.schemas import DiscountCategory, DiscountRule, IneligibilityReason
from marketplace.user_dashboard.checkouts.schemas import AppliedDiscountResponse, CartItemInput, Money


class DiscountSummary(BaseModel):
    """What a buyer may see about a discount."""
    uid: uuid.UUID
    code: str
    discount_type: DiscountCategory
    name: str
    min_purchase_amount: Money
    end_datetime: datetime
    discount_rate: Optional[Decimal] = None
    max_discount_amount: Optional[Money] = None
    discount_amount: Optional[Money] = None
    store_uid: Optional[uuid.UUID] = None
    product_type_uid: Optional[uuid.UUID] = None

    @classmethod
    def from_rule(cls, rule: DiscountRule) -> "DiscountSummary":
        fields = {}
        payload = rule.payload
        if rule.category == DiscountCategory.shipping and payload is not None:
            fields["discount_amount"] = payload.discount_amount
        elif payload is not None:
            fields["discount_rate"] = payload.discount_rate
            fields["max_discount_amount"] = payload.max_discount_amount
            if rule.category == DiscountCategory.special:
                fields["store_uid"] = payload.store_id
                fields["product_type_uid"] = payload.product_type_id
        return cls(
            uid=rule.id,
            code=rule.code,
            discount_type=rule.category,
            name=rule.name,
            min_purchase_amount=rule.min_purchase_amount,
            end_datetime=rule.end_datetime,
            **fields,
        )


class ValidateDiscountRequest(BaseModel):
    order_amount: Decimal = Field(ge=0)
    store_uid: Optional[uuid.UUID] = None
    product_type_uids: List[uuid.UUID] = []


class ValidateDiscountResponse(BaseModel):
    valid: bool
    reason: Optional[IneligibilityReason] = None
    discount: Optional[DiscountSummary] = None
    amount: Optional[Money] = None


class CartRequest(BaseModel):
    items: List[CartItemInput]


class AvailableDiscountResponse(DiscountSummary):
    store_uids: List[uuid.UUID]
    estimated_savings: Money


class RecommendedCode(BaseModel):
    discount_uid: uuid.UUID
    code: str
    name: str
    category: DiscountCategory
    savings: Money


class RecommendedDiscountsResponse(BaseModel):
    shipping: Optional[RecommendedCode] = None
    seasonal: Optional[RecommendedCode] = None
    specials: List[AppliedDiscountResponse] = []
    total_savings: Money
    total: Money
