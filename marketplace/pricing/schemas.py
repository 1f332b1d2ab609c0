"""Value types shared by the checkout pricing engine.

Everything here is an immutable snapshot: the engine never reads the database
or the clock, callers build these models from whatever they fetched and pass
them in. Money is ``Decimal`` throughout.
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_utc(value: datetime) -> datetime:
    """Naive timestamps coming out of the store are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DiscountCategory(str, Enum):
    shipping = "shipping"
    seasonal = "seasonal"
    special = "special"


class CreatedByType(str, Enum):
    system = "system"
    seller = "seller"


class IneligibilityReason(str, Enum):
    malformed_payload = "malformed_payload"
    inactive = "inactive"
    not_started = "not_started"
    expired = "expired"
    usage_limit_reached = "usage_limit_reached"
    below_minimum_purchase = "below_minimum_purchase"
    wrong_store = "wrong_store"
    product_type_mismatch = "product_type_mismatch"
    # buyer-code outcomes that never reach the eligibility rules
    unknown_code = "unknown_code"
    wrong_category = "wrong_category"
    shipping_already_free = "shipping_already_free"
    zero_amount = "zero_amount"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class RateDetails(_Frozen):
    discount_rate: Decimal
    max_discount_amount: Optional[Decimal] = None


class SpecialDetails(RateDetails):
    store_id: str
    product_type_id: Optional[str] = None


class ShippingDetails(_Frozen):
    discount_amount: Decimal


DiscountPayload = Union[RateDetails, SpecialDetails, ShippingDetails]


class DiscountRule(_Frozen):
    """Point-in-time copy of a discount and its category payload.

    Exactly one of ``seasonal``/``special``/``shipping`` should be set and it
    must match ``category``. Rows that break this are still representable so
    the engine can report them instead of crashing.
    """
    id: str
    code: str
    category: DiscountCategory
    name: str
    min_purchase_amount: Decimal = Decimal("0")
    start_datetime: datetime
    end_datetime: datetime
    is_active: bool = True
    usage_limit: Optional[int] = None
    usage_count: int = 0
    created_by_type: CreatedByType = CreatedByType.system
    created_by_id: Optional[str] = None

    seasonal: Optional[RateDetails] = None
    special: Optional[SpecialDetails] = None
    shipping: Optional[ShippingDetails] = None

    @field_validator("start_datetime", "end_datetime")
    @classmethod
    def _normalise_timestamps(cls, value: datetime) -> datetime:
        return as_utc(value)

    def _populated(self) -> List[DiscountCategory]:
        return [
            category for category, details in (
                (DiscountCategory.seasonal, self.seasonal),
                (DiscountCategory.special, self.special),
                (DiscountCategory.shipping, self.shipping),
            ) if details is not None
        ]

    @property
    def integrity_problem(self) -> Optional[str]:
        populated = self._populated()
        if not populated:
            return f"{self.category.value} discount has no payload"
        if len(populated) > 1:
            names = ", ".join(c.value for c in populated)
            return f"{self.category.value} discount carries several payloads ({names})"
        if populated[0] != self.category:
            return f"{self.category.value} discount carries a {populated[0].value} payload"
        return None

    @property
    def payload(self) -> Optional[DiscountPayload]:
        if self.integrity_problem is not None:
            return None
        return getattr(self, self.category.value)


class CartLine(_Frozen):
    product_id: str
    product_name: str = ""
    store_id: str
    store_name: str = ""
    product_type_id: Optional[str] = None
    price: Decimal
    quantity: int
    selected: bool = True

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class StoreOrderGroup(_Frozen):
    store_id: str
    store_name: str = ""
    items: Tuple[CartLine, ...] = ()
    subtotal: Decimal = Decimal("0")

    @property
    def product_type_ids(self) -> frozenset:
        return frozenset(i.product_type_id for i in self.items if i.product_type_id is not None)


class EligibilityContext(_Frozen):
    subtotal: Decimal
    now: datetime
    store_id: str
    product_type_ids: frozenset = frozenset()

    @field_validator("now")
    @classmethod
    def _normalise_now(cls, value: datetime) -> datetime:
        return as_utc(value)


class DiscountSelections(_Frozen):
    """Codes the buyer typed in. Special discounts are never chosen by hand."""
    shipping_code: Optional[str] = None
    seasonal_code: Optional[str] = None

    @field_validator("shipping_code", "seasonal_code")
    @classmethod
    def _normalise_code(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip().upper() or None


class AppliedDiscount(_Frozen):
    discount_id: str
    code: str
    name: str
    category: DiscountCategory
    amount: Decimal


class RejectedCode(_Frozen):
    code: str
    category: DiscountCategory
    reason: IneligibilityReason


class ExcludedDiscount(_Frozen):
    discount_id: str
    code: str
    problem: str


class OrderPricingResult(_Frozen):
    store_id: str
    store_name: str = ""
    items: Tuple[CartLine, ...] = ()
    subtotal: Decimal
    base_shipping_fee: Decimal
    shipping: Decimal
    shipping_discount: Decimal
    shipping_code: Optional[AppliedDiscount] = None
    seasonal: Optional[AppliedDiscount] = None
    special: Optional[AppliedDiscount] = None
    total_discount: Decimal
    total: Decimal
    free_shipping: bool = False
    rejected_codes: Tuple[RejectedCode, ...] = ()
    anomalies: Tuple[str, ...] = ()

    @property
    def needs_review(self) -> bool:
        return bool(self.anomalies)

    @property
    def applied_discounts(self) -> List[AppliedDiscount]:
        return [d for d in (self.shipping_code, self.seasonal, self.special) if d is not None]


class PricingReport(_Frozen):
    results: Tuple[OrderPricingResult, ...] = ()
    excluded_discounts: Tuple[ExcludedDiscount, ...] = ()
    evaluated_at: datetime

    subtotal: Decimal = Field(default=Decimal("0"))
    shipping: Decimal = Field(default=Decimal("0"))
    total_discount: Decimal = Field(default=Decimal("0"))
    total: Decimal = Field(default=Decimal("0"))

    @property
    def needs_review(self) -> bool:
        return any(r.needs_review for r in self.results)
