from datetime import datetime
from typing import List, Optional, Annotated
import uuid
from pydantic import BaseModel, Field, ConfigDict, PlainSerializer
from decimal import Decimal

from marketplace.db.models import OrderStatus
from marketplace.pricing.schemas import (
    AppliedDiscount,
    DiscountCategory,
    IneligibilityReason,
    OrderPricingResult,
    PricingReport,
)

# Monetary values leave the API as JSON numbers rounded to cents.
Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(round(Decimal(str(v)), 2)), return_type=float, when_used="json"),
]


class ShippingAddressInput(BaseModel):
    full_name: str
    phone_number: str
    country: str
    city: str
    area: str
    street: str
    building_number: Optional[str] = None
    zip_code: Optional[str] = None
    notes: Optional[str] = None


class CartItemInput(BaseModel):
    product_uid: uuid.UUID
    quantity: int
    selected: bool = True


class DiscountCodesInput(BaseModel):
    shipping: Optional[str] = None
    seasonal: Optional[str] = None


class CheckoutPreviewRequest(BaseModel):
    items: List[CartItemInput]
    discount_codes: DiscountCodesInput = Field(default_factory=DiscountCodesInput)


class CheckoutCreate(CheckoutPreviewRequest):
    shipping_address: Optional[ShippingAddressInput] = None
    payment_method: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = None
    idempotency_key: Optional[str] = Field(default=None, max_length=128)


# --- pricing breakdown ---
class PricedLineResponse(BaseModel):
    product_uid: uuid.UUID
    product_name: str
    unit_price: Money
    quantity: int
    line_total: Money


class AppliedDiscountResponse(BaseModel):
    discount_uid: uuid.UUID
    code: str
    name: str
    category: DiscountCategory
    amount: Money

    @classmethod
    def from_applied(cls, applied: Optional[AppliedDiscount]) -> Optional["AppliedDiscountResponse"]:
        if applied is None:
            return None
        return cls(
            discount_uid=applied.discount_id,
            code=applied.code,
            name=applied.name,
            category=applied.category,
            amount=applied.amount,
        )


class RejectedCodeResponse(BaseModel):
    code: str
    category: DiscountCategory
    reason: IneligibilityReason


class ExcludedDiscountResponse(BaseModel):
    discount_uid: uuid.UUID
    code: str
    problem: str


class StorePricingResponse(BaseModel):
    store_uid: uuid.UUID
    store_name: str
    items: List[PricedLineResponse]
    subtotal: Money
    base_shipping_fee: Money
    shipping: Money
    shipping_discount: Money
    free_shipping: bool
    shipping_code: Optional[AppliedDiscountResponse] = None
    seasonal: Optional[AppliedDiscountResponse] = None
    special: Optional[AppliedDiscountResponse] = None
    total_discount: Money
    total: Money
    needs_review: bool
    anomalies: List[str] = []
    rejected_codes: List[RejectedCodeResponse] = []

    @classmethod
    def from_result(cls, result: OrderPricingResult) -> "StorePricingResponse":
        return cls(
            store_uid=result.store_id,
            store_name=result.store_name,
            items=[
                PricedLineResponse(
                    product_uid=line.product_id,
                    product_name=line.product_name,
                    unit_price=line.price,
                    quantity=line.quantity,
                    line_total=line.line_total,
                )
                for line in result.items
            ],
            subtotal=result.subtotal,
            base_shipping_fee=result.base_shipping_fee,
            shipping=result.shipping,
            shipping_discount=result.shipping_discount,
            free_shipping=result.free_shipping,
            shipping_code=AppliedDiscountResponse.from_applied(result.shipping_code),
            seasonal=AppliedDiscountResponse.from_applied(result.seasonal),
            special=AppliedDiscountResponse.from_applied(result.special),
            total_discount=result.total_discount,
            total=result.total,
            needs_review=result.needs_review,
            anomalies=list(result.anomalies),
            rejected_codes=[RejectedCodeResponse(**r.model_dump()) for r in result.rejected_codes],
        )


class CheckoutPreviewResponse(BaseModel):
    evaluated_at: datetime
    stores: List[StorePricingResponse]
    excluded_discounts: List[ExcludedDiscountResponse] = []
    subtotal: Money
    shipping: Money
    total_discount: Money
    total: Money
    needs_review: bool

    @classmethod
    def from_report(cls, report: PricingReport) -> "CheckoutPreviewResponse":
        return cls(
            evaluated_at=report.evaluated_at,
            stores=[StorePricingResponse.from_result(r) for r in report.results],
            excluded_discounts=[
                ExcludedDiscountResponse(discount_uid=e.discount_id, code=e.code, problem=e.problem)
                for e in report.excluded_discounts
            ],
            subtotal=report.subtotal,
            shipping=report.shipping,
            total_discount=report.total_discount,
            total=report.total,
            needs_review=report.needs_review,
        )


# --- persisted orders ---
class OrderItemResponse(BaseModel):
    uid: uuid.UUID
    product_uid: uuid.UUID
    product_name: str
    quantity: int
    unit_price: Money
    subtotal: Money

    model_config = ConfigDict(from_attributes=True)


class OrderDiscountResponse(BaseModel):
    discount_uid: uuid.UUID
    discount_type: DiscountCategory
    discount_code: str
    discount_name: str
    discount_amount: Money

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    uid: uuid.UUID
    order_number: str
    buyer_uid: uuid.UUID
    store_uid: uuid.UUID
    store_name: str
    status: OrderStatus
    subtotal: Money
    shipping_fee: Money
    shipping_discount: Money
    total_discount: Money
    total_amount: Money
    needs_review: bool
    review_notes: Optional[str] = None
    payment_method: Optional[str] = None
    idempotency_key: Optional[str] = None
    shipping_address_snapshot: Optional[dict] = None
    notes: Optional[str] = None
    created_at: datetime
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItemResponse]
    discounts: List[OrderDiscountResponse]

    model_config = ConfigDict(from_attributes=True)


class CheckoutResponse(BaseModel):
    orders: List[OrderResponse]
    rejected_codes: List[RejectedCodeResponse] = []
    replayed: bool = False
