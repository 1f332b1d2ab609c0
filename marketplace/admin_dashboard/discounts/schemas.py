from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
import uuid

from marketplace.pricing.schemas import CreatedByType, DiscountCategory


class SeasonalDetailsInput(BaseModel):
    discount_rate: Decimal = Field(gt=0, le=1)  # fraction of subtotal, 0.10 == 10%
    max_discount_amount: Optional[Decimal] = Field(default=None, ge=0)


class SpecialDetailsInput(SeasonalDetailsInput):
    store_uid: uuid.UUID
    product_type_uid: Optional[uuid.UUID] = None


class ShippingDetailsInput(BaseModel):
    discount_amount: Decimal = Field(gt=0)


class DiscountBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None
    min_purchase_amount: Decimal = Field(default=Decimal("0"), ge=0)
    start_datetime: datetime
    end_datetime: datetime
    is_active: bool = True
    usage_limit: Optional[int] = Field(default=None, ge=1)


class DiscountCreate(DiscountBase):
    discount_type: DiscountCategory
    seasonal_details: Optional[SeasonalDetailsInput] = None
    special_details: Optional[SpecialDetailsInput] = None
    shipping_details: Optional[ShippingDetailsInput] = None


class DiscountUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = None
    min_purchase_amount: Optional[Decimal] = Field(default=None, ge=0)
    start_datetime: Optional[datetime] = None
    end_datetime: Optional[datetime] = None
    is_active: Optional[bool] = None
    usage_limit: Optional[int] = Field(default=None, ge=1)
    seasonal_details: Optional[SeasonalDetailsInput] = None
    special_details: Optional[SpecialDetailsInput] = None
    shipping_details: Optional[ShippingDetailsInput] = None


class DiscountActiveToggle(BaseModel):
    is_active: bool


class SeasonalDetailsResponse(BaseModel):
    discount_rate: Decimal
    max_discount_amount: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)


class SpecialDetailsResponse(SeasonalDetailsResponse):
    store_uid: uuid.UUID
    product_type_uid: Optional[uuid.UUID] = None


class ShippingDetailsResponse(BaseModel):
    discount_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class DiscountResponse(BaseModel):
    uid: uuid.UUID
    code: str
    discount_type: DiscountCategory
    name: str
    description: Optional[str] = None
    min_purchase_amount: Decimal
    start_datetime: datetime
    end_datetime: datetime
    is_active: bool
    usage_limit: Optional[int] = None
    usage_count: int
    created_by_type: CreatedByType
    created_by_uid: Optional[uuid.UUID] = None
    created_at: datetime
    seasonal_discount: Optional[SeasonalDetailsResponse] = None
    special_discount: Optional[SpecialDetailsResponse] = None
    shipping_discount: Optional[ShippingDetailsResponse] = None

    model_config = ConfigDict(from_attributes=True)


class PaginatedDiscountResponse(BaseModel):
    data: List[DiscountResponse]
    total: int
    page: int
    limit: int


class DiscountDeleteResponse(BaseModel):
    uid: uuid.UUID
    deleted: bool
    deactivated: bool
    message: str
