from sqlmodel import Relationship, SQLModel, Field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
import random
import time
import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, JSON, UniqueConstraint
from enum import Enum

from marketplace.pricing.schemas import CreatedByType, DiscountCategory


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


"""
___________________________________________________

1.  Store / Catalogue Tables
___________________________________________________

"""
class Store(SQLModel, table=True):
    __tablename__ = "stores"

    uid: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(sa_column=Column(String, nullable=False))
    seller_uid: uuid.UUID = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))

    products: List["Product"] = Relationship(back_populates="store", sa_relationship_kwargs={'lazy': 'selectin'})

    def __repr__(self):
        return f"<Store {self.name}>"


class ProductType(SQLModel, table=True):
    __tablename__ = "product_types"

    uid: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    store_uid: uuid.UUID = Field(foreign_key="stores.uid", index=True)
    name: str = Field(sa_column=Column(String, nullable=False))


class Product(SQLModel, table=True):
    __tablename__ = "products"

    uid: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    store_uid: uuid.UUID = Field(foreign_key="stores.uid", index=True)
    product_type_uid: Optional[uuid.UUID] = Field(default=None, foreign_key="product_types.uid")
    name: str = Field(sa_column=Column(String, nullable=False))
    price: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))  # 10 total digits, 2 decimal places
    is_active: bool = Field(nullable=False, default=True)

    store: Optional[Store] = Relationship(back_populates="products", sa_relationship_kwargs={'lazy': 'selectin'})

    def __repr__(self):
        return f"<Product {self.name}>"


"""
___________________________________________________

2.  Discount Tables
___________________________________________________

One base row per discount plus exactly one detail row in the table matching
its category.
"""
class Discount(SQLModel, table=True):
    __tablename__ = "discounts"

    uid: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    code: str = Field(sa_column=Column(String(32), unique=True, index=True, nullable=False))
    discount_type: DiscountCategory = Field(index=True)
    name: str = Field(sa_column=Column(String(120), nullable=False))
    description: Optional[str] = None
    min_purchase_amount: Decimal = Field(default=Decimal("0"), sa_column=Column(Numeric(10, 2), nullable=False, default=0))
    start_datetime: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    end_datetime: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    is_active: bool = True
    usage_limit: Optional[int] = None
    usage_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    created_by_type: CreatedByType = Field(default=CreatedByType.system)
    created_by_uid: Optional[uuid.UUID] = None
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))

    seasonal_discount: Optional["SeasonalDiscount"] = Relationship(
        back_populates="discount",
        sa_relationship_kwargs={'lazy': 'selectin', 'uselist': False, 'cascade': 'all, delete-orphan'},
    )
    special_discount: Optional["SpecialDiscount"] = Relationship(
        back_populates="discount",
        sa_relationship_kwargs={'lazy': 'selectin', 'uselist': False, 'cascade': 'all, delete-orphan'},
    )
    shipping_discount: Optional["ShippingDiscount"] = Relationship(
        back_populates="discount",
        sa_relationship_kwargs={'lazy': 'selectin', 'uselist': False, 'cascade': 'all, delete-orphan'},
    )

    def __repr__(self):
        return f"<Discount {self.code}>"


class SeasonalDiscount(SQLModel, table=True):
    __tablename__ = "seasonal_discounts"

    discount_uid: uuid.UUID = Field(foreign_key="discounts.uid", primary_key=True)
    discount_rate: Decimal = Field(sa_column=Column(Numeric(5, 4), nullable=False))  # 0.1000 == 10%
    max_discount_amount: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(10, 2), nullable=True))

    discount: Optional[Discount] = Relationship(back_populates="seasonal_discount")


class SpecialDiscount(SQLModel, table=True):
    __tablename__ = "special_discounts"

    discount_uid: uuid.UUID = Field(foreign_key="discounts.uid", primary_key=True)
    store_uid: uuid.UUID = Field(foreign_key="stores.uid", index=True)
    product_type_uid: Optional[uuid.UUID] = Field(default=None, foreign_key="product_types.uid")
    discount_rate: Decimal = Field(sa_column=Column(Numeric(5, 4), nullable=False))
    max_discount_amount: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(10, 2), nullable=True))

    discount: Optional[Discount] = Relationship(back_populates="special_discount")


class ShippingDiscount(SQLModel, table=True):
    __tablename__ = "shipping_discounts"

    discount_uid: uuid.UUID = Field(foreign_key="discounts.uid", primary_key=True)
    discount_amount: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))

    discount: Optional[Discount] = Relationship(back_populates="shipping_discount")


"""
___________________________________________________

3.  Orders Tables
___________________________________________________

Every number on these rows is copied from the pricing result at commit time.
Nothing here is recomputed from live discount data.
"""
def generate_order_number() -> str:
    return f"ORD{int(time.time() * 1000)}{random.randint(0, 9999):04d}"  # Example: ORD17296000000000042


class OrderStatus(str, Enum):
    pending_payment = "pending_payment"
    payment_failed = "payment_failed"
    paid = "paid"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    completed = "completed"
    cancelled = "cancelled"


class Order(SQLModel, table=True):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("buyer_uid", "idempotency_key", "store_uid", name="uq_order_idempotency_store"),
    )

    uid: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_number: str = Field(default_factory=generate_order_number, sa_column=Column(String(50), unique=True, index=True, nullable=False))
    buyer_uid: uuid.UUID = Field(index=True)
    store_uid: uuid.UUID = Field(foreign_key="stores.uid", index=True)
    store_name: str = ""
    status: OrderStatus = Field(default=OrderStatus.pending_payment)

    subtotal: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    shipping_fee: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    shipping_discount: Decimal = Field(default=Decimal("0"), sa_column=Column(Numeric(10, 2), nullable=False, default=0))
    total_discount: Decimal = Field(default=Decimal("0"), sa_column=Column(Numeric(10, 2), nullable=False, default=0))
    total_amount: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    needs_review: bool = False
    review_notes: Optional[str] = None

    payment_method: Optional[str] = None
    idempotency_key: Optional[str] = Field(default=None, index=True)
    shipping_address_snapshot: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    notes: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    paid_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    shipped_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    delivered_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    cancelled_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))

    items: List["OrderItem"] = Relationship(back_populates="order", sa_relationship_kwargs={'lazy': 'selectin', 'cascade': 'all, delete-orphan'})
    discounts: List["OrderDiscount"] = Relationship(back_populates="order", sa_relationship_kwargs={'lazy': 'selectin', 'cascade': 'all, delete-orphan'})


class OrderItem(SQLModel, table=True):
    __tablename__ = "order_items"

    uid: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_uid: uuid.UUID = Field(foreign_key="orders.uid", index=True)
    product_uid: uuid.UUID = Field(foreign_key="products.uid")
    product_name: str
    quantity: int
    unit_price: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    subtotal: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))

    order: Optional[Order] = Relationship(back_populates="items")


class OrderDiscount(SQLModel, table=True):
    __tablename__ = "order_discounts"
    __table_args__ = (
        UniqueConstraint("order_uid", "discount_type", name="uq_order_discount_type"),
    )

    uid: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    order_uid: uuid.UUID = Field(foreign_key="orders.uid", index=True)
    discount_uid: uuid.UUID = Field(foreign_key="discounts.uid", index=True)
    discount_type: DiscountCategory
    discount_code: str
    discount_name: str
    discount_amount: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    applied_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))

    order: Optional[Order] = Relationship(back_populates="discounts")
