"""Read-side helpers that turn stored rows into pricing engine snapshots.

The engine only ever sees what these functions return, fetched once per
request, so a checkout is priced against a single consistent view of the
catalogue and the discount table.
"""
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence
from sqlalchemy import and_, or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.db.models import Discount, Product
from marketplace.errors import ProductNotFound
from marketplace.pricing.schemas import (
    CartLine,
    DiscountRule,
    RateDetails,
    ShippingDetails,
    SpecialDetails,
    as_utc,
)


def to_rule(discount: Discount) -> DiscountRule:
    seasonal = special = shipping = None
    if discount.seasonal_discount is not None:
        seasonal = RateDetails(
            discount_rate=discount.seasonal_discount.discount_rate,
            max_discount_amount=discount.seasonal_discount.max_discount_amount,
        )
    if discount.special_discount is not None:
        row = discount.special_discount
        special = SpecialDetails(
            store_id=str(row.store_uid),
            product_type_id=str(row.product_type_uid) if row.product_type_uid else None,
            discount_rate=row.discount_rate,
            max_discount_amount=row.max_discount_amount,
        )
    if discount.shipping_discount is not None:
        shipping = ShippingDetails(discount_amount=discount.shipping_discount.discount_amount)

    return DiscountRule(
        id=str(discount.uid),
        code=discount.code,
        category=discount.discount_type,
        name=discount.name,
        min_purchase_amount=discount.min_purchase_amount or Decimal("0"),
        start_datetime=discount.start_datetime,
        end_datetime=discount.end_datetime,
        is_active=discount.is_active,
        usage_limit=discount.usage_limit,
        usage_count=discount.usage_count or 0,
        created_by_type=discount.created_by_type,
        created_by_id=str(discount.created_by_uid) if discount.created_by_uid else None,
        seasonal=seasonal,
        special=special,
        shipping=shipping,
    )


async def load_discount_rules(session: AsyncSession, now: datetime, codes: Iterable[str] = ()) -> List[DiscountRule]:
    """Discounts live at ``now`` plus any explicitly requested codes.

    Requested codes are fetched even when inactive or expired so the engine
    can say why they were not applied. Rules come back ordered by id.
    """
    now = as_utc(now)
    live = and_(
        Discount.is_active == True,  # noqa: E712
        Discount.start_datetime <= now,
        Discount.end_datetime > now,
    )
    codes = [c.strip().upper() for c in codes if c]
    condition = or_(live, Discount.code.in_(codes)) if codes else live

    result = await session.exec(
        select(Discount).where(condition).execution_options(populate_existing=True)
    )
    return sorted((to_rule(d) for d in result.all()), key=lambda rule: rule.id)


async def load_cart_lines(session: AsyncSession, items: Sequence) -> List[CartLine]:
    """Re-read prices and store ownership for the requested cart items.

    ``items`` carry ``product_uid``, ``quantity`` and ``selected``; the price
    always comes from the product row, never from the client. Unselected
    items whose product is gone are dropped instead of failing the cart.
    """
    uids = {item.product_uid for item in items}
    products = {}
    if uids:
        result = await session.exec(
            select(Product).where(Product.uid.in_(uids)).execution_options(populate_existing=True)
        )
        products = {p.uid: p for p in result.all()}

    lines = []
    for item in items:
        product = products.get(item.product_uid)
        if product is None or not product.is_active:
            if not item.selected:
                continue
            raise ProductNotFound(f"Product {item.product_uid} is not available", product_uid=str(item.product_uid))
        lines.append(CartLine(
            product_id=str(product.uid),
            product_name=product.name,
            store_id=str(product.store_uid),
            store_name=product.store.name if product.store else "",
            product_type_id=str(product.product_type_uid) if product.product_type_uid else None,
            price=product.price,
            quantity=item.quantity,
            selected=item.selected,
        ))
    return lines


async def load_discount_rule(session: AsyncSession, code: str) -> Optional[DiscountRule]:
    result = await session.exec(
        select(Discount)
        .where(Discount.code == code.strip().upper())
        .execution_options(populate_existing=True)
    )
    discount = result.first()
    return to_rule(discount) if discount else None
