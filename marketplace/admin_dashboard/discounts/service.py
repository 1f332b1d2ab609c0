from sqlmodel import select, func
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Optional
import logging
import secrets
import string
import uuid

from marketplace.auth.dependencies import Actor
from marketplace.config import Config
from marketplace.db.models import (
    Discount,
    OrderDiscount,
    ProductType,
    SeasonalDiscount,
    ShippingDiscount,
    SpecialDiscount,
    Store,
    utcnow,
)
from marketplace.errors import (
    DiscountCodeConflict,
    DiscountNotFound,
    InsufficientPermission,
    InvalidDiscountPayload,
    InvalidDiscountWindow,
    StoreNotFound,
)
from marketplace.pricing.schemas import CreatedByType, DiscountCategory, as_utc
from .schemas import (
    DiscountCreate,
    DiscountDeleteResponse,
    DiscountResponse,
    DiscountUpdate,
    PaginatedDiscountResponse,
)

CODE_PREFIXES = {
    DiscountCategory.seasonal: "SEAS",
    DiscountCategory.shipping: "SHIP",
    DiscountCategory.special: "SPEC",
}
CODE_ALPHABET = string.ascii_uppercase + string.digits

# columns an update may not clear; an explicit null leaves them unchanged
REQUIRED_FIELDS = {"name", "min_purchase_amount", "start_datetime", "end_datetime", "is_active"}


def generate_discount_code(category: DiscountCategory) -> str:
    """SEAS_X7K2, SHIP_Q9M4, SPEC_A93F ..."""
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(4))
    return f"{CODE_PREFIXES[category]}_{suffix}"


def _details_for(data, category: DiscountCategory, required: bool):
    details = {
        DiscountCategory.seasonal: data.seasonal_details,
        DiscountCategory.special: data.special_details,
        DiscountCategory.shipping: data.shipping_details,
    }
    for other, value in details.items():
        if other != category and value is not None:
            raise InvalidDiscountPayload(f"A {category.value} discount cannot carry {other.value} details")
    if required and details[category] is None:
        raise InvalidDiscountPayload(f"{category.value.capitalize()} discount details are required")
    return details[category]


class DiscountService:
    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def _generate_unique_code(self, session: AsyncSession, category: DiscountCategory) -> str:
        for _ in range(Config.DISCOUNT_CODE_MAX_RETRIES):
            code = generate_discount_code(category)
            result = await session.exec(select(Discount.uid).where(Discount.code == code))
            if result.first() is None:
                return code
            self.logger.info(f"Discount code {code} already taken, retrying")
        raise DiscountCodeConflict("Failed to generate unique discount code")

    async def _check_store_scope(self, session: AsyncSession, details, actor: Actor) -> None:
        store = await session.get(Store, details.store_uid)
        if not store:
            raise StoreNotFound()
        if not actor.is_admin and store.seller_uid != actor.uid:
            raise InsufficientPermission("Sellers can only discount their own stores")
        if details.product_type_uid is not None:
            product_type = await session.get(ProductType, details.product_type_uid)
            if not product_type or product_type.store_uid != store.uid:
                raise InvalidDiscountPayload("Product type does not belong to the discounted store")

    def _ensure_can_manage(self, discount: Discount, actor: Actor) -> None:
        if actor.is_admin:
            return
        if discount.created_by_uid != actor.uid:
            raise InsufficientPermission("Sellers can only manage discounts they created")

    async def get_discount(self, session: AsyncSession, uid: uuid.UUID) -> Discount:
        result = await session.exec(select(Discount).where(Discount.uid == uid).execution_options(populate_existing=True))
        discount = result.first()
        if not discount:
            raise DiscountNotFound(f"Discount with ID {uid} not found")
        return discount

    async def get_discount_by_code(self, session: AsyncSession, code: str) -> Optional[Discount]:
        result = await session.exec(select(Discount).where(Discount.code == code.strip().upper()).execution_options(populate_existing=True))
        return result.first()

    async def list_discounts(
        self,
        session: AsyncSession,
        discount_type: Optional[DiscountCategory] = None,
        is_active: Optional[bool] = None,
        created_by_uid: Optional[uuid.UUID] = None,
        store_uid: Optional[uuid.UUID] = None,
        page: int = 1,
        limit: int = 10,
    ) -> PaginatedDiscountResponse:
        def filtered(stmt):
            if discount_type is not None:
                stmt = stmt.where(Discount.discount_type == discount_type)
            if is_active is not None:
                stmt = stmt.where(Discount.is_active == is_active)
            if created_by_uid is not None:
                stmt = stmt.where(Discount.created_by_uid == created_by_uid)
            if store_uid is not None:
                stmt = stmt.join(SpecialDiscount, SpecialDiscount.discount_uid == Discount.uid).where(
                    SpecialDiscount.store_uid == store_uid
                )
            return stmt

        count_result = await session.exec(filtered(select(func.count(Discount.uid))))
        total = count_result.one()

        stmt = (
            filtered(select(Discount))
            .order_by(Discount.created_at.desc(), Discount.uid)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await session.exec(stmt)
        return PaginatedDiscountResponse(
            data=[DiscountResponse.model_validate(d) for d in result.all()],
            total=total,
            page=page,
            limit=limit,
        )

    async def create_discount(self, session: AsyncSession, data: DiscountCreate, actor: Actor) -> Discount:
        if not actor.is_admin and data.discount_type != DiscountCategory.special:
            raise InsufficientPermission("Seller can only create special discount")

        start, end = as_utc(data.start_datetime), as_utc(data.end_datetime)
        if start >= end:
            raise InvalidDiscountWindow()

        details = _details_for(data, data.discount_type, required=True)
        if data.discount_type == DiscountCategory.special:
            await self._check_store_scope(session, details, actor)

        discount = Discount(
            code=await self._generate_unique_code(session, data.discount_type),
            discount_type=data.discount_type,
            name=data.name,
            description=data.description,
            min_purchase_amount=data.min_purchase_amount,
            start_datetime=start,
            end_datetime=end,
            is_active=data.is_active,
            usage_limit=data.usage_limit,
            usage_count=0,
            created_by_type=CreatedByType.system if actor.is_admin else CreatedByType.seller,
            created_by_uid=actor.uid,
        )
        if data.discount_type == DiscountCategory.seasonal:
            discount.seasonal_discount = SeasonalDiscount(**details.model_dump())
        elif data.discount_type == DiscountCategory.special:
            discount.special_discount = SpecialDiscount(**details.model_dump())
        else:
            discount.shipping_discount = ShippingDiscount(**details.model_dump())

        session.add(discount)
        await session.commit()
        self.logger.info(f"Created {data.discount_type.value} discount {discount.code} by {actor.role} {actor.uid}")
        return await self.get_discount(session, discount.uid)

    async def update_discount(self, session: AsyncSession, uid: uuid.UUID, data: DiscountUpdate, actor: Actor) -> Discount:
        discount = await self.get_discount(session, uid)
        self._ensure_can_manage(discount, actor)

        update_data = data.model_dump(
            exclude_unset=True,
            exclude={"seasonal_details", "special_details", "shipping_details"},
        )
        update_data = {k: v for k, v in update_data.items() if v is not None or k not in REQUIRED_FIELDS}
        start = as_utc(update_data.get("start_datetime") or discount.start_datetime)
        end = as_utc(update_data.get("end_datetime") or discount.end_datetime)
        if start >= end:
            raise InvalidDiscountWindow()
        if "start_datetime" in update_data:
            update_data["start_datetime"] = start
        if "end_datetime" in update_data:
            update_data["end_datetime"] = end

        details = _details_for(data, discount.discount_type, required=False)
        if details is not None and discount.discount_type == DiscountCategory.special:
            await self._check_store_scope(session, details, actor)

        for k, v in update_data.items():
            setattr(discount, k, v)

        if details is not None:
            attr = f"{discount.discount_type.value}_discount"
            row = getattr(discount, attr)
            if row is None:
                model = {
                    DiscountCategory.seasonal: SeasonalDiscount,
                    DiscountCategory.special: SpecialDiscount,
                    DiscountCategory.shipping: ShippingDiscount,
                }[discount.discount_type]
                setattr(discount, attr, model(**details.model_dump()))
            else:
                for k, v in details.model_dump(exclude_unset=True).items():
                    setattr(row, k, v)

        discount.updated_at = utcnow()
        session.add(discount)
        await session.commit()
        return await self.get_discount(session, discount.uid)

    async def set_active(self, session: AsyncSession, uid: uuid.UUID, is_active: bool, actor: Actor) -> Discount:
        discount = await self.get_discount(session, uid)
        self._ensure_can_manage(discount, actor)
        if discount.is_active != is_active:
            discount.is_active = is_active
            discount.updated_at = utcnow()
            session.add(discount)
            await session.commit()
            self.logger.info(f"Discount {discount.code} {'activated' if is_active else 'deactivated'}")
        return discount

    async def delete_discount(self, session: AsyncSession, uid: uuid.UUID) -> DiscountDeleteResponse:
        """Delete a discount, or only deactivate it when placed orders reference it."""
        discount = await self.get_discount(session, uid)
        result = await session.exec(
            select(func.count(OrderDiscount.uid)).where(OrderDiscount.discount_uid == uid)
        )
        if result.one() > 0:
            discount.is_active = False
            discount.updated_at = utcnow()
            session.add(discount)
            await session.commit()
            return DiscountDeleteResponse(
                uid=uid, deleted=False, deactivated=True,
                message="Discount is referenced by orders and was deactivated instead",
            )

        await session.delete(discount)
        await session.commit()
        return DiscountDeleteResponse(uid=uid, deleted=True, deactivated=False, message="Discount deleted successfully")
