"""Admin and seller discount management against a real (in-memory) database."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlmodel import select

from marketplace.admin_dashboard.discounts.schemas import (
    DiscountCreate,
    DiscountUpdate,
    SeasonalDetailsInput,
    ShippingDetailsInput,
    SpecialDetailsInput,
)
from marketplace.admin_dashboard.discounts.service import (
    CODE_ALPHABET,
    DiscountService,
    generate_discount_code,
)
from marketplace.auth.dependencies import Actor
from marketplace.db.models import Discount, Order, OrderDiscount, utcnow
from marketplace.errors import (
    DiscountCodeConflict,
    DiscountNotFound,
    InsufficientPermission,
    InvalidDiscountPayload,
    InvalidDiscountWindow,
    StoreNotFound,
)
from marketplace.pricing.schemas import CreatedByType, DiscountCategory
from tests.factories import DiscountFactory, ProductTypeFactory, StoreFactory

pytestmark = pytest.mark.integration

service = DiscountService()


def seasonal_payload(**overrides):
    data = dict(
        name="Spring sale",
        discount_type=DiscountCategory.seasonal,
        start_datetime=utcnow() - timedelta(hours=1),
        end_datetime=utcnow() + timedelta(days=7),
        seasonal_details=SeasonalDetailsInput(discount_rate=Decimal("0.10"), max_discount_amount=Decimal("50")),
    )
    data.update(overrides)
    return DiscountCreate(**data)


def special_payload(store_uid, product_type_uid=None, **overrides):
    data = dict(
        name="Store week",
        discount_type=DiscountCategory.special,
        start_datetime=utcnow() - timedelta(hours=1),
        end_datetime=utcnow() + timedelta(days=7),
        special_details=SpecialDetailsInput(
            store_uid=store_uid,
            product_type_uid=product_type_uid,
            discount_rate=Decimal("0.20"),
        ),
    )
    data.update(overrides)
    return DiscountCreate(**data)


class TestCodeGeneration:
    @pytest.mark.parametrize(
        "category, prefix",
        [
            (DiscountCategory.seasonal, "SEAS_"),
            (DiscountCategory.shipping, "SHIP_"),
            (DiscountCategory.special, "SPEC_"),
        ],
    )
    def test_format(self, category, prefix):
        code = generate_discount_code(category)
        assert code.startswith(prefix)
        assert len(code) == len(prefix) + 4
        assert all(c in CODE_ALPHABET for c in code[len(prefix):])

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self, db_session, admin, monkeypatch):
        taken = DiscountFactory.seasonal(code="SEAS_AAAA")
        db_session.add(taken)
        await db_session.commit()

        monkeypatch.setattr(
            "marketplace.admin_dashboard.discounts.service.generate_discount_code",
            lambda category: "SEAS_AAAA",
        )
        with pytest.raises(DiscountCodeConflict):
            await service.create_discount(db_session, seasonal_payload(), admin)


class TestAdminDiscounts:
    @pytest.mark.asyncio
    async def test_create_seasonal(self, db_session, admin):
        discount = await service.create_discount(db_session, seasonal_payload(), admin)

        assert discount.code.startswith("SEAS_")
        assert discount.created_by_type == CreatedByType.system
        assert discount.created_by_uid == admin.uid
        assert discount.usage_count == 0
        assert discount.seasonal_discount.discount_rate == Decimal("0.10")
        assert discount.special_discount is None

    @pytest.mark.asyncio
    async def test_create_shipping(self, db_session, admin):
        data = DiscountCreate(
            name="Ship cheaper",
            discount_type=DiscountCategory.shipping,
            start_datetime=utcnow(),
            end_datetime=utcnow() + timedelta(days=1),
            shipping_details=ShippingDetailsInput(discount_amount=Decimal("20")),
        )
        discount = await service.create_discount(db_session, data, admin)
        assert discount.shipping_discount.discount_amount == Decimal("20")

    @pytest.mark.asyncio
    async def test_window_must_be_ordered(self, db_session, admin):
        now = utcnow()
        with pytest.raises(InvalidDiscountWindow):
            await service.create_discount(db_session, seasonal_payload(start_datetime=now, end_datetime=now), admin)

    @pytest.mark.asyncio
    async def test_payload_required_for_category(self, db_session, admin):
        with pytest.raises(InvalidDiscountPayload):
            await service.create_discount(db_session, seasonal_payload(seasonal_details=None), admin)

    @pytest.mark.asyncio
    async def test_payload_of_other_category_rejected(self, db_session, admin):
        data = seasonal_payload(shipping_details=ShippingDetailsInput(discount_amount=Decimal("5")))
        with pytest.raises(InvalidDiscountPayload):
            await service.create_discount(db_session, data, admin)

    @pytest.mark.asyncio
    async def test_special_for_unknown_store(self, db_session, admin):
        with pytest.raises(StoreNotFound):
            await service.create_discount(db_session, special_payload(uuid.uuid4()), admin)

    @pytest.mark.asyncio
    async def test_update_fields_and_payload(self, db_session, admin):
        discount = await service.create_discount(db_session, seasonal_payload(), admin)

        updated = await service.update_discount(
            db_session,
            discount.uid,
            DiscountUpdate(
                name="Summer sale",
                usage_limit=10,
                seasonal_details=SeasonalDetailsInput(discount_rate=Decimal("0.25")),
            ),
            admin,
        )

        assert updated.name == "Summer sale"
        assert updated.usage_limit == 10
        assert updated.seasonal_discount.discount_rate == Decimal("0.25")
        assert updated.code == discount.code

    @pytest.mark.asyncio
    async def test_update_checks_merged_window(self, db_session, admin):
        discount = await service.create_discount(db_session, seasonal_payload(), admin)
        with pytest.raises(InvalidDiscountWindow):
            await service.update_discount(
                db_session,
                discount.uid,
                DiscountUpdate(end_datetime=discount.start_datetime - timedelta(days=1)),
                admin,
            )

    @pytest.mark.asyncio
    async def test_toggle_active(self, db_session, admin):
        discount = await service.create_discount(db_session, seasonal_payload(), admin)

        toggled = await service.set_active(db_session, discount.uid, False, admin)
        assert toggled.is_active is False

    @pytest.mark.asyncio
    async def test_list_filters_and_paginates(self, db_session, admin):
        store = StoreFactory.create()
        db_session.add(store)
        db_session.add_all([
            DiscountFactory.seasonal(),
            DiscountFactory.seasonal(is_active=False),
            DiscountFactory.shipping(),
            DiscountFactory.special(store),
        ])
        await db_session.commit()

        seasonal = await service.list_discounts(db_session, discount_type=DiscountCategory.seasonal)
        assert seasonal.total == 2

        active_seasonal = await service.list_discounts(db_session, discount_type=DiscountCategory.seasonal, is_active=True)
        assert active_seasonal.total == 1

        for_store = await service.list_discounts(db_session, store_uid=store.uid)
        assert [d.discount_type for d in for_store.data] == [DiscountCategory.special]

        page = await service.list_discounts(db_session, page=2, limit=3)
        assert page.total == 4
        assert len(page.data) == 1

    @pytest.mark.asyncio
    async def test_get_missing(self, db_session):
        with pytest.raises(DiscountNotFound):
            await service.get_discount(db_session, uuid.uuid4())


class TestDelete:
    @pytest.mark.asyncio
    async def test_unreferenced_discount_is_deleted(self, db_session, admin):
        discount = DiscountFactory.seasonal()
        db_session.add(discount)
        await db_session.commit()

        result = await service.delete_discount(db_session, discount.uid)

        assert result.deleted and not result.deactivated
        assert await service.get_discount_by_code(db_session, discount.code) is None

    @pytest.mark.asyncio
    async def test_referenced_discount_is_only_deactivated(self, db_session, admin):
        store = StoreFactory.create()
        discount = DiscountFactory.seasonal()
        order = Order(
            buyer_uid=uuid.uuid4(),
            store_uid=store.uid,
            store_name=store.name,
            subtotal=Decimal("100"),
            shipping_fee=Decimal("60"),
            total_discount=Decimal("10"),
            total_amount=Decimal("150"),
        )
        order.discounts = [
            OrderDiscount(
                discount_uid=discount.uid,
                discount_type=DiscountCategory.seasonal,
                discount_code=discount.code,
                discount_name=discount.name,
                discount_amount=Decimal("10"),
            )
        ]
        db_session.add_all([store, discount, order])
        await db_session.commit()

        result = await service.delete_discount(db_session, discount.uid)

        assert not result.deleted and result.deactivated
        stored = await service.get_discount(db_session, discount.uid)
        assert stored.is_active is False


class TestSellerDiscounts:
    @pytest.mark.asyncio
    async def test_seller_creates_special_for_own_store(self, db_session):
        seller = Actor(uid=uuid.uuid4(), role="seller")
        store = StoreFactory.create(seller_uid=seller.uid)
        product_type = ProductTypeFactory.create(store.uid)
        db_session.add_all([store, product_type])
        await db_session.commit()

        discount = await service.create_discount(db_session, special_payload(store.uid, product_type.uid), seller)

        assert discount.code.startswith("SPEC_")
        assert discount.created_by_type == CreatedByType.seller
        assert discount.special_discount.store_uid == store.uid
        assert discount.special_discount.product_type_uid == product_type.uid

    @pytest.mark.asyncio
    async def test_seller_cannot_create_seasonal(self, db_session):
        seller = Actor(uid=uuid.uuid4(), role="seller")
        with pytest.raises(InsufficientPermission):
            await service.create_discount(db_session, seasonal_payload(), seller)

    @pytest.mark.asyncio
    async def test_seller_cannot_target_another_store(self, db_session):
        seller = Actor(uid=uuid.uuid4(), role="seller")
        store = StoreFactory.create()
        db_session.add(store)
        await db_session.commit()

        with pytest.raises(InsufficientPermission):
            await service.create_discount(db_session, special_payload(store.uid), seller)

    @pytest.mark.asyncio
    async def test_product_type_must_belong_to_store(self, db_session):
        seller = Actor(uid=uuid.uuid4(), role="seller")
        store = StoreFactory.create(seller_uid=seller.uid)
        elsewhere = StoreFactory.create()
        foreign_type = ProductTypeFactory.create(elsewhere.uid)
        db_session.add_all([store, elsewhere, foreign_type])
        await db_session.commit()

        with pytest.raises(InvalidDiscountPayload):
            await service.create_discount(db_session, special_payload(store.uid, foreign_type.uid), seller)

    @pytest.mark.asyncio
    async def test_seller_cannot_edit_someone_elses_discount(self, db_session):
        owner = Actor(uid=uuid.uuid4(), role="seller")
        intruder = Actor(uid=uuid.uuid4(), role="seller")
        store = StoreFactory.create(seller_uid=owner.uid)
        db_session.add(store)
        await db_session.commit()
        discount = await service.create_discount(db_session, special_payload(store.uid), owner)

        with pytest.raises(InsufficientPermission):
            await service.set_active(db_session, discount.uid, False, intruder)

        result = await db_session.exec(select(Discount).where(Discount.uid == discount.uid))
        assert result.one().is_active is True
