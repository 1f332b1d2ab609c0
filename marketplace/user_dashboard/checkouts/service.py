import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence
import uuid
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from marketplace.admin_dashboard.orders.service import apply_status
from marketplace.config import Config
from marketplace.db.models import Discount, Order, OrderDiscount, OrderItem, OrderStatus, generate_order_number, utcnow
from marketplace.db.snapshots import load_cart_lines, load_discount_rules
from marketplace.errors import CancellationWindowExpired, DiscountUsageExhausted, OrderNotFound
from marketplace.pricing.aggregator import price_cart
from marketplace.pricing.schemas import DiscountSelections, OrderPricingResult, PricingReport, as_utc
from .schemas import (
    CartItemInput,
    CheckoutCreate,
    CheckoutPreviewResponse,
    CheckoutResponse,
    DiscountCodesInput,
    OrderResponse,
    RejectedCodeResponse,
)


class CheckoutService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = logging.getLogger(__name__)

    async def price(
        self,
        items: Sequence[CartItemInput],
        codes: Optional[DiscountCodesInput],
        now: datetime,
    ) -> PricingReport:
        """Price a cart against the catalogue and discounts as stored right now."""
        codes = codes or DiscountCodesInput()
        selections = DiscountSelections(shipping_code=codes.shipping, seasonal_code=codes.seasonal)
        lines = await load_cart_lines(self.session, items)
        requested = [c for c in (selections.shipping_code, selections.seasonal_code) if c]
        rules = await load_discount_rules(self.session, now, requested)
        return price_cart(
            lines,
            selections,
            rules,
            Config.FREE_SHIPPING_THRESHOLD,
            Config.BASE_SHIPPING_FEE,
            now,
        )

    async def preview(self, items: Sequence[CartItemInput], codes: Optional[DiscountCodesInput] = None,
                      now: Optional[datetime] = None) -> CheckoutPreviewResponse:
        # read-only: nothing is written and no usage is consumed
        report = await self.price(items, codes, as_utc(now or utcnow()))
        return CheckoutPreviewResponse.from_report(report)

    def _build_order(self, buyer_uid: uuid.UUID, result: OrderPricingResult, cmd: CheckoutCreate, now: datetime,
                     order_number: str) -> Order:
        order = Order(
            order_number=order_number,
            buyer_uid=buyer_uid,
            store_uid=uuid.UUID(result.store_id),
            store_name=result.store_name,
            status=OrderStatus.pending_payment,
            subtotal=result.subtotal,
            shipping_fee=result.shipping,
            shipping_discount=result.shipping_discount,
            total_discount=result.total_discount,
            total_amount=result.total,
            needs_review=result.needs_review,
            review_notes=", ".join(result.anomalies) or None,
            payment_method=cmd.payment_method,
            idempotency_key=cmd.idempotency_key,
            shipping_address_snapshot=cmd.shipping_address.model_dump() if cmd.shipping_address else None,
            notes=cmd.notes,
            created_at=now,
            updated_at=now,
        )
        order.items = [
            OrderItem(
                product_uid=uuid.UUID(line.product_id),
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price=line.price,
                subtotal=line.line_total,
            )
            for line in result.items
        ]
        order.discounts = [
            OrderDiscount(
                discount_uid=uuid.UUID(applied.discount_id),
                discount_type=applied.category,
                discount_code=applied.code,
                discount_name=applied.name,
                discount_amount=applied.amount,
                applied_at=now,
            )
            for applied in result.applied_discounts
        ]
        return order

    async def _consume_usage(self, discount_uid: uuid.UUID, code: str) -> None:
        # limit check and increment in a single conditional UPDATE
        stmt = (
            update(Discount)
            .where(
                Discount.uid == discount_uid,
                or_(Discount.usage_limit.is_(None), Discount.usage_count < Discount.usage_limit),
            )
            .values(usage_count=Discount.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            raise DiscountUsageExhausted(code)

    async def _orders_for_key(self, buyer_uid: uuid.UUID, idempotency_key: str) -> List[Order]:
        result = await self.session.exec(
            select(Order)
            .where(Order.buyer_uid == buyer_uid, Order.idempotency_key == idempotency_key)
            .order_by(Order.created_at)
        )
        return list(result.all())

    async def _replay(self, buyer_uid: uuid.UUID, idempotency_key: Optional[str]) -> Optional[CheckoutResponse]:
        if not idempotency_key:
            return None
        orders = await self._orders_for_key(buyer_uid, idempotency_key)
        if not orders:
            return None
        self.logger.info(f"Replaying checkout {idempotency_key} for buyer {buyer_uid}")
        return CheckoutResponse(orders=[OrderResponse.model_validate(o) for o in orders], replayed=True)

    async def create_orders(self, buyer_uid: uuid.UUID, cmd: CheckoutCreate, now: Optional[datetime] = None) -> CheckoutResponse:
        """Price the cart server-side and persist one order per store.

        Every number on the orders is copied from the pricing result. Each
        applied discount uses one slot of its usage limit per checkout; if a
        slot is gone by commit time nothing is written and
        DiscountUsageExhausted is raised so the buyer can re-price.
        """
        replay = await self._replay(buyer_uid, cmd.idempotency_key)
        if replay is not None:
            return replay

        now = as_utc(now or utcnow())
        report = await self.price(cmd.items, cmd.discount_codes, now)
        # orders of one checkout share a number and differ by a sequence suffix
        checkout_number = generate_order_number()
        orders = [
            self._build_order(buyer_uid, result, cmd, now, f"{checkout_number}-{index}")
            for index, result in enumerate(report.results, start=1)
        ]

        used = {}
        for result in report.results:
            for applied in result.applied_discounts:
                used.setdefault(applied.discount_id, applied.code)

        self.session.add_all(orders)
        try:
            await self.session.flush()
            for discount_id, code in used.items():
                await self._consume_usage(uuid.UUID(discount_id), code)
            await self.session.commit()
        except DiscountUsageExhausted as e:
            await self.session.rollback()
            self.logger.warning(f"Checkout for buyer {buyer_uid} lost the last use of discount {e.code}")
            raise
        except IntegrityError:
            await self.session.rollback()
            # a concurrent request with the same idempotency key won the insert
            replay = await self._replay(buyer_uid, cmd.idempotency_key)
            if replay is not None:
                return replay
            raise

        for order in orders:
            self.logger.info(
                f"Order {order.order_number} placed for buyer {buyer_uid}: store {order.store_uid} total {order.total_amount}"
                + (" (needs review)" if order.needs_review else "")
            )

        return CheckoutResponse(
            orders=[OrderResponse.model_validate(o) for o in orders],
            rejected_codes=[
                RejectedCodeResponse(**rejected.model_dump())
                for result in report.results
                for rejected in result.rejected_codes
            ],
        )

    async def list_orders_for_user(self, buyer_uid: uuid.UUID) -> List[Order]:
        result = await self.session.exec(
            select(Order)
            .where(Order.buyer_uid == buyer_uid)
            .order_by(Order.created_at.desc(), Order.order_number)
        )
        return list(result.all())

    async def get_order_for_user(self, buyer_uid: uuid.UUID, order_uid: uuid.UUID) -> Order:
        result = await self.session.exec(
            select(Order).where(Order.uid == order_uid, Order.buyer_uid == buyer_uid)
        )
        order = result.one_or_none()
        if not order:
            raise OrderNotFound(f"Order {order_uid} not found")
        return order

    async def cancel_order(self, buyer_uid: uuid.UUID, order_uid: uuid.UUID, now: Optional[datetime] = None) -> Order:
        order = await self.get_order_for_user(buyer_uid, order_uid)

        # Check if order is already cancelled
        if order.status == OrderStatus.cancelled:
            return order

        now = as_utc(now or utcnow())
        if now - as_utc(order.created_at) > timedelta(hours=Config.ORDER_CANCEL_WINDOW_HOURS):
            raise CancellationWindowExpired(
                f"Orders can only be cancelled within {Config.ORDER_CANCEL_WINDOW_HOURS} hours"
            )

        apply_status(order, OrderStatus.cancelled, now)
        self.session.add(order)
        await self.session.commit()
        self.logger.info(f"Order {order.order_number} cancelled by buyer {buyer_uid}")
        return order
