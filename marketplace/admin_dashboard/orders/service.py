import logging
from datetime import datetime
from sqlmodel import select, func
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Dict, List, Optional
import uuid

from marketplace.auth.dependencies import Actor
from marketplace.db.models import Order, OrderStatus, Store, utcnow
from marketplace.errors import InvalidStatusTransition, OrderNotFound
from marketplace.user_dashboard.checkouts.schemas import OrderResponse
from .schemas import UpdateOrderStatus, PaginatedOrderResponse

VALID_TRANSITIONS: Dict[OrderStatus, List[OrderStatus]] = {
    OrderStatus.pending_payment: [OrderStatus.paid, OrderStatus.payment_failed, OrderStatus.cancelled],
    OrderStatus.payment_failed: [OrderStatus.paid, OrderStatus.cancelled],
    OrderStatus.paid: [OrderStatus.processing, OrderStatus.cancelled],
    OrderStatus.processing: [OrderStatus.shipped, OrderStatus.cancelled],
    OrderStatus.shipped: [OrderStatus.delivered],
    OrderStatus.delivered: [OrderStatus.completed],
    OrderStatus.completed: [],
    OrderStatus.cancelled: [],
}

# status -> timestamp column stamped when the order enters it
STATUS_TIMESTAMPS = {
    OrderStatus.paid: "paid_at",
    OrderStatus.shipped: "shipped_at",
    OrderStatus.delivered: "delivered_at",
    OrderStatus.completed: "completed_at",
    OrderStatus.cancelled: "cancelled_at",
}


def apply_status(order: Order, new_status: OrderStatus, now: Optional[datetime] = None) -> None:
    """Move ``order`` to ``new_status`` or raise InvalidStatusTransition."""
    if new_status not in VALID_TRANSITIONS[order.status]:
        raise InvalidStatusTransition(
            f"Cannot transition from {order.status.value} to {new_status.value}",
            current_status=order.status.value,
            requested_status=new_status.value,
        )
    now = now or utcnow()
    order.status = new_status
    order.updated_at = now
    column = STATUS_TIMESTAMPS.get(new_status)
    if column:
        setattr(order, column, now)


class OrderService:
    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def list_orders(
        self,
        session: AsyncSession,
        page: int = 1,
        per_page: int = 10,
        status: Optional[OrderStatus] = None,
        store_uids: Optional[List[uuid.UUID]] = None,
        needs_review: Optional[bool] = None,
    ) -> PaginatedOrderResponse:
        def filtered(stmt):
            if status is not None:
                stmt = stmt.where(Order.status == status)
            if store_uids is not None:
                stmt = stmt.where(Order.store_uid.in_(store_uids))
            if needs_review is not None:
                stmt = stmt.where(Order.needs_review == needs_review)
            return stmt

        # Get total count
        count_result = await session.exec(filtered(select(func.count(Order.uid))))
        total = count_result.one()

        offset = (page - 1) * per_page
        total_pages = (total + per_page - 1) // per_page

        stmt = (
            filtered(select(Order))
            .offset(offset)
            .limit(per_page)
            .order_by(Order.created_at.desc(), Order.order_number)
        )
        result = await session.exec(stmt)

        return PaginatedOrderResponse(
            orders=[OrderResponse.model_validate(o) for o in result.all()],
            total=total,
            page=page,
            per_page=per_page,
            total_pages=total_pages
        )

    async def get_order(self, session: AsyncSession, order_uid: uuid.UUID) -> Order:
        result = await session.exec(select(Order).where(Order.uid == order_uid))
        order = result.one_or_none()
        if not order:
            raise OrderNotFound(f"Order {order_uid} not found")
        return order

    async def seller_store_uids(self, session: AsyncSession, seller_uid: uuid.UUID) -> List[uuid.UUID]:
        result = await session.exec(select(Store.uid).where(Store.seller_uid == seller_uid))
        return list(result.all())

    async def update_order_status(
        self,
        session: AsyncSession,
        order_uid: uuid.UUID,
        data: UpdateOrderStatus,
        actor: Actor,
    ) -> Order:
        order = await self.get_order(session, order_uid)
        if not actor.is_admin:
            store = await session.get(Store, order.store_uid)
            if store is None or store.seller_uid != actor.uid:
                # sellers never learn about orders of other stores
                raise OrderNotFound(f"Order {order_uid} not found")

        previous_status = order.status
        apply_status(order, data.status)
        if data.review_notes is not None:
            order.review_notes = data.review_notes

        session.add(order)
        await session.commit()
        self.logger.info(
            f"Order {order.order_number} moved from {previous_status.value} to {order.status.value} by {actor.role} {actor.uid}"
        )
        return order
