from fastapi import APIRouter, Depends, Query
from typing import Optional
from uuid import UUID
from sqlmodel.ext.asyncio.session import AsyncSession
from marketplace.db.main import get_session
from marketplace.db.models import OrderStatus
from marketplace.auth.dependencies import Actor, seller_role_checker
from marketplace.admin_dashboard.orders.service import OrderService
from marketplace.admin_dashboard.orders.schemas import UpdateOrderStatus, PaginatedOrderResponse
from marketplace.user_dashboard.checkouts.schemas import OrderResponse

seller_order_router = APIRouter()
order_service = OrderService()

@seller_order_router.get('/', response_model=PaginatedOrderResponse)
async def list_store_orders(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(seller_role_checker),
):
    store_uids = await order_service.seller_store_uids(session, actor.uid)
    return await order_service.list_orders(session, page, per_page, status, store_uids)

@seller_order_router.patch('/{order_uid}', response_model=OrderResponse)
async def update_store_order_status(
    order_uid: UUID,
    data: UpdateOrderStatus,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(seller_role_checker),
):
    return await order_service.update_order_status(session, order_uid, data, actor)
