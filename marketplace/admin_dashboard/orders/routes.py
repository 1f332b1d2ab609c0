from fastapi import APIRouter, Depends, Query
from typing import Optional
from uuid import UUID
from sqlmodel.ext.asyncio.session import AsyncSession
from marketplace.db.main import get_session
from marketplace.db.models import OrderStatus
from marketplace.auth.dependencies import Actor, admin_role_checker
from marketplace.user_dashboard.checkouts.schemas import OrderResponse
from .service import OrderService
from .schemas import UpdateOrderStatus, PaginatedOrderResponse

order_router = APIRouter()
order_service = OrderService()

@order_router.get('/', response_model=PaginatedOrderResponse)
async def list_orders(
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(10, ge=1, le=100, description="Number of orders per page"),
    status: Optional[OrderStatus] = None,
    store_uid: Optional[UUID] = None,
    needs_review: Optional[bool] = Query(None, description="Only orders flagged for manual review"),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(admin_role_checker),
):
    store_uids = [store_uid] if store_uid else None
    return await order_service.list_orders(session, page, per_page, status, store_uids, needs_review)

@order_router.get('/{order_uid}', response_model=OrderResponse)
async def read_order(order_uid: UUID, session: AsyncSession = Depends(get_session), actor: Actor = Depends(admin_role_checker)):
    return await order_service.get_order(session, order_uid)

@order_router.patch('/{order_uid}', response_model=OrderResponse)
async def update_order_status(order_uid: UUID, data: UpdateOrderStatus, session: AsyncSession = Depends(get_session), actor: Actor = Depends(admin_role_checker)):
    return await order_service.update_order_status(session, order_uid, data, actor)
