from fastapi import APIRouter, Depends, status
from typing import List
from uuid import UUID
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.db.main import get_session
from marketplace.auth.dependencies import Actor, get_current_actor
from .schemas import CheckoutCreate, CheckoutPreviewRequest, CheckoutPreviewResponse, CheckoutResponse, OrderResponse
from .service import CheckoutService

user_checkout_router = APIRouter()


@user_checkout_router.post("/preview", response_model=CheckoutPreviewResponse)
async def preview_checkout(
    cmd: CheckoutPreviewRequest,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    service = CheckoutService(session)
    return await service.preview(cmd.items, cmd.discount_codes)

@user_checkout_router.post("/", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def create_checkout(
    cmd: CheckoutCreate,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    service = CheckoutService(session)
    return await service.create_orders(actor.uid, cmd)

@user_checkout_router.get("/", response_model=List[OrderResponse])
async def list_my_orders(
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor)
):
    service = CheckoutService(session)
    return await service.list_orders_for_user(actor.uid)

@user_checkout_router.get("/{order_uid}", response_model=OrderResponse)
async def get_order(
    order_uid: UUID,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor)
):
    service = CheckoutService(session)
    return await service.get_order_for_user(actor.uid, order_uid)

@user_checkout_router.delete("/{order_uid}", response_model=OrderResponse, status_code=status.HTTP_200_OK)
async def cancel_order(
    order_uid: UUID,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor)
):
    service = CheckoutService(session)
    return await service.cancel_order(actor.uid, order_uid)
