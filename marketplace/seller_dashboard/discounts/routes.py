from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Optional
from uuid import UUID

from marketplace.db.main import get_session
from marketplace.auth.dependencies import Actor, seller_role_checker
from marketplace.admin_dashboard.discounts import schemas
from marketplace.admin_dashboard.discounts.service import DiscountService
from marketplace.pricing.schemas import DiscountCategory

seller_discount_router = APIRouter()
discount_service = DiscountService()


@seller_discount_router.get("/", response_model=schemas.PaginatedDiscountResponse)
async def list_my_discounts(
    store_uid: Optional[UUID] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(seller_role_checker),
):
    return await discount_service.list_discounts(
        session,
        discount_type=DiscountCategory.special,
        is_active=is_active,
        created_by_uid=actor.uid,
        store_uid=store_uid,
        page=page,
        limit=limit,
    )


@seller_discount_router.post("/", response_model=schemas.DiscountResponse, status_code=status.HTTP_201_CREATED)
async def create_store_discount(
    data: schemas.DiscountCreate,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(seller_role_checker),
):
    return await discount_service.create_discount(session, data, actor)


@seller_discount_router.put("/{uid}", response_model=schemas.DiscountResponse)
async def update_store_discount(
    uid: UUID,
    data: schemas.DiscountUpdate,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(seller_role_checker),
):
    return await discount_service.update_discount(session, uid, data, actor)


@seller_discount_router.patch("/{uid}/active", response_model=schemas.DiscountResponse)
async def toggle_store_discount(
    uid: UUID,
    data: schemas.DiscountActiveToggle,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(seller_role_checker),
):
    return await discount_service.set_active(session, uid, data.is_active, actor)
