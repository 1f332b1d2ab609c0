from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Optional
from uuid import UUID
from marketplace.db.main import get_session
from marketplace.auth.dependencies import Actor, admin_role_checker
from marketplace.errors import DiscountNotFound
from marketplace.pricing.schemas import DiscountCategory
from . import schemas
from .service import DiscountService

discount_router = APIRouter()
discount_service = DiscountService()

@discount_router.get("/", response_model=schemas.PaginatedDiscountResponse)
async def list_discounts(
    discount_type: Optional[DiscountCategory] = None,
    is_active: Optional[bool] = None,
    created_by_uid: Optional[UUID] = None,
    store_uid: Optional[UUID] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(admin_role_checker),
):
    return await discount_service.list_discounts(session, discount_type, is_active, created_by_uid, store_uid, page, limit)

@discount_router.get("/code/{code}", response_model=schemas.DiscountResponse)
async def read_discount_by_code(code: str, session: AsyncSession = Depends(get_session), actor: Actor = Depends(admin_role_checker)):
    discount = await discount_service.get_discount_by_code(session, code)
    if not discount:
        raise DiscountNotFound(f"Discount with code {code} not found")
    return discount

@discount_router.get("/{uid}", response_model=schemas.DiscountResponse)
async def read_discount(uid: UUID, session: AsyncSession = Depends(get_session), actor: Actor = Depends(admin_role_checker)):
    return await discount_service.get_discount(session, uid)

@discount_router.post("/", response_model=schemas.DiscountResponse, status_code=status.HTTP_201_CREATED)
async def create_discount(data: schemas.DiscountCreate, session: AsyncSession = Depends(get_session), actor: Actor = Depends(admin_role_checker)):
    return await discount_service.create_discount(session, data, actor)

@discount_router.put("/{uid}", response_model=schemas.DiscountResponse)
async def update_discount(uid: UUID, data: schemas.DiscountUpdate, session: AsyncSession = Depends(get_session), actor: Actor = Depends(admin_role_checker)):
    return await discount_service.update_discount(session, uid, data, actor)

@discount_router.patch("/{uid}/active", response_model=schemas.DiscountResponse)
async def toggle_discount(uid: UUID, data: schemas.DiscountActiveToggle, session: AsyncSession = Depends(get_session), actor: Actor = Depends(admin_role_checker)):
    return await discount_service.set_active(session, uid, data.is_active, actor)

@discount_router.delete("/{uid}", response_model=schemas.DiscountDeleteResponse, status_code=status.HTTP_200_OK)
async def delete_discount(uid: UUID, session: AsyncSession = Depends(get_session), actor: Actor = Depends(admin_role_checker)):
    return await discount_service.delete_discount(session, uid)
