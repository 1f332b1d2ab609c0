from fastapi import APIRouter, Depends
from typing import List
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.db.main import get_session
from .schemas import (
    AvailableDiscountResponse,
    CartRequest,
    RecommendedDiscountsResponse,
    ValidateDiscountRequest,
    ValidateDiscountResponse,
)
from .service import BuyerDiscountService

user_discount_router = APIRouter()


@user_discount_router.post("/validate/{code}", response_model=ValidateDiscountResponse)
async def validate_discount(code: str, data: ValidateDiscountRequest, session: AsyncSession = Depends(get_session)):
    service = BuyerDiscountService(session)
    return await service.validate_code(code, data)

@user_discount_router.post("/available", response_model=List[AvailableDiscountResponse])
async def available_discounts(cart: CartRequest, session: AsyncSession = Depends(get_session)):
    service = BuyerDiscountService(session)
    return await service.available(cart.items)

@user_discount_router.post("/recommended", response_model=RecommendedDiscountsResponse)
async def recommended_discounts(cart: CartRequest, session: AsyncSession = Depends(get_session)):
    service = BuyerDiscountService(session)
    return await service.recommended(cart.items)
