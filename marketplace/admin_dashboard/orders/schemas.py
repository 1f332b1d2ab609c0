from pydantic import BaseModel
from typing import List, Optional

from marketplace.db.models import OrderStatus
from marketplace.user_dashboard.checkouts.schemas import OrderResponse


class UpdateOrderStatus(BaseModel):
    status: OrderStatus
    review_notes: Optional[str] = None


class PaginatedOrderResponse(BaseModel):
    orders: List[OrderResponse]
    total: int
    page: int
    per_page: int
    total_pages: int
