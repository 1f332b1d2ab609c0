from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from marketplace.config import Config
from marketplace.db.main import init_db

from marketplace.admin_dashboard.discounts.routes import discount_router
from marketplace.admin_dashboard.orders.routes import order_router

from marketplace.seller_dashboard.discounts.routes import seller_discount_router
from marketplace.seller_dashboard.orders.routes import seller_order_router

from marketplace.user_dashboard.discounts.routes import user_discount_router
from marketplace.user_dashboard.checkouts.routes import user_checkout_router

from .errors import register_all_errors
from .middleware import register_middleware

logging.basicConfig(
    level=Config.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

version = "v1"


@asynccontextmanager
async def life_span(app: FastAPI):
    logging.getLogger(__name__).info("Server is starting ...")
    await init_db()
    yield
    logging.getLogger(__name__).info("Server has been stopped")


app = FastAPI(
    title = "Marketplace Checkout",
    description = "A REST API for multi-vendor checkout pricing, discounts and orders",
    version = version,
    lifespan = life_span,
)


register_all_errors(app)
register_middleware(app)


app.include_router(discount_router, prefix=f"/admin/discounts", tags=["admin discounts"])
app.include_router(order_router, prefix=f"/admin/orders", tags=["admin orders"])

app.include_router(seller_discount_router, prefix=f"/seller/discounts", tags=["seller discounts"])
app.include_router(seller_order_router, prefix=f"/seller/orders", tags=["seller orders"])

app.include_router(user_discount_router, prefix=f"/discounts", tags = ['user discounts'])
app.include_router(user_checkout_router, prefix=f"/checkouts", tags = ['user checkouts'])
