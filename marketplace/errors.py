from typing import Any, Callable, Dict
from fastapi import FastAPI, status
from fastapi.requests import Request
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class MarketplaceException(Exception):
    """This is the base class for all marketplace errors"""

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message)
        self.context: Dict[str, Any] = context


# --- Checkout input ---
class CartValidationError(MarketplaceException):
    """The cart handed to checkout is structurally invalid."""
    def __init__(self, reason: str, **context: Any):
        super().__init__(f"Invalid cart: {reason}", reason=reason, **context)
        self.reason = reason


class InvalidPricingInput(MarketplaceException):
    """Pricing was called without a usable context (timestamp, shipping policy)."""
    def __init__(self, reason: str):
        super().__init__(f"Invalid pricing input: {reason}", reason=reason)
        self.reason = reason


# --- Discounts ---
class DiscountNotFound(MarketplaceException):
    """Discount not found."""
    pass


class DiscountCodeConflict(MarketplaceException):
    """Could not generate a discount code that is not already taken."""
    pass


class InvalidDiscountWindow(MarketplaceException):
    """End date must be after start date."""
    pass


class InvalidDiscountPayload(MarketplaceException):
    """Category details missing or not matching the discount category."""
    pass


class DiscountUsageExhausted(MarketplaceException):
    """A discount ran out of uses between pricing and order commit."""
    def __init__(self, code: str):
        super().__init__(f"Discount {code} has no uses left", discount_code=code)
        self.code = code


# --- Catalogue / orders ---
class ProductNotFound(MarketplaceException):
    """Product not found."""
    pass


class StoreNotFound(MarketplaceException):
    """Store not found."""
    pass


class OrderNotFound(MarketplaceException):
    """Order not found."""
    pass


class InvalidStatusTransition(MarketplaceException):
    """Requested order status is not reachable from the current one."""
    pass


class CancellationWindowExpired(MarketplaceException):
    """Buyer tried to cancel after the cancellation window."""
    pass


# --- Identity ---
class MissingIdentity(MarketplaceException):
    """Request reached the service without gateway identity headers."""
    pass


class InsufficientPermission(MarketplaceException):
    """Caller's role is not allowed to use this route."""
    pass


def create_exception_handler(status_code: int, initial_detail: Any) -> Callable[[Request, Exception], JSONResponse]:
    async def exception_handler(request: Request, exc: MarketplaceException):
        content = dict(initial_detail)
        content.update(getattr(exc, "context", {}))
        return JSONResponse(
            content=content,
            status_code=status_code
        )

    return exception_handler


def register_all_errors(app: FastAPI):
    # Cart Validation Error
    app.add_exception_handler(
        CartValidationError,
        create_exception_handler(
            status_code=status.HTTP_400_BAD_REQUEST,
            initial_detail={
                "message": "The cart cannot be checked out",
                "error_code": "invalid_cart",
                "resolution": "Check item quantities and selection, then try again"
            }
        )
    )

    # Invalid Pricing Input
    app.add_exception_handler(
        InvalidPricingInput,
        create_exception_handler(
            status_code=status.HTTP_400_BAD_REQUEST,
            initial_detail={
                "message": "Pricing input is incomplete or invalid",
                "error_code": "invalid_pricing_input"
            }
        )
    )

    # Discount Not Found
    app.add_exception_handler(
        DiscountNotFound,
        create_exception_handler(
            status_code=status.HTTP_404_NOT_FOUND,
            initial_detail={
                "message": "Discount not found",
                "error_code": "discount_does_not_exist"
            }
        )
    )

    # Discount Code Conflict
    app.add_exception_handler(
        DiscountCodeConflict,
        create_exception_handler(
            status_code=status.HTTP_409_CONFLICT,
            initial_detail={
                "message": "Failed to generate unique discount code",
                "error_code": "discount_code_conflict",
                "resolution": "Please try again"
            }
        )
    )

    # Invalid Discount Window
    app.add_exception_handler(
        InvalidDiscountWindow,
        create_exception_handler(
            status_code=status.HTTP_400_BAD_REQUEST,
            initial_detail={
                "message": "End date must be after start date",
                "error_code": "invalid_discount_window"
            }
        )
    )

    # Invalid Discount Payload
    app.add_exception_handler(
        InvalidDiscountPayload,
        create_exception_handler(
            status_code=status.HTTP_400_BAD_REQUEST,
            initial_detail={
                "message": "Discount details do not match the discount category",
                "error_code": "invalid_discount_payload"
            }
        )
    )

    # Discount Usage Exhausted
    app.add_exception_handler(
        DiscountUsageExhausted,
        create_exception_handler(
            status_code=status.HTTP_409_CONFLICT,
            initial_detail={
                "message": "A discount in this checkout has reached its usage limit",
                "error_code": "discount_usage_exhausted",
                "resolution": "Re-price the checkout without this discount"
            }
        )
    )

    # Product Not Found
    app.add_exception_handler(
        ProductNotFound,
        create_exception_handler(
            status_code=status.HTTP_404_NOT_FOUND,
            initial_detail={
                "message": "Product not found",
                "error_code": "product_does_not_exist"
            }
        )
    )

    # Store Not Found
    app.add_exception_handler(
        StoreNotFound,
        create_exception_handler(
            status_code=status.HTTP_404_NOT_FOUND,
            initial_detail={
                "message": "Store not found",
                "error_code": "store_does_not_exist"
            }
        )
    )

    # Order Not Found
    app.add_exception_handler(
        OrderNotFound,
        create_exception_handler(
            status_code=status.HTTP_404_NOT_FOUND,
            initial_detail={
                "message": "Order not found",
                "error_code": "order_does_not_exist"
            }
        )
    )

    # Invalid Status Transition
    app.add_exception_handler(
        InvalidStatusTransition,
        create_exception_handler(
            status_code=status.HTTP_400_BAD_REQUEST,
            initial_detail={
                "message": "Order cannot move to the requested status",
                "error_code": "invalid_status_transition"
            }
        )
    )

    # Cancellation Window Expired
    app.add_exception_handler(
        CancellationWindowExpired,
        create_exception_handler(
            status_code=status.HTTP_400_BAD_REQUEST,
            initial_detail={
                "message": "Cancellation window has expired",
                "error_code": "cancellation_window_expired"
            }
        )
    )

    # Missing Identity
    app.add_exception_handler(
        MissingIdentity,
        create_exception_handler(
            status_code=status.HTTP_401_UNAUTHORIZED,
            initial_detail={
                "message": "Caller identity is required",
                "error_code": "missing_identity"
            }
        )
    )

    # Insufficient Permission
    app.add_exception_handler(
        InsufficientPermission,
        create_exception_handler(
            status_code=status.HTTP_403_FORBIDDEN,
            initial_detail={
                "message": "You do not have sufficient permission",
                "error_code": "insufficient_permission"
            }
        )
    )

    @app.exception_handler(500)
    async def internal_server_error_handler(request, exc):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "message": "Oops, something went wrong. Please try again later",
                "error_code": "server_error"
            }
        )
