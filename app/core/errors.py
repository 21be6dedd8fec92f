# app/core/errors.py
"""
Typed error taxonomy for the ordering core.

Services raise these instead of HTTPException so the same code paths can be
driven from routers, background jobs and tests. The FastAPI handler below
maps each class to a status code; nothing here inspects message text.
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


class MarketplaceError(Exception):
    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, detail: str, **context):
        super().__init__(detail)
        self.detail = detail
        self.context = context


class NotFoundError(MarketplaceError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ValidationFailedError(MarketplaceError):
    code = "validation_failed"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidStateError(MarketplaceError):
    code = "invalid_state"
    status_code = status.HTTP_409_CONFLICT


class InvalidTransitionError(InvalidStateError):
    code = "invalid_transition"


class OrderClosedError(InvalidStateError):
    code = "order_closed"


class AlreadyClaimedError(InvalidStateError):
    code = "already_claimed"


class OutOfRangeError(MarketplaceError):
    code = "out_of_range"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class MinimumNotMetError(MarketplaceError):
    code = "minimum_not_met"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class EmptyOrderError(MarketplaceError):
    code = "empty_order"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InsufficientStockError(MarketplaceError):
    code = "insufficient_stock"
    status_code = status.HTTP_409_CONFLICT
    retryable = True


class ConflictError(MarketplaceError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    retryable = True


class RestaurantMismatchError(ConflictError):
    """Item belongs to a different restaurant than the active cart."""

    code = "restaurant_mismatch"
    retryable = False


class PaymentFailedError(MarketplaceError):
    """
    Card declined. During order creation this is not raised: the order is
    kept with payment_status='failed' and the reason becomes a warning.
    Retrying the payment of an existing order raises it.
    """

    code = "payment_failed"
    status_code = status.HTTP_402_PAYMENT_REQUIRED


class PaymentUnavailableError(MarketplaceError):
    """Gateway timed out or could not be reached; nothing was committed."""

    code = "payment_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    body = {
        "detail": exc.detail,
        "code": exc.code,
        "retryable": exc.retryable,
    }
    if exc.context:
        body["context"] = exc.context
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
