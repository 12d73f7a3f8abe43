"""HTTP mapping for the Orders error taxonomy.

Validation failures (``InvalidTransition``, ``InvalidInput``) are Protean
``ValidationError`` subclasses and are answered by Protean's own handlers
with a 400. Everything below is specific to this service.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from orders.errors import (
    AlreadyExists,
    Conflict,
    NotFound,
    OrdersError,
    RenderError,
    RenderTimeout,
    StorageError,
)

_STATUS_CODES = {
    NotFound: 404,
    AlreadyExists: 409,
    Conflict: 409,
    RenderError: 502,
    StorageError: 503,
    RenderTimeout: 504,
}

# Upstream failures get a generic message; details stay in the logs.
_RETRY_MESSAGE = "Invoice service is temporarily unavailable, please try again"


def _status_for(exc: OrdersError) -> int:
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


async def orders_error_handler(request: Request, exc: OrdersError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        return JSONResponse(status_code=status_code, content={"error": _RETRY_MESSAGE})
    return JSONResponse(status_code=status_code, content={"error": exc.message})


def register_orders_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrdersError, orders_error_handler)
