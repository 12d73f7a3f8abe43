"""ShopDesk Orders FastAPI application.

Web server for the order lifecycle and invoicing service. Every request is
wrapped in the Orders domain context; commands are processed synchronously.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from orders.api.errors import register_orders_exception_handlers
from orders.api.routes import order_router
from orders.config import get_settings
from orders.domain import orders
from orders.invoice.registry import InvoiceRegistry
from orders.notifications.dispatch import NotificationDispatcher
from orders.order.hooks import PostCommitHooks
from orders.order.lifecycle import AutoInvoiceOnCapture, OrderLifecycle, set_lifecycle
from orders.utils.logging import configure_logging

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
orders.init()

logger = structlog.get_logger(__name__)

# Notifications are delivered off the request path.
_notification_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="order-notify")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(log_file_prefix="orders")
    registry = InvoiceRegistry()
    hooks = PostCommitHooks(
        [
            NotificationDispatcher(executor=_notification_executor),
            AutoInvoiceOnCapture(registry),
        ]
    )
    set_lifecycle(OrderLifecycle(hooks=hooks, registry=registry))
    logger.info("Orders service started", environment=get_settings().environment)
    yield
    _notification_executor.shutdown(wait=True)


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="ShopDesk Orders API",
    description="Order lifecycle, payment attempts, shipping tracking and invoices",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the Orders domain context for each request."""
    with orders.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers and error handlers
# ---------------------------------------------------------------------------
app.include_router(order_router)
register_exception_handlers(app)
register_orders_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domain": orders.name,
        }
    )
