"""FastAPI routes for the Orders domain — lifecycle, payments, shipping and invoices.

Service calls block on order locks, storage and invoice rendering, so each one
runs on the worker pool inside its own Orders domain context. The event loop
stays free for requests against other orders.
"""

from datetime import datetime

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from orders.api.schemas import (
    AddNoteRequest,
    AddShippingEventRequest,
    GenerateInvoiceRequest,
    InvoiceDeletedResponse,
    InvoiceListResponse,
    NoteResponse,
    OpenPaymentAttemptRequest,
    OrderIdResponse,
    OrderPageResponse,
    PaymentAttemptResponse,
    PlaceOrderRequest,
    ShippingEventResponse,
    StatusUpdateRequest,
    UpdatePaymentAttemptRequest,
)
from orders.config import get_settings
from orders.domain import orders
from orders.errors import InvalidInput
from orders.order.lifecycle import get_lifecycle
from orders.order.order import InvoiceKind

_CHUNK_SIZE = 64 * 1024


def _in_domain_context(func, *args, **kwargs):
    with orders.domain_context():
        return func(*args, **kwargs)


async def _run(func, *args, **kwargs):
    """Run a blocking service call on the worker pool."""
    return await run_in_threadpool(_in_domain_context, func, *args, **kwargs)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderIdResponse)
async def place_order(body: PlaceOrderRequest) -> OrderIdResponse:
    """Create a pending order from a checkout snapshot."""
    result = await _run(
        get_lifecycle().place_order,
        customer_id=body.customer_id,
        items=[item.model_dump(exclude_none=True) for item in body.items],
        shipping_address=body.shipping_address.model_dump(),
        shipping_method=body.shipping_method.model_dump(),
        pricing=body.pricing.model_dump(exclude_none=True) if body.pricing else None,
        payment_method=body.payment_method,
        source=body.source,
        fraud_score=body.fraud_score,
        risk_flags=body.risk_flags,
        send_notifications=body.send_notifications,
    )
    return OrderIdResponse(**result)


@order_router.get("", response_model=OrderPageResponse)
async def list_customer_orders(
    customer_id: str,
    status: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> OrderPageResponse:
    """A customer's orders, newest first."""
    result = await _run(get_lifecycle().customer_orders, customer_id, status=status, page=page, limit=limit)
    return OrderPageResponse(**result)


@order_router.get("/admin", response_model=OrderPageResponse)
async def list_all_orders(
    status: str | None = None,
    payment_status: str | None = None,
    placed_from: datetime | None = None,
    placed_to: datetime | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> OrderPageResponse:
    """Back-office listing filtered by status, payment status and placement date."""
    result = await _run(
        get_lifecycle().search_orders,
        status=status,
        payment_status=payment_status,
        placed_from=placed_from,
        placed_to=placed_to,
        page=page,
        limit=limit,
    )
    return OrderPageResponse(**result)


@order_router.get("/track/{order_number}")
async def track_order(order_number: str) -> dict:
    """Public tracking view: status, shipping method and carrier events."""
    return await _run(get_lifecycle().track, order_number)


@order_router.get("/{order_id}")
async def get_order(order_id: str) -> dict:
    return await _run(get_lifecycle().get_snapshot, order_id)


@order_router.put("/{order_id}/status")
async def update_status(order_id: str, body: StatusUpdateRequest) -> dict:
    """Move the order through the state machine."""
    return await _run(
        get_lifecycle().request_transition,
        order_id,
        target_status=body.status,
        carrier=body.carrier,
        tracking_number=body.tracking_number,
        reason=body.reason,
        notes=body.notes,
        send_notification=body.send_notification,
        actor_id=body.actor_id,
        expected_revision=body.expected_revision,
    )


@order_router.post("/{order_id}/notes", status_code=201, response_model=NoteResponse)
async def add_note(order_id: str, body: AddNoteRequest) -> NoteResponse:
    note = await _run(
        get_lifecycle().add_admin_note,
        order_id,
        text=body.note,
        author_id=body.author_id,
        expected_revision=body.expected_revision,
    )
    return NoteResponse(**note)


@order_router.post("/{order_id}/shipping-events", status_code=201, response_model=ShippingEventResponse)
async def add_shipping_event(order_id: str, body: AddShippingEventRequest) -> ShippingEventResponse:
    """Record a carrier milestone. The order status is not changed."""
    event = await _run(
        get_lifecycle().add_shipping_event,
        order_id,
        label=body.label,
        description=body.description,
        location=body.location,
        metadata=body.metadata,
    )
    return ShippingEventResponse(**event)


# ---------------------------------------------------------------------------
# Payment attempts
# ---------------------------------------------------------------------------
@order_router.post("/{order_id}/payments/attempts", status_code=201, response_model=PaymentAttemptResponse)
async def open_payment_attempt(order_id: str, body: OpenPaymentAttemptRequest) -> PaymentAttemptResponse:
    attempt = await _run(
        get_lifecycle().open_payment_attempt,
        order_id,
        gateway_order_id=body.gateway_order_id,
        amount=body.amount,
        actor_id=body.actor_id,
    )
    return PaymentAttemptResponse(**attempt)


@order_router.put("/{order_id}/payments/attempts/{attempt_id}")
async def update_payment_attempt(order_id: str, attempt_id: str, body: UpdatePaymentAttemptRequest) -> dict:
    """Apply a gateway outcome. A capture confirms the order."""
    return await _run(
        get_lifecycle().update_payment_attempt,
        order_id,
        attempt_id,
        status=body.status,
        gateway_payment_id=body.gateway_payment_id,
        gateway_method=body.gateway_method,
        error_reason=body.error_reason,
        send_notification=body.send_notification,
        actor_id=body.actor_id,
        expected_revision=body.expected_revision,
    )


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------
@order_router.get("/{order_id}/invoices", response_model=InvoiceListResponse)
async def list_invoices(order_id: str) -> InvoiceListResponse:
    invoices = await _run(get_lifecycle().registry.list_invoices, order_id)
    kinds = {invoice["kind"] for invoice in invoices}
    return InvoiceListResponse(
        order_id=order_id,
        invoices=invoices,
        has_auto_generated=InvoiceKind.AUTO_GENERATED.value in kinds,
        has_admin_uploaded=InvoiceKind.ADMIN_UPLOADED.value in kinds,
    )


@order_router.post("/{order_id}/invoice/generate", status_code=201)
async def generate_invoice(order_id: str, body: GenerateInvoiceRequest | None = None) -> dict:
    """Render the system invoice. 409 if one exists or is being generated."""
    body = body or GenerateInvoiceRequest()
    return await _run(
        get_lifecycle().registry.generate_auto,
        order_id,
        actor_id=body.actor_id,
        deadline=body.deadline_seconds,
    )


@order_router.post("/{order_id}/invoice/upload")
async def upload_invoice(
    order_id: str,
    file: UploadFile = File(...),
    invoice_number: str = Form(...),
    uploader_id: str = Form(...),
    notes: str | None = Form(None),
) -> dict:
    """Attach or replace the admin invoice (PDF only)."""
    max_bytes = get_settings().invoice_max_bytes
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise InvalidInput("file", f"File exceeds the maximum size of {max_bytes} bytes")
    return await _run(
        get_lifecycle().registry.upload_admin,
        order_id,
        content=content,
        invoice_number=invoice_number,
        uploader_id=uploader_id,
        notes=notes,
        file_name=file.filename,
        content_type=file.content_type,
    )


@order_router.delete("/{order_id}/invoice/admin", response_model=InvoiceDeletedResponse)
async def delete_admin_invoice(order_id: str, actor_id: str | None = None) -> InvoiceDeletedResponse:
    removed = await _run(get_lifecycle().registry.delete_admin, order_id, actor_id=actor_id)
    return InvoiceDeletedResponse(**removed)


@order_router.get("/{order_id}/invoice/{kind}")
async def download_invoice(order_id: str, kind: str) -> StreamingResponse:
    download = await _run(get_lifecycle().registry.download, order_id, kind)

    def _chunks():
        with download.stream as stream:
            while chunk := stream.read(_CHUNK_SIZE):
                yield chunk

    return StreamingResponse(
        _chunks(),
        media_type=download.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{download.file_name}"',
            "X-Invoice-Number": download.invoice_number,
            "X-Invoice-Kind": download.kind,
        },
    )
