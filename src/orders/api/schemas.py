"""Pydantic request/response schemas for the Orders API.

These are external contracts — separate from the internal Protean commands.
Full order snapshots are returned as plain JSON objects.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    street: str
    city: str
    state: str | None = None
    postal_code: str
    country: str


class OrderItemSchema(BaseModel):
    product_id: str | None = None
    sku: str
    name: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)
    discounted_price: float | None = Field(default=None, ge=0)
    tax_rate: float = Field(default=0.0, ge=0)
    returnable: bool = True
    return_window_days: int = Field(default=7, ge=0)


class ShippingMethodSchema(BaseModel):
    name: str
    cost: float = Field(default=0.0, ge=0)
    delivery_days: int = Field(default=0, ge=0)


class PricingSchema(BaseModel):
    subtotal: float | None = Field(default=None, ge=0)
    discount: float | None = Field(default=None, ge=0)
    shipping: float | None = Field(default=None, ge=0)
    tax: float | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    customer_id: str
    items: list[OrderItemSchema] = Field(min_length=1)
    shipping_address: AddressSchema
    shipping_method: ShippingMethodSchema
    pricing: PricingSchema | None = None
    payment_method: str = "razorpay"
    source: str = "web"
    fraud_score: int = Field(default=0, ge=0, le=100)
    risk_flags: list[str] = Field(default_factory=list)
    send_notifications: bool = True

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "items": [
                        {
                            "sku": "GPU-4070",
                            "name": "Graphics Card",
                            "quantity": 1,
                            "unit_price": 59999.0,
                            "discounted_price": 54999.0,
                            "tax_rate": 18.0,
                        }
                    ],
                    "shipping_address": {
                        "full_name": "Asha Rao",
                        "street": "12 MG Road",
                        "city": "Bengaluru",
                        "postal_code": "560001",
                        "country": "IN",
                    },
                    "shipping_method": {"name": "standard", "cost": 0, "delivery_days": 5},
                }
            ]
        }
    }


class StatusUpdateRequest(BaseModel):
    status: str
    carrier: str | None = None
    tracking_number: str | None = None
    reason: str | None = None
    notes: str | None = None
    send_notification: bool | None = None
    actor_id: str | None = None
    expected_revision: int | None = None


class AddNoteRequest(BaseModel):
    note: str
    author_id: str | None = None
    expected_revision: int | None = None


class AddShippingEventRequest(BaseModel):
    label: str
    description: str | None = None
    location: str | None = None
    metadata: dict | None = None


class OpenPaymentAttemptRequest(BaseModel):
    gateway_order_id: str
    amount: float | None = Field(default=None, ge=0)
    actor_id: str | None = None


class UpdatePaymentAttemptRequest(BaseModel):
    status: str
    gateway_payment_id: str | None = None
    gateway_method: str | None = None
    error_reason: str | None = None
    send_notification: bool | None = None
    actor_id: str | None = None
    expected_revision: int | None = None


class GenerateInvoiceRequest(BaseModel):
    actor_id: str | None = None
    deadline_seconds: float | None = Field(default=None, gt=0, le=300)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderIdResponse(BaseModel):
    order_id: str
    order_number: str


class OrderSummaryResponse(BaseModel):
    order_id: str
    order_number: str
    customer_id: str
    status: str
    payment_status: str
    total: float | None = None
    currency: str | None = None
    shipping_method: str | None = None
    has_invoice: bool
    created_at: str | None = None
    updated_at: str | None = None


class OrderPageResponse(BaseModel):
    orders: list[OrderSummaryResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class NoteResponse(BaseModel):
    note_id: str
    sequence: int
    text: str
    author_id: str | None = None
    added_at: str


class ShippingEventResponse(BaseModel):
    event_id: str
    sequence: int
    label: str
    description: str | None = None
    location: str | None = None
    occurred_at: str
    metadata: dict = Field(default_factory=dict)


class PaymentAttemptResponse(BaseModel):
    attempt_id: str
    attempt_number: int
    gateway_order_id: str
    gateway_payment_id: str | None = None
    amount: float
    currency: str | None = None
    status: str
    gateway_method: str | None = None
    error_reason: str | None = None
    created_at: str
    captured_at: str | None = None


class InvoiceListResponse(BaseModel):
    order_id: str
    invoices: list[dict]
    has_auto_generated: bool
    has_admin_uploaded: bool


class InvoiceDeletedResponse(BaseModel):
    kind: str
    invoice_number: str
