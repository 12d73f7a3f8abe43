"""Read views of an Order: full snapshot, listing rows, public tracking and
invoice listing.

Views are plain dicts with ISO-8601 timestamps so they can be returned from
the API or handed to notification senders unchanged.
"""

import math
from datetime import datetime

from orders.order.order import InvoiceKind, Order


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def timeline_view(entry) -> dict:
    return {
        "sequence": entry.sequence,
        "kind": entry.kind,
        "message": entry.message,
        "occurred_at": _iso(entry.occurred_at),
        "actor_id": entry.actor_id,
        "metadata": entry.metadata,
    }


def note_view(note) -> dict:
    return {
        "note_id": str(note.id),
        "sequence": note.sequence,
        "text": note.text,
        "author_id": note.author_id,
        "added_at": _iso(note.added_at),
    }


def shipping_event_view(event) -> dict:
    return {
        "event_id": str(event.id),
        "sequence": event.sequence,
        "label": event.label,
        "description": event.description,
        "location": event.location,
        "occurred_at": _iso(event.occurred_at),
        "metadata": event.metadata,
    }


def attempt_view(attempt) -> dict:
    return {
        "attempt_id": str(attempt.id),
        "attempt_number": attempt.attempt_number,
        "gateway_order_id": attempt.gateway_order_id,
        "gateway_payment_id": attempt.gateway_payment_id,
        "amount": attempt.amount,
        "currency": attempt.currency,
        "status": attempt.status,
        "gateway_method": attempt.gateway_method,
        "error_reason": attempt.error_reason,
        "created_at": _iso(attempt.created_at),
        "captured_at": _iso(attempt.captured_at),
    }


def invoice_listing(order: Order) -> list[dict]:
    """Zero to two invoice references, each tagged with its kind."""
    invoices = []
    if order.auto_invoice is not None:
        auto = order.auto_invoice
        invoices.append(
            {
                "kind": InvoiceKind.AUTO_GENERATED.value,
                "title": "System Generated Invoice",
                "source": "system",
                "invoice_number": auto.invoice_number,
                "generated_at": _iso(auto.generated_at),
                "file_size": auto.file_size,
                "version": auto.version,
                "can_download": True,
                "can_delete": False,
            }
        )
    if order.admin_invoice is not None:
        admin = order.admin_invoice
        invoices.append(
            {
                "kind": InvoiceKind.ADMIN_UPLOADED.value,
                "title": "Admin Uploaded Invoice",
                "source": "admin",
                "invoice_number": admin.invoice_number,
                "uploaded_at": _iso(admin.uploaded_at),
                "uploaded_by": admin.uploaded_by,
                "notes": admin.notes,
                "original_file_name": admin.original_file_name,
                "file_size": admin.file_size,
                "mime_type": admin.mime_type,
                "can_download": True,
                "can_delete": True,
            }
        )
    return invoices


def _shipping_method_view(order: Order) -> dict | None:
    method = order.shipping_method
    if method is None:
        return None
    return {
        "name": method.name,
        "cost": method.cost,
        "delivery_days": method.delivery_days,
        "carrier": method.carrier,
        "tracking_number": method.tracking_number,
    }


def order_snapshot(order: Order) -> dict:
    pricing = order.pricing
    address = order.shipping_address
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "customer_id": str(order.customer_id),
        "source": order.source,
        "status": order.status,
        "revision": order.revision,
        "items": [
            {
                "item_id": str(item.id),
                "product_id": str(item.product_id) if item.product_id else None,
                "sku": item.sku,
                "name": item.name,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "discounted_price": item.discounted_price,
                "total": item.total,
                "tax_rate": item.tax_rate,
                "tax_amount": item.tax_amount,
                "returnable": item.returnable,
                "return_window_days": item.return_window_days,
            }
            for item in (order.items or [])
        ],
        "shipping_address": (
            {
                "full_name": address.full_name,
                "phone": address.phone,
                "street": address.street,
                "city": address.city,
                "state": address.state,
                "postal_code": address.postal_code,
                "country": address.country,
            }
            if address
            else None
        ),
        "pricing": (
            {
                "subtotal": pricing.subtotal,
                "discount": pricing.discount,
                "shipping": pricing.shipping,
                "tax": pricing.tax,
                "total": pricing.total,
                "currency": pricing.currency,
                "amount_paid": pricing.amount_paid,
                "amount_due": pricing.amount_due,
            }
            if pricing
            else None
        ),
        "shipping_method": _shipping_method_view(order),
        "payment": {
            "method": order.payment_method,
            "status": order.payment_status,
            "attempt_count": order.payment_attempt_count,
            "retry_allowed": order.retry_allowed,
            "attempts": [attempt_view(a) for a in order.attempts()],
        },
        "fraud_score": order.fraud_score,
        "risk_flags": order.flags,
        "timeline": [timeline_view(e) for e in order.timeline_entries()],
        "admin_notes": [note_view(n) for n in order.notes()],
        "shipping_events": [shipping_event_view(e) for e in order.shipping_history()],
        "invoices": invoice_listing(order),
        "invoice_generation_in_progress": bool(order.auto_invoice_reservation),
        "send_notifications": order.send_notifications,
        "delivered_at": _iso(order.delivered_at),
        "cancelled_at": _iso(order.cancelled_at),
        "cancellation_reason": order.cancellation_reason,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


def order_summary(order: Order) -> dict:
    """One row of an order listing: no timeline, notes or attempts."""
    pricing = order.pricing
    return {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "customer_id": str(order.customer_id),
        "status": order.status,
        "payment_status": order.payment_status,
        "total": pricing.total if pricing else None,
        "currency": pricing.currency if pricing else None,
        "shipping_method": order.shipping_method.name if order.shipping_method else None,
        "has_invoice": order.auto_invoice is not None or order.admin_invoice is not None,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


def order_page(results, page: int, limit: int) -> dict:
    """Paginated listing built from a repository ``ResultSet``."""
    return {
        "orders": [order_summary(order) for order in results.items],
        "total": results.total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(results.total / limit),
    }


def tracking_view(order: Order) -> dict:
    """What a customer sees when tracking by order number."""
    return {
        "order_number": order.order_number,
        "status": order.status,
        "shipping_method": _shipping_method_view(order),
        "shipping_events": [shipping_event_view(e) for e in order.shipping_history()],
        "delivered_at": _iso(order.delivered_at),
        "created_at": _iso(order.created_at),
    }
