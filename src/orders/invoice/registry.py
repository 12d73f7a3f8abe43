"""Invoice registry — the two invoice slots of an order.

``auto_generated`` is produced once by the renderer:

    reserve (under lock) → render (no lock, bounded) → store → attach (under lock)

If the order changes in between (for example it is cancelled), the attach
step finds its reservation gone and the stored document is discarded.

``admin_uploaded`` is an operator-supplied PDF that may be replaced or
removed at any time. Neither slot ever stands in for the other.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import BinaryIO

import structlog
from protean.utils.globals import current_domain

from orders.config import get_settings
from orders.errors import InvalidInput, NotFound, OrdersError, RenderError, RenderTimeout, StorageError
from orders.invoice.slots import (
    AttachAdminInvoice,
    AttachAutoInvoice,
    DetachAdminInvoice,
    ReleaseAutoInvoice,
    ReserveAutoInvoice,
)
from orders.order.locking import OrderLocks, get_order_locks
from orders.order.order import InvoiceKind, Order
from orders.order.views import invoice_listing, order_snapshot
from orders.rendering import get_renderer
from orders.storage import get_blob_store

logger = structlog.get_logger(__name__)

PDF_MIME_TYPES = frozenset({"application/pdf", "application/x-pdf"})
PDF_SIGNATURE = b"%PDF-"


@dataclass
class InvoiceDownload:
    kind: str
    invoice_number: str
    file_name: str
    media_type: str
    stream: BinaryIO


class InvoiceRegistry:
    def __init__(
        self,
        locks: OrderLocks | None = None,
        renderer_factory=get_renderer,
        store_factory=get_blob_store,
    ):
        self.locks = locks or get_order_locks()
        self.renderer_factory = renderer_factory
        self.store_factory = store_factory

    def _repo(self):
        return current_domain.repository_for(Order)

    def _process(self, order_id: str, command):
        with self.locks.hold(order_id):
            return current_domain.process(command, asynchronous=False)

    def _discard(self, blob_ref: str) -> None:
        try:
            self.store_factory().delete(blob_ref)
        except StorageError as e:
            logger.warning("Failed to discard invoice document", blob_ref=blob_ref, error=e.message)

    def _reference(self, order_id: str, kind: InvoiceKind) -> dict:
        order = self._repo().get_order(order_id)
        return next(item for item in invoice_listing(order) if item["kind"] == kind.value)

    # -------------------------------------------------------------------
    # Auto-generated slot
    # -------------------------------------------------------------------
    def _render(self, invoice_data: dict, deadline: float) -> bytes:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="invoice-render")
        future = executor.submit(self.renderer_factory().render, invoice_data)
        try:
            return future.result(timeout=deadline)
        except TimeoutError:
            raise RenderTimeout(
                f"Invoice rendering did not finish within {deadline:g}s",
                invoice_number=invoice_data["invoice_number"],
            ) from None
        except OrdersError:
            raise
        except Exception as exc:
            raise RenderError("Invoice rendering failed", invoice_number=invoice_data["invoice_number"]) from exc
        finally:
            executor.shutdown(wait=False)

    def generate_auto(self, order_id: str, actor_id: str | None = None, deadline: float | None = None) -> dict:
        """Render, store and attach the system invoice for an order."""
        deadline = deadline if deadline is not None else get_settings().render_timeout_seconds

        with self.locks.hold(order_id):
            token = current_domain.process(ReserveAutoInvoice(order_id=order_id), asynchronous=False)
            order = self._repo().get_order(order_id)
            invoice_data = {
                **order_snapshot(order),
                "invoice_number": order.auto_invoice_number(),
                "total": order.pricing.total,
                "currency": order.pricing.currency,
            }

        try:
            content = self._render(invoice_data, deadline)
            blob_ref = self.store_factory().put(content, f"invoice-{order.order_number}.pdf")
        except Exception as e:
            self._process(order_id, ReleaseAutoInvoice(order_id=order_id, reservation=token))
            logger.warning(
                "Auto invoice generation failed",
                order_id=order_id,
                invoice_number=invoice_data["invoice_number"],
                error=str(e),
            )
            raise

        try:
            invoice_number = self._process(
                order_id,
                AttachAutoInvoice(
                    order_id=order_id,
                    reservation=token,
                    blob_ref=blob_ref,
                    file_size=len(content),
                    actor_id=actor_id,
                ),
            )
        except Exception:
            self._discard(blob_ref)
            raise

        logger.info("Auto invoice generated", order_id=order_id, invoice_number=invoice_number)
        return self._reference(order_id, InvoiceKind.AUTO_GENERATED)

    # -------------------------------------------------------------------
    # Admin-uploaded slot
    # -------------------------------------------------------------------
    def validate_upload(self, content: bytes, content_type: str | None) -> None:
        if (content_type or "").split(";")[0].strip().lower() not in PDF_MIME_TYPES:
            raise InvalidInput("file", "Only PDF files are allowed")
        if not content:
            raise InvalidInput("file", "Uploaded file is empty")
        max_bytes = get_settings().invoice_max_bytes
        if len(content) > max_bytes:
            raise InvalidInput("file", f"File exceeds the maximum size of {max_bytes} bytes")
        if not content.startswith(PDF_SIGNATURE):
            raise InvalidInput("file", "Uploaded file is not a valid PDF document")

    def upload_admin(
        self,
        order_id: str,
        content: bytes,
        invoice_number: str,
        uploader_id: str,
        notes: str | None = None,
        file_name: str | None = None,
        content_type: str | None = "application/pdf",
    ) -> dict:
        """Attach (or replace) the operator-uploaded invoice."""
        invoice_number = (invoice_number or "").strip()
        if not invoice_number:
            raise InvalidInput("invoice_number", "Invoice number is required")
        self.validate_upload(content, content_type)

        order = self._repo().get_order(order_id)
        blob_ref = self.store_factory().put(content, f"admin-invoice-{order.order_number}.pdf")

        try:
            replaced_ref = self._process(
                order_id,
                AttachAdminInvoice(
                    order_id=order_id,
                    invoice_number=invoice_number,
                    blob_ref=blob_ref,
                    uploaded_by=uploader_id,
                    file_size=len(content),
                    mime_type="application/pdf",
                    notes=notes,
                    original_file_name=file_name,
                ),
            )
        except Exception:
            self._discard(blob_ref)
            raise

        if replaced_ref:
            self._discard(replaced_ref)

        logger.info(
            "Admin invoice uploaded",
            order_id=order_id,
            invoice_number=invoice_number,
            replaced=bool(replaced_ref),
        )
        return self._reference(order_id, InvoiceKind.ADMIN_UPLOADED)

    def delete_admin(self, order_id: str, actor_id: str | None = None) -> dict:
        """Remove the operator-uploaded invoice. The auto slot is left alone."""
        removed = self._process(order_id, DetachAdminInvoice(order_id=order_id, actor_id=actor_id))
        self._discard(removed["blob_ref"])
        logger.info("Admin invoice deleted", order_id=order_id, invoice_number=removed["invoice_number"])
        return {"kind": InvoiceKind.ADMIN_UPLOADED.value, "invoice_number": removed["invoice_number"]}

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def list_invoices(self, order_id: str) -> list[dict]:
        return invoice_listing(self._repo().get_order(order_id))

    def download(self, order_id: str, kind: InvoiceKind | str) -> InvoiceDownload:
        try:
            kind = InvoiceKind(kind)
        except ValueError:
            raise InvalidInput("kind", f"Unknown invoice kind: {kind}") from None

        order = self._repo().get_order(order_id)
        reference = order.invoice_for(kind)
        if reference is None:
            raise NotFound(f"No {kind.value} invoice on this order", order_id=order_id)

        if kind is InvoiceKind.AUTO_GENERATED:
            file_name = f"invoice-{order.order_number}.pdf"
            media_type = "application/pdf"
        else:
            file_name = f"admin-invoice-{order.order_number}.pdf"
            media_type = reference.mime_type or "application/pdf"

        return InvoiceDownload(
            kind=kind.value,
            invoice_number=reference.invoice_number,
            file_name=file_name,
            media_type=media_type,
            stream=self.store_factory().get(reference.blob_ref),
        )
