"""Invoice slot mutations — commands and handler.

Each command is one short critical section against the Order. Rendering and
blob storage happen between these commands, outside the order lock.
"""

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from orders.domain import orders
from orders.order.order import Order


@orders.command(part_of="Order")
class ReserveAutoInvoice:
    order_id = Identifier(required=True)


@orders.command(part_of="Order")
class ReleaseAutoInvoice:
    order_id = Identifier(required=True)
    reservation = String(required=True, max_length=64)


@orders.command(part_of="Order")
class AttachAutoInvoice:
    order_id = Identifier(required=True)
    reservation = String(required=True, max_length=64)
    blob_ref = String(required=True, max_length=500)
    file_size = Integer(default=0)
    actor_id = String(max_length=255)


@orders.command(part_of="Order")
class AttachAdminInvoice:
    order_id = Identifier(required=True)
    invoice_number = String(max_length=100)
    blob_ref = String(required=True, max_length=500)
    uploaded_by = String(max_length=255)
    file_size = Integer(default=0)
    mime_type = String(max_length=100, default="application/pdf")
    notes = Text()
    original_file_name = String(max_length=255)


@orders.command(part_of="Order")
class DetachAdminInvoice:
    order_id = Identifier(required=True)
    actor_id = String(max_length=255)


@orders.command_handler(part_of=Order)
class InvoiceSlotHandler:
    @handle(ReserveAutoInvoice)
    def reserve(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        token = order.reserve_auto_invoice()
        repo.add(order)
        return token

    @handle(ReleaseAutoInvoice)
    def release(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        released = order.release_auto_invoice(command.reservation)
        if released:
            repo.add(order)
        return released

    @handle(AttachAutoInvoice)
    def attach_auto(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        invoice = order.attach_auto_invoice(
            token=command.reservation,
            blob_ref=command.blob_ref,
            file_size=command.file_size,
            actor_id=command.actor_id,
        )
        repo.add(order)
        return invoice.invoice_number

    @handle(AttachAdminInvoice)
    def attach_admin(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        previous = order.attach_admin_invoice(
            invoice_number=command.invoice_number,
            blob_ref=command.blob_ref,
            uploaded_by=command.uploaded_by,
            file_size=command.file_size,
            mime_type=command.mime_type,
            notes=command.notes,
            original_file_name=command.original_file_name,
        )
        repo.add(order)
        return previous.blob_ref if previous else None

    @handle(DetachAdminInvoice)
    def detach_admin(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        previous = order.detach_admin_invoice(actor_id=command.actor_id)
        repo.add(order)
        return {"invoice_number": previous.invoice_number, "blob_ref": previous.blob_ref}
