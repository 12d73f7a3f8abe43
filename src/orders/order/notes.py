"""Admin notes — command and handler."""

from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from orders.domain import orders
from orders.order.order import Order


@orders.command(part_of="Order")
class AddAdminNote:
    order_id = Identifier(required=True)
    text = Text()
    author_id = String(max_length=255)
    expected_revision = Integer()


@orders.command_handler(part_of=Order)
class AdminNoteHandler:
    @handle(AddAdminNote)
    def add_admin_note(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.ensure_revision(command.expected_revision)
        note = order.add_admin_note(command.text, author_id=command.author_id)
        repo.add(order)
        return str(note.id)
