"""Error taxonomy for the Orders domain.

State-machine guard failures and malformed input are Protean
``ValidationError`` subclasses so they flow through the same handling as
field validation. Everything else derives from ``OrdersError``.
"""

from protean.exceptions import ValidationError


class OrdersError(Exception):
    """Base class for non-validation failures in the Orders domain."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidTransition(ValidationError):
    """A requested status change is incompatible with the current status,
    or a field the transition requires is missing."""

    def __init__(self, current_status: str, target_status: str, reason: str):
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__({"status": [reason]})


class InvalidInput(ValidationError):
    """Malformed input: wrong MIME type, oversize upload, empty text."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__({field: [reason]})


class NotFound(OrdersError):
    """Order, invoice slot, or payment attempt does not exist."""


class AlreadyExists(OrdersError):
    """The auto-generated invoice slot is already filled."""


class Conflict(OrdersError):
    """Concurrent modification: stale revision or invalidated reservation."""


class RenderError(OrdersError):
    """The invoice renderer failed."""


class RenderTimeout(OrdersError):
    """The invoice renderer did not finish within the deadline."""


class StorageError(OrdersError):
    """The blob store failed to persist, read, or delete a document."""
