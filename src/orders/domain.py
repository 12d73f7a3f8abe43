"""Orders bounded context — Order Lifecycle and Invoicing.

Handles the order state machine (payment, fulfillment, delivery), the
append-only audit timeline, admin notes, shipping events, and the two
independent invoice slots (system-generated and admin-uploaded).
"""

import structlog
from protean.domain import Domain

orders = Domain(name="orders")

logger = structlog.get_logger(__name__)
