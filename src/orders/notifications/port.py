"""Notification port — abstract interface for customer-facing notifications."""

from abc import ABC, abstractmethod


class NotificationSenderPort(ABC):
    """Abstract interface for notification senders."""

    @abstractmethod
    def notify(self, order_id: str, event: dict) -> None:
        """Deliver a notification about an order.

        ``event`` always carries ``type`` and ``order_number``; status
        changes add ``previous_status`` and ``new_status``.

        Raises any exception on delivery failure. Callers decide whether a
        failure matters.
        """
        ...
