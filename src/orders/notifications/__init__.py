"""Notification sender abstraction — pluggable customer notifications."""

from orders.config import get_settings

_sender_instance = None


def get_notification_sender():
    """Return the configured notification sender (singleton).

    Uses FakeNotificationSender by default. Configure via the
    NOTIFICATION_SENDER setting.
    """
    global _sender_instance
    if _sender_instance is None:
        adapter = get_settings().notification_sender
        if adapter == "fake":
            from orders.notifications.fake_adapter import FakeNotificationSender

            _sender_instance = FakeNotificationSender()
        else:
            raise ValueError(f"Unknown notification sender: {adapter}")
    return _sender_instance


def set_notification_sender(sender) -> None:
    """Install a specific sender (e.g. a test double)."""
    global _sender_instance
    _sender_instance = sender


def reset_notification_sender():
    """Reset the sender singleton (useful for testing)."""
    global _sender_instance
    _sender_instance = None
