"""Fake notification sender — records notifications for testing."""

from orders.notifications.port import NotificationSenderPort


class FakeNotificationSender(NotificationSenderPort):
    """Sender that records messages in memory for test assertions."""

    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification delivery failed"):
        """Configure the fake sender behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def notify(self, order_id: str, event: dict) -> None:
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)
        self.sent.append({"order_id": order_id, **event})

    def reset(self):
        """Clear recorded notifications (useful between tests)."""
        self.sent.clear()
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"
