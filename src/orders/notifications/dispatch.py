"""Notification dispatch — a post-commit hook that tells customers about changes.

Only changes flagged with ``notify`` are sent. Delivery runs on an optional
executor (a background thread pool in the application, inline in tests).
Failures are logged and never reach the caller.
"""

from collections.abc import Callable
from concurrent.futures import Executor

import structlog

from orders.notifications import get_notification_sender

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Sends a notification for each committed change that asks for one."""

    def __init__(
        self,
        executor: Executor | None = None,
        sender_factory: Callable = get_notification_sender,
    ):
        self.executor = executor
        self.sender_factory = sender_factory

    def __call__(self, order_id: str, change: dict) -> None:
        if not change.get("notify"):
            return
        event = {key: value for key, value in change.items() if key != "notify"}
        if self.executor is not None:
            self.executor.submit(self._deliver, order_id, event)
        else:
            self._deliver(order_id, event)

    def _deliver(self, order_id: str, event: dict) -> None:
        try:
            self.sender_factory().notify(order_id, event)
            logger.info(
                "Notification sent",
                order_id=order_id,
                event_type=event.get("type"),
            )
        except Exception as e:
            logger.error(
                "Notification dispatch failed",
                order_id=order_id,
                event_type=event.get("type"),
                error=str(e),
            )
