"""Per-order mutual exclusion.

Every mutating operation holds its order's lock for the whole
load-validate-persist cycle. Locks are keyed by order ID, so work on
different orders never contends.

An entry exists only while some thread holds or waits on it; the table
shrinks back to empty once an order goes quiet.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class OrderLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def is_held(self, order_id: str) -> bool:
        with self._guard:
            entry = self._entries.get(str(order_id))
            return entry is not None and entry.lock.locked()

    def _checkout(self, order_id: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(order_id)
            if entry is None:
                entry = self._entries[order_id] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, order_id: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[order_id]

    @contextmanager
    def hold(self, order_id: str) -> Iterator[None]:
        order_id = str(order_id)
        entry = self._checkout(order_id)
        try:
            with entry.lock:
                yield
        finally:
            self._checkin(order_id, entry)


_locks_instance: OrderLocks | None = None


def get_order_locks() -> OrderLocks:
    """Return the process-wide lock table (singleton)."""
    global _locks_instance
    if _locks_instance is None:
        _locks_instance = OrderLocks()
    return _locks_instance


def reset_order_locks():
    """Reset the lock table (useful for testing)."""
    global _locks_instance
    _locks_instance = None
