"""In-memory blob store — the default for tests and development."""

import io
import threading
from typing import BinaryIO
from uuid import uuid4

from orders.errors import StorageError
from orders.storage.port import BlobStorePort


class InMemoryBlobStore(BlobStorePort):
    """Keeps documents in a dict. Can be configured to fail writes."""

    def __init__(self):
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.Lock()
        self.should_succeed = True
        self.failure_reason = "Blob store unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Blob store unavailable"):
        """Configure the store behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def put(self, content: bytes, name: str) -> str:
        if not self.should_succeed:
            raise StorageError(self.failure_reason, name=name)
        ref = f"mem://{uuid4().hex}/{name}"
        with self._lock:
            self._blobs[ref] = bytes(content)
        return ref

    def get(self, ref: str) -> BinaryIO:
        with self._lock:
            content = self._blobs.get(ref)
        if content is None:
            raise StorageError("Stored document is missing", ref=ref)
        return io.BytesIO(content)

    def delete(self, ref: str) -> None:
        with self._lock:
            self._blobs.pop(ref, None)

    def exists(self, ref: str) -> bool:
        with self._lock:
            return ref in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
