"""Blob store port — abstract interface for invoice document storage.

References returned by ``put`` are opaque strings. The Order aggregate
stores only the reference, never the bytes.
"""

from abc import ABC, abstractmethod
from typing import BinaryIO


class BlobStorePort(ABC):
    """Abstract interface for blob stores."""

    @abstractmethod
    def put(self, content: bytes, name: str) -> str:
        """Persist ``content`` and return a reference to it.

        Raises:
            StorageError: if the content could not be written.
        """
        ...

    @abstractmethod
    def get(self, ref: str) -> BinaryIO:
        """Open a stored document for reading.

        Raises:
            StorageError: if the reference is unknown or unreadable.
        """
        ...

    @abstractmethod
    def delete(self, ref: str) -> None:
        """Remove a stored document. Deleting a missing reference is a no-op."""
        ...

    @abstractmethod
    def exists(self, ref: str) -> bool: ...
