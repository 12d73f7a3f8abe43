"""Blob store abstraction — where invoice PDFs live."""

from orders.config import get_settings

_store_instance = None


def get_blob_store():
    """Return the configured blob store (singleton).

    ``ORDERS_BLOB_STORE=memory`` (default) keeps documents in process;
    ``filesystem`` writes them under ``ORDERS_BLOB_DIR``.
    """
    global _store_instance
    if _store_instance is None:
        settings = get_settings()
        if settings.blob_store == "memory":
            from orders.storage.memory import InMemoryBlobStore

            _store_instance = InMemoryBlobStore()
        elif settings.blob_store == "filesystem":
            from orders.storage.filesystem import FileSystemBlobStore

            _store_instance = FileSystemBlobStore(settings.blob_dir)
        else:
            raise ValueError(f"Unknown blob store: {settings.blob_store}")
    return _store_instance


def set_blob_store(store) -> None:
    """Install a specific store (e.g. a test double)."""
    global _store_instance
    _store_instance = store


def reset_blob_store():
    """Reset the blob store singleton (useful for testing)."""
    global _store_instance
    _store_instance = None
