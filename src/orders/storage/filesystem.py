"""Filesystem blob store — documents written under a configured root directory."""

from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

import structlog

from orders.errors import StorageError
from orders.storage.port import BlobStorePort

logger = structlog.get_logger(__name__)


class FileSystemBlobStore(BlobStorePort):
    """Stores each document as ``<root>/<uuid>-<name>``; the ref is the file name."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, ref: str) -> Path:
        path = (self.root / ref).resolve()
        if path.parent != self.root.resolve():
            raise StorageError("Invalid document reference", ref=ref)
        return path

    def put(self, content: bytes, name: str) -> str:
        ref = f"{uuid4().hex}-{Path(name).name}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self._path(ref).write_bytes(content)
        except OSError as exc:
            logger.error("Failed to write document", ref=ref, error=str(exc))
            raise StorageError("Could not store document", ref=ref) from exc
        return ref

    def get(self, ref: str) -> BinaryIO:
        try:
            return self._path(ref).open("rb")
        except OSError as exc:
            raise StorageError("Stored document is missing", ref=ref) from exc

    def delete(self, ref: str) -> None:
        try:
            self._path(ref).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError("Could not delete document", ref=ref) from exc

    def exists(self, ref: str) -> bool:
        return self._path(ref).is_file()
