"""Blob store: file bytes on local disk.

Bytes are written under ``upload_dir`` with a UUID-based name that keeps
the original extension. The returned reference is that bare name; it never
contains a path separator, so a reference cannot point outside the
directory.
"""
import logging
import uuid
from pathlib import Path

from parley.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class BlobStore:
    def __init__(self, upload_dir: str = "uploads") -> None:
        self._root = Path(upload_dir)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def put(self, data: bytes, filename: str = "") -> str:
        """Store ``data`` and return its reference."""
        ext = Path(filename).suffix.lower() if filename else ""
        reference = f"{uuid.uuid4()}{ext}"
        (self._root / reference).write_bytes(data)
        logger.info("[Blobs] Stored %s (%d bytes)", reference, len(data))
        return reference

    def path(self, reference: str) -> Path:
        """Resolve a reference to a file path.

        Raises:
            ValidationError: Reference is not a bare name.
            NotFoundError: Nothing is stored under it.
        """
        target = self._resolve(reference)
        if not target.is_file():
            raise NotFoundError("File not found on disk.")
        return target

    def exists(self, reference: str) -> bool:
        return self._resolve(reference).is_file()

    def delete(self, reference: str) -> bool:
        target = self._resolve(reference)
        if not target.is_file():
            return False
        target.unlink()
        return True

    def _resolve(self, reference: str) -> Path:
        if not reference or reference != Path(reference).name or reference in (".", ".."):
            raise ValidationError("Invalid file reference.")
        return self._root / reference
