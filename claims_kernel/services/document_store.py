"""
Document storage protocol and the local-filesystem store.

Contract:
    DocumentStore.store() validates and writes bytes, returning an opaque
    handle.  The handle is generated (uuid4 hex plus the lower-cased
    extension) and never derived from the caller's filename, so two
    uploads of "timesheet.pdf" never collide and no filename can escape
    the storage root.

Architecture: claims_kernel/services.  File I/O only, no DB imports.
ClaimService keeps the original filename on the SupportingDocument row
for display.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Protocol, runtime_checkable

from claims_kernel.exceptions import (
    DocumentNotFoundError,
    DocumentTooLargeError,
    DocumentTypeNotAllowedError,
    EmptyDocumentError,
    StorageError,
)
from claims_kernel.logging_config import get_logger

logger = get_logger("services.document_store")

_HANDLE_RE = re.compile(r"^[0-9a-f]{32}\.[a-z0-9]{1,10}$")


@dataclass(frozen=True)
class StoredFile:
    """Where a stored document lives and how big it is."""

    handle: str
    size_bytes: int


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for the file storage collaborator."""

    def store(
        self,
        content: bytes,
        original_filename: str,
        allowed_extensions: tuple[str, ...],
        max_size_bytes: int,
    ) -> StoredFile:
        """Validate and persist ``content``; return its handle."""
        ...

    def delete(self, handle: str) -> None:
        """Remove a stored file.  Deleting an absent file is a no-op."""
        ...

    def read(self, handle: str) -> bytes:
        """Return stored bytes or raise DocumentNotFoundError."""
        ...


def file_extension(filename: str) -> str:
    """Lower-cased extension without the dot ("" when there is none)."""
    return PurePath(filename).suffix.lower().lstrip(".")


def validate_upload(
    content: bytes,
    original_filename: str,
    allowed_extensions: tuple[str, ...],
    max_size_bytes: int,
) -> str:
    """
    Check an upload against the allow-list and size cap.

    Returns:
        The normalized extension.

    Raises:
        DocumentTypeNotAllowedError: Extension not in ``allowed_extensions``.
        EmptyDocumentError: ``content`` is empty.
        DocumentTooLargeError: ``content`` exceeds ``max_size_bytes``.
    """
    ext = file_extension(original_filename)
    allowed = tuple(e.lower().lstrip(".") for e in allowed_extensions)
    if not ext or ext not in allowed:
        raise DocumentTypeNotAllowedError(original_filename, allowed)
    if not content:
        raise EmptyDocumentError(original_filename)
    if len(content) > max_size_bytes:
        raise DocumentTooLargeError(original_filename, len(content), max_size_bytes)
    return ext


class LocalDocumentStore:
    """
    Stores documents as flat files under a root directory.

    Each file is named ``<uuid4 hex>.<ext>``; the root is created on first
    write.  OS errors surface as StorageError.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path_for(self, handle: str) -> Path:
        if not _HANDLE_RE.match(handle):
            raise DocumentNotFoundError(handle)
        return self.root / handle

    def store(
        self,
        content: bytes,
        original_filename: str,
        allowed_extensions: tuple[str, ...],
        max_size_bytes: int,
    ) -> StoredFile:
        ext = validate_upload(content, original_filename, allowed_extensions, max_size_bytes)
        handle = f"{uuid.uuid4().hex}.{ext}"
        path = self.root / handle
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with path.open("xb") as f:
                f.write(content)
        except OSError as exc:
            logger.error(
                "document_store_failed",
                extra={"handle": handle, "operation": "store"},
                exc_info=True,
            )
            raise StorageError("store", handle, str(exc)) from exc

        logger.debug(
            "document_stored",
            extra={"handle": handle, "size_bytes": len(content)},
        )
        return StoredFile(handle=handle, size_bytes=len(content))

    def delete(self, handle: str) -> None:
        path = self._path_for(handle)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError("delete", handle, str(exc)) from exc
        logger.debug("document_file_deleted", extra={"handle": handle})

    def read(self, handle: str) -> bytes:
        path = self._path_for(handle)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise DocumentNotFoundError(handle) from exc
        except OSError as exc:
            raise StorageError("read", handle, str(exc)) from exc
