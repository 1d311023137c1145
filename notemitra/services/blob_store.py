"""
NoteMitra Backend — Blob Store
================================

What:  Internal storage for uploaded PDF documents.
How:   Each blob is a `<blob_id>.pdf` file plus a `<blob_id>.json` metadata
       sidecar under STORAGE_ROOT. Files live on disk whichever catalog
       store is active, so blob references resolve the same way under both.
Who:   Upload route (store), FileReferenceResolver (info + stream),
       NoteCatalog.delete (release).

Security Model:
    1. Extension check:   only `.pdf` is accepted
    2. Size check:        Content-Length first, then actual byte count
    3. MIME type check:   libmagic inspects the header bytes
    4. Opaque blob ids:   uuid4 hex, validated on every lookup, so a
                          caller-supplied id can never escape STORAGE_ROOT
"""

import json
import logging
import os
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
from pydantic import BaseModel

from notemitra.config import settings
from notemitra.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {"application/pdf"}
ALLOWED_EXTENSIONS = {".pdf"}
DEFAULT_CHUNK_SIZE = 64 * 1024

_BLOB_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


class BlobInfo(BaseModel):
    """Metadata stored alongside each blob."""

    blob_id: str
    filename: str
    content_type: str
    size: int
    uploaded_at: datetime


class BlobStore:
    """
    Manages the lifecycle of uploaded PDFs.

    Directory Structure:
        storage/
        ├── 3f2a…9c.pdf
        └── 3f2a…9c.json
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the default storage path (used in tests).
                         If None, uses settings.storage_root.
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("BlobStore initialized with storage_root=%s", self.storage_root)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, filename: str) -> str:
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=f"File type '{ext or 'unknown'}' is not supported. Only PDF files are allowed.",
                error_code="INVALID_FILE_TYPE",
                field="file",
                context={"extension": ext},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Reject empty uploads and anything above MAX_FILE_SIZE.

        Content-Length is checked first so oversized bodies are refused
        before their bytes are inspected; the actual size catches clients
        that misreport it.
        """
        max_mb = settings.max_file_size / (1024 * 1024)

        if actual_size == 0:
            raise ValidationError(
                message="Uploaded file is empty",
                error_code="EMPTY_FILE",
                field="file",
            )

        if (content_length and content_length > settings.max_file_size) or actual_size > settings.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB",
                error_code="FILE_TOO_LARGE",
                field="file",
                details={"max_size_mb": round(max_mb)},
                context={"reported_size": content_length, "actual_size": actual_size},
            )

    def validate_mime_type(self, file_content: bytes, filename: str) -> str:
        """
        Validate the real content type from the file's magic bytes.

        Raises:
            ValidationError: the bytes are not a PDF
            FileStorageError: libmagic could not inspect the content
        """
        try:
            import magic

            mime_type = magic.from_buffer(file_content[:2048], mime=True)
        except Exception as e:
            logger.error("MIME type detection failed for %s: %s", filename, str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message="File content is not a valid PDF document",
                error_code="INVALID_FILE_TYPE",
                field="file",
                context={"detected_mime": mime_type},
            )
        return mime_type

    # ── Paths ─────────────────────────────────────────────────────────────

    def is_valid_blob_id(self, blob_id: str) -> bool:
        return isinstance(blob_id, str) and bool(_BLOB_ID_PATTERN.match(blob_id))

    def _data_path(self, blob_id: str) -> Path:
        return self.storage_root / f"{blob_id}.pdf"

    def _meta_path(self, blob_id: str) -> Path:
        return self.storage_root / f"{blob_id}.json"

    # ── Operations ────────────────────────────────────────────────────────

    async def store(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> BlobInfo:
        """
        Validate and persist an uploaded PDF.

        Validation order: extension → size → MIME type. A failed write
        removes any partial file before raising FileStorageError.
        """
        self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        content_type = self.validate_mime_type(content, filename)

        info = BlobInfo(
            blob_id=uuid.uuid4().hex,
            filename=Path(filename).name,
            content_type=content_type,
            size=len(content),
            uploaded_at=datetime.now(timezone.utc),
        )
        data_path = self._data_path(info.blob_id)
        try:
            async with aiofiles.open(data_path, "wb") as f:
                await f.write(content)
            async with aiofiles.open(self._meta_path(info.blob_id), "w", encoding="utf-8") as f:
                await f.write(info.model_dump_json())
        except OSError as e:
            logger.error("Failed to store blob %s: %s", info.blob_id, str(e))
            await self.delete(info.blob_id)
            raise FileStorageError(
                message="Failed to save uploaded file. Please try again.",
                context={"path": str(data_path), "os_error": str(e)},
            )

        logger.info("Blob stored: %s (%d bytes, %s)", info.blob_id, info.size, info.filename)
        return info

    async def get_info(self, blob_id: str) -> Optional[BlobInfo]:
        """Metadata for a blob, or None when the id is malformed or the bytes are gone."""
        if not self.is_valid_blob_id(blob_id) or not self._data_path(blob_id).exists():
            return None
        try:
            async with aiofiles.open(self._meta_path(blob_id), "r", encoding="utf-8") as f:
                return BlobInfo.model_validate(json.loads(await f.read()))
        except (OSError, ValueError):
            # Sidecar missing or unreadable: fall back to what the file system knows
            stat = self._data_path(blob_id).stat()
            return BlobInfo(
                blob_id=blob_id,
                filename=f"{blob_id}.pdf",
                content_type="application/pdf",
                size=stat.st_size,
                uploaded_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )

    async def iter_chunks(self, blob_id: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """
        Yield the blob's bytes in chunks.

        An async generator: when the consumer stops iterating (client
        disconnect), the `async with` block closes the file.
        """
        async with aiofiles.open(self._data_path(blob_id), "rb") as f:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    async def delete(self, blob_id: str) -> bool:
        """
        Remove a blob and its metadata.

        Best-effort: failures are logged, never raised.
        """
        if not self.is_valid_blob_id(blob_id):
            return False
        removed = False
        for path in (self._data_path(blob_id), self._meta_path(blob_id)):
            try:
                if path.exists():
                    os.remove(path)
                    removed = True
            except OSError as e:
                logger.warning("Failed to remove %s: %s", path.name, str(e))
        if removed:
            logger.info("Blob released: %s", blob_id)
        return removed
