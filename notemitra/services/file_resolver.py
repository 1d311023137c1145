"""
NoteMitra Backend — File Reference Resolver
=============================================

What:  Decides how a note's document is delivered.
How:   Walks the note's file references in priority order:
         1. external URL  → RedirectTarget (the URL is authoritative)
         2. blob id       → BlobDownload streaming from the BlobStore
Who:   NoteCatalog.download and the /api/files route.
"""

import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator

from notemitra.exceptions import NotFoundError
from notemitra.models.records import BlobRef, ExternalRef, NoteRecord
from notemitra.services.blob_store import BlobInfo, BlobStore

logger = logging.getLogger(__name__)

# ASCII letters, digits, "_", space, "." and "-" survive; headers are latin-1 encoded
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w .-]", re.ASCII)


def sanitize_filename(filename: str) -> str:
    """Replace anything outside ASCII word characters, space, '.' and '-' with '_'."""
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


@dataclass(frozen=True)
class RedirectTarget:
    url: str


@dataclass(frozen=True)
class BlobDownload:
    info: BlobInfo
    filename: str
    chunks: AsyncIterator[bytes]

    @property
    def content_type(self) -> str:
        return self.info.content_type

    @property
    def size(self) -> int:
        return self.info.size


class FileReferenceResolver:
    def __init__(self, blob_store: BlobStore):
        self.blob_store = blob_store

    async def resolve(self, note: NoteRecord):
        """
        Returns:
            RedirectTarget or BlobDownload

        Raises:
            NotFoundError(NO_FILE_ASSOCIATED): the note carries no usable reference
            NotFoundError(FILE_NOT_FOUND): the blob is missing from storage
        """
        for ref in note.files:
            if isinstance(ref, ExternalRef) and ref.url.strip():
                return RedirectTarget(url=ref.url.strip())
        for ref in note.files:
            if isinstance(ref, BlobRef) and ref.blob_id:
                return await self.open_blob(ref.blob_id)

        raise NotFoundError(
            resource="file",
            error_code="NO_FILE_ASSOCIATED",
            message="No file is associated with this note",
            context={"note_id": str(note.id)},
        )

    async def open_blob(self, blob_id: str) -> BlobDownload:
        info = await self.blob_store.get_info(blob_id)
        if info is None:
            logger.warning("Blob %s referenced but missing from storage", blob_id)
            raise NotFoundError(
                resource="file",
                resource_id=blob_id,
                error_code="FILE_NOT_FOUND",
                message="File not found in storage",
            )
        return BlobDownload(
            info=info,
            filename=sanitize_filename(info.filename),
            chunks=self.blob_store.iter_chunks(blob_id),
        )
