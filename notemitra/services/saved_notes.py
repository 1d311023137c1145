"""
NoteMitra Backend — Saved Note Index
======================================

What:  The bookmark relation between users and notes.
How:   One row per (user, note), unique in the store. A second save is a
       conflict that reports when the original bookmark was made.
"""

import logging
import uuid
from typing import List, Optional, Tuple

from notemitra.exceptions import ConflictError, NotFoundError
from notemitra.models.records import NoteRecord, SavedNoteRecord
from notemitra.storage import CatalogStore, DuplicateKeyError

logger = logging.getLogger(__name__)


class SavedNoteIndex:
    def __init__(self, store: CatalogStore):
        self.store = store

    async def save(self, user_id: uuid.UUID, note_id: uuid.UUID) -> SavedNoteRecord:
        """
        Bookmark a note.

        Raises:
            NotFoundError(NOTE_NOT_FOUND)
            ConflictError(ALREADY_SAVED): details carry the original saved_at
        """
        if await self.store.get_note(note_id) is None:
            raise NotFoundError(resource="note", resource_id=str(note_id), error_code="NOTE_NOT_FOUND")
        try:
            saved = await self.store.insert_saved_note(user_id, note_id)
        except DuplicateKeyError:
            existing = await self.store.get_saved_note(user_id, note_id)
            raise ConflictError(
                message="Note is already saved",
                error_code="ALREADY_SAVED",
                details={"saved_at": existing.saved_at.isoformat() if existing else None},
            )
        logger.info("User %s saved note %s", user_id, note_id)
        return saved

    async def unsave(self, user_id: uuid.UUID, note_id: uuid.UUID) -> None:
        if not await self.store.delete_saved_note(user_id, note_id):
            raise NotFoundError(
                resource="saved note",
                error_code="NOT_SAVED",
                message="Note is not in your saved list",
            )
        logger.info("User %s unsaved note %s", user_id, note_id)

    async def is_saved(self, user_id: Optional[uuid.UUID], note_id: Optional[uuid.UUID]) -> bool:
        """Never fails: anonymous callers and unknown ids simply get False."""
        if user_id is None or note_id is None:
            return False
        return await self.store.get_saved_note(user_id, note_id) is not None

    async def list_saved(self, user_id: uuid.UUID) -> List[Tuple[SavedNoteRecord, NoteRecord]]:
        """Bookmarked notes, most recently saved first. Bookmarks of deleted notes are skipped."""
        return await self.store.list_saved_notes(user_id)
