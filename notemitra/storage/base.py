"""
NoteMitra Backend — Abstract Catalog Store Interface
======================================================

What:  The persistence contract shared by the durable and in-process stores.
How:   Concrete implementations inherit from CatalogStore and implement every
       abstract coroutine. Services receive a CatalogStore and never branch on
       which implementation they were given.
Who:   Implemented by SqlCatalogStore and InMemoryCatalogStore; selected once
       at startup by notemitra.storage.select_store.

Contract shared by every implementation:
    - Uniqueness (user email; note title/subject/semester; saved (user, note);
      vote (user, note)) is enforced inside the backend and signaled as
      DuplicateKeyError, so two racing writes yield exactly one winner.
    - Counter increments are atomic read-modify-write operations inside the
      backend, clamped at zero. Callers pass deltas, never absolute values.
    - Lookups return None for absent rows; they do not raise.
    - Records returned are copies: mutating them never changes stored state.
    - Connectivity failures raise StorageUnavailableError.
"""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from notemitra.models.records import (
    NoteRecord,
    SavedNoteRecord,
    UserRecord,
    VoteRecord,
    VoteType,
)


class DuplicateKeyError(Exception):
    """A write collided with an existing row on a unique key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Duplicate value for unique key '{key}'")


class VoteConflict(Exception):
    """The stored vote no longer matches the state a transition was computed from."""

    def __init__(self, expected: Optional[VoteType], actual: Optional[VoteType]):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected vote {expected}, found {actual}")


class CatalogStore(ABC):
    """
    Abstract persistence adapter for users, notes, saved notes and votes.

    Identifiers are UUIDs in both implementations. `is_valid_id` lets callers
    reject malformed identifiers before they reach the backend.
    """

    #: Short backend name reported by /health and startup logs
    backend_name: str = "abstract"

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Prepare the backend (create tables, warm pools). Default: nothing."""

    async def close(self) -> None:
        """Release backend resources. Default: nothing."""

    @abstractmethod
    async def ping(self) -> bool:
        """Lightweight reachability check used by the health endpoint."""
        ...

    # ── Identifiers ───────────────────────────────────────────────────────

    def is_valid_id(self, value: Any) -> bool:
        """True when `value` is a well-formed identifier for this store."""
        if isinstance(value, uuid.UUID):
            return True
        if not isinstance(value, str):
            return False
        try:
            uuid.UUID(value)
        except ValueError:
            return False
        return True

    # ── Users ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def insert_user(self, user: UserRecord) -> UserRecord:
        """Persist a new user. Raises DuplicateKeyError("email")."""
        ...

    @abstractmethod
    async def get_user(self, user_id: uuid.UUID) -> Optional[UserRecord]:
        ...

    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        """Case-insensitive lookup; emails are stored lower-cased."""
        ...

    @abstractmethod
    async def update_user(self, user_id: uuid.UUID, changes: Dict[str, Any]) -> Optional[UserRecord]:
        """Overwrite the given profile/status fields. Counters go through increment_user_counters."""
        ...

    @abstractmethod
    async def increment_user_counters(
        self, user_id: uuid.UUID, deltas: Dict[str, int]
    ) -> Optional[UserRecord]:
        """
        Atomically add `deltas` to counter columns, clamping each at zero.

        Valid keys: total_downloads, total_views, notes_uploaded, reputation.
        Returns None (without raising) when the user does not exist.
        """
        ...

    @abstractmethod
    async def list_uploaders(self) -> List[UserRecord]:
        """Every user with notes_uploaded > 0, in no particular order."""
        ...

    # ── Notes ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def insert_note(self, note: NoteRecord) -> NoteRecord:
        """Persist a new note. Raises DuplicateKeyError("title_subject_semester")."""
        ...

    @abstractmethod
    async def get_note(self, note_id: uuid.UUID) -> Optional[NoteRecord]:
        ...

    @abstractmethod
    async def find_note_by_key(self, title: str, subject: str, semester: int) -> Optional[NoteRecord]:
        """Exact, case-sensitive match on the (title, subject, semester) key."""
        ...

    @abstractmethod
    async def update_note(self, note_id: uuid.UUID, changes: Dict[str, Any]) -> Optional[NoteRecord]:
        """
        Overwrite metadata fields of a note.

        File references are changed through the `file_url` and `blob_id`
        keys. Raises DuplicateKeyError when the new key is taken.
        """
        ...

    @abstractmethod
    async def delete_note(self, note_id: uuid.UUID) -> Optional[NoteRecord]:
        """Remove a note with its saved-note and vote rows. Returns the removed note."""
        ...

    @abstractmethod
    async def increment_note_counters(
        self, note_id: uuid.UUID, deltas: Dict[str, int]
    ) -> Optional[NoteRecord]:
        """Atomically add `deltas` to views/downloads/upvotes/downvotes, clamped at zero."""
        ...

    @abstractmethod
    async def list_notes(
        self,
        *,
        subject: Optional[str] = None,
        semester: Optional[int] = None,
        branch: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[NoteRecord], int]:
        """
        One page of approved notes, newest first, plus the filtered total.

        Filters are exact matches; None means "any".
        """
        ...

    async def set_report(
        self, note_id: uuid.UUID, reported: bool, reason: Optional[str] = None
    ) -> Optional[NoteRecord]:
        """Flag or clear a note's report status."""
        return await self.update_note(
            note_id,
            {"is_reported": reported, "report_reason": reason if reported else None},
        )

    @abstractmethod
    async def list_reported_notes(self) -> List[NoteRecord]:
        """Reported notes, newest first."""
        ...

    # ── Saved Notes ───────────────────────────────────────────────────────

    @abstractmethod
    async def insert_saved_note(self, user_id: uuid.UUID, note_id: uuid.UUID) -> SavedNoteRecord:
        """Bookmark a note. Raises DuplicateKeyError("user_note")."""
        ...

    @abstractmethod
    async def get_saved_note(self, user_id: uuid.UUID, note_id: uuid.UUID) -> Optional[SavedNoteRecord]:
        ...

    @abstractmethod
    async def delete_saved_note(self, user_id: uuid.UUID, note_id: uuid.UUID) -> bool:
        """Remove a bookmark. Returns False when there was none."""
        ...

    @abstractmethod
    async def list_saved_notes(self, user_id: uuid.UUID) -> List[Tuple[SavedNoteRecord, NoteRecord]]:
        """A user's bookmarks joined to their notes, newest saved first; dangling rows skipped."""
        ...

    # ── Votes ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_vote(self, user_id: uuid.UUID, note_id: uuid.UUID) -> Optional[VoteRecord]:
        ...

    @abstractmethod
    async def apply_vote_transition(
        self,
        user_id: uuid.UUID,
        note_id: uuid.UUID,
        expected: Optional[VoteType],
        new: Optional[VoteType],
        note_deltas: Dict[str, int],
        owner_id: Optional[uuid.UUID],
        reputation_delta: int,
    ) -> Optional[NoteRecord]:
        """
        Apply one vote state change as a single atomic unit.

        Moves the (user, note) vote from `expected` to `new` (None meaning
        "no vote"), adds `note_deltas` to the note's vote counters and
        `reputation_delta` to the owner's reputation (skipped when the
        owner no longer exists).

        Returns:
            The note after the change, or None when the note does not exist.

        Raises:
            VoteConflict: the stored vote is not `expected` (a concurrent
                vote landed first). Nothing is written; callers retry.
        """
        ...
