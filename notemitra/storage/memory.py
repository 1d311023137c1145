"""
NoteMitra Backend — In-Process Catalog Store
==============================================

What:  CatalogStore kept entirely in process memory.
Why:   Lets the service run (and the test-suite exercise every rule) when no
       database is reachable. Data lives for the lifetime of the process.
How:   Plain dicts plus unique-key indexes, with every read-modify-write
       performed under one asyncio.Lock. Single process only.

Stored records are private copies; every method returns a fresh copy so a
caller mutating a returned record cannot corrupt the store.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from notemitra.models.records import (
    NoteRecord,
    SavedNoteRecord,
    UserRecord,
    VoteRecord,
    VoteType,
    build_file_references,
)
from notemitra.storage.base import CatalogStore, DuplicateKeyError, VoteConflict

logger = logging.getLogger(__name__)

USER_COUNTERS = {"total_downloads", "total_views", "notes_uploaded", "reputation"}
NOTE_COUNTERS = {"views", "downloads", "upvotes", "downvotes"}


def _clamped_add(record, deltas: Dict[str, int], allowed: set) -> None:
    for field, delta in deltas.items():
        if field not in allowed:
            raise ValueError(f"'{field}' is not a counter")
        setattr(record, field, max(0, getattr(record, field) + delta))


class InMemoryCatalogStore(CatalogStore):
    """Dictionary-backed store guarded by a single asyncio.Lock."""

    backend_name = "memory"

    def __init__(self):
        self._lock = asyncio.Lock()
        self._users: Dict[uuid.UUID, UserRecord] = {}
        self._emails: Dict[str, uuid.UUID] = {}
        self._notes: Dict[uuid.UUID, NoteRecord] = {}
        self._note_keys: Dict[tuple, uuid.UUID] = {}
        self._saved: Dict[Tuple[uuid.UUID, uuid.UUID], SavedNoteRecord] = {}
        self._votes: Dict[Tuple[uuid.UUID, uuid.UUID], VoteRecord] = {}
        logger.info("In-memory catalog store initialized")

    async def ping(self) -> bool:
        return True

    # ── Users ─────────────────────────────────────────────────────────────

    async def insert_user(self, user: UserRecord) -> UserRecord:
        async with self._lock:
            email = user.email.lower()
            if email in self._emails:
                raise DuplicateKeyError("email")
            stored = user.model_copy(update={"email": email}, deep=True)
            self._users[stored.id] = stored
            self._emails[email] = stored.id
            return stored.model_copy(deep=True)

    async def get_user(self, user_id: uuid.UUID) -> Optional[UserRecord]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        user_id = self._emails.get(email.lower())
        return await self.get_user(user_id) if user_id else None

    async def update_user(self, user_id: uuid.UUID, changes: Dict[str, Any]) -> Optional[UserRecord]:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            for field, value in changes.items():
                setattr(user, field, value)
            return user.model_copy(deep=True)

    async def increment_user_counters(
        self, user_id: uuid.UUID, deltas: Dict[str, int]
    ) -> Optional[UserRecord]:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            _clamped_add(user, deltas, USER_COUNTERS)
            return user.model_copy(deep=True)

    async def list_uploaders(self) -> List[UserRecord]:
        return [u.model_copy(deep=True) for u in self._users.values() if u.notes_uploaded > 0]

    # ── Notes ─────────────────────────────────────────────────────────────

    async def insert_note(self, note: NoteRecord) -> NoteRecord:
        async with self._lock:
            if note.unique_key in self._note_keys:
                raise DuplicateKeyError("title_subject_semester")
            stored = note.model_copy(deep=True)
            self._notes[stored.id] = stored
            self._note_keys[stored.unique_key] = stored.id
            return stored.model_copy(deep=True)

    async def get_note(self, note_id: uuid.UUID) -> Optional[NoteRecord]:
        note = self._notes.get(note_id)
        return note.model_copy(deep=True) if note else None

    async def find_note_by_key(self, title: str, subject: str, semester: int) -> Optional[NoteRecord]:
        note_id = self._note_keys.get((title, subject, semester))
        return await self.get_note(note_id) if note_id else None

    async def update_note(self, note_id: uuid.UUID, changes: Dict[str, Any]) -> Optional[NoteRecord]:
        async with self._lock:
            note = self._notes.get(note_id)
            if note is None:
                return None

            changes = dict(changes)
            file_url = changes.pop("file_url", note.file_url)
            blob_id = changes.pop("blob_id", note.blob_id)
            updated = note.model_copy(update=changes, deep=True)
            updated.files = build_file_references(file_url, blob_id)

            old_key, new_key = note.unique_key, updated.unique_key
            if new_key != old_key and new_key in self._note_keys:
                raise DuplicateKeyError("title_subject_semester")

            self._notes[note_id] = updated
            if new_key != old_key:
                del self._note_keys[old_key]
                self._note_keys[new_key] = note_id
            return updated.model_copy(deep=True)

    async def delete_note(self, note_id: uuid.UUID) -> Optional[NoteRecord]:
        async with self._lock:
            note = self._notes.pop(note_id, None)
            if note is None:
                return None
            self._note_keys.pop(note.unique_key, None)
            for key in [k for k in self._saved if k[1] == note_id]:
                del self._saved[key]
            for key in [k for k in self._votes if k[1] == note_id]:
                del self._votes[key]
            return note

    async def increment_note_counters(
        self, note_id: uuid.UUID, deltas: Dict[str, int]
    ) -> Optional[NoteRecord]:
        async with self._lock:
            note = self._notes.get(note_id)
            if note is None:
                return None
            _clamped_add(note, deltas, NOTE_COUNTERS)
            return note.model_copy(deep=True)

    async def list_notes(
        self,
        *,
        subject: Optional[str] = None,
        semester: Optional[int] = None,
        branch: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[NoteRecord], int]:
        matches = [
            note
            for note in self._notes.values()
            if note.is_approved
            and (subject is None or note.subject == subject)
            and (semester is None or note.semester == semester)
            and (branch is None or note.branch == branch)
        ]
        matches.sort(key=lambda n: n.created_at, reverse=True)
        page = matches[offset:offset + limit]
        return [n.model_copy(deep=True) for n in page], len(matches)

    async def list_reported_notes(self) -> List[NoteRecord]:
        reported = [n for n in self._notes.values() if n.is_reported]
        reported.sort(key=lambda n: n.created_at, reverse=True)
        return [n.model_copy(deep=True) for n in reported]

    # ── Saved Notes ───────────────────────────────────────────────────────

    async def insert_saved_note(self, user_id: uuid.UUID, note_id: uuid.UUID) -> SavedNoteRecord:
        async with self._lock:
            key = (user_id, note_id)
            if key in self._saved:
                raise DuplicateKeyError("user_note")
            record = SavedNoteRecord(
                user_id=user_id,
                note_id=note_id,
                saved_at=datetime.now(timezone.utc),
            )
            self._saved[key] = record
            return record.model_copy()

    async def get_saved_note(self, user_id: uuid.UUID, note_id: uuid.UUID) -> Optional[SavedNoteRecord]:
        record = self._saved.get((user_id, note_id))
        return record.model_copy() if record else None

    async def delete_saved_note(self, user_id: uuid.UUID, note_id: uuid.UUID) -> bool:
        async with self._lock:
            return self._saved.pop((user_id, note_id), None) is not None

    async def list_saved_notes(self, user_id: uuid.UUID) -> List[Tuple[SavedNoteRecord, NoteRecord]]:
        rows = [s for s in self._saved.values() if s.user_id == user_id]
        rows.sort(key=lambda s: s.saved_at, reverse=True)
        return [
            (saved.model_copy(), self._notes[saved.note_id].model_copy(deep=True))
            for saved in rows
            if saved.note_id in self._notes
        ]

    # ── Votes ─────────────────────────────────────────────────────────────

    async def get_vote(self, user_id: uuid.UUID, note_id: uuid.UUID) -> Optional[VoteRecord]:
        vote = self._votes.get((user_id, note_id))
        return vote.model_copy() if vote else None

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
        async with self._lock:
            note = self._notes.get(note_id)
            if note is None:
                return None

            key = (user_id, note_id)
            current = self._votes.get(key)
            actual = current.vote_type if current else None
            if actual != expected:
                raise VoteConflict(expected, actual)

            if new is None:
                self._votes.pop(key, None)
            elif current is None:
                self._votes[key] = VoteRecord(
                    user_id=user_id,
                    note_id=note_id,
                    vote_type=new,
                    created_at=datetime.now(timezone.utc),
                )
            else:
                current.vote_type = new

            _clamped_add(note, note_deltas, NOTE_COUNTERS)
            owner = self._users.get(owner_id) if owner_id else None
            if owner is not None and reputation_delta:
                _clamped_add(owner, {"reputation": reputation_delta}, USER_COUNTERS)
            return note.model_copy(deep=True)
