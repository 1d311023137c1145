"""
NoteMitra Backend — Note Catalog (Business Logic Orchestrator)
================================================================

What:  Create, update, delete, fetch and list notes; downloads and reports.
Why:   Keeps every catalog rule in one place, independent of HTTP concerns.
How:   Composes the CatalogStore, EngagementLedger, FileReferenceResolver and
       BlobStore. The catalog never knows which store implementation it runs on.
Who:   Called by route handlers in notemitra.routes.notes / admin.

Orchestration Flow (POST /api/notes):
    ┌──────────┐    ┌─────────────┐    ┌──────────────┐    ┌─────────────┐
    │ Identity │───▶│  Validate   │───▶│ Insert note  │───▶│ owner.notes │
    │ (active) │    │  pipeline   │    │ (unique key) │    │ _uploaded+1 │
    └──────────┘    └─────────────┘    └──────────────┘    └─────────────┘

Uniqueness of (title, subject, semester) is global across owners and is
decided by the store's unique key. The pre-insert lookup only gives a
friendlier error for the common case; the insert itself is what settles
two racing submissions.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

from notemitra.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from notemitra.models.records import NoteRecord, UserRecord, build_file_references
from notemitra.services.blob_store import BlobStore
from notemitra.services.engagement import EngagementLedger
from notemitra.services.file_resolver import BlobDownload, FileReferenceResolver, RedirectTarget
from notemitra.services.identity import Identity
from notemitra.services.validation import (
    parse_pagination,
    parse_semester,
    require_file_reference,
    validate_new_note,
    validate_note_changes,
)
from notemitra.storage import CatalogStore, DuplicateKeyError

logger = logging.getLogger(__name__)

REPORT_REASON_MAX_LENGTH = 500


@dataclass(frozen=True)
class NotePage:
    notes: List[NoteRecord]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


def _duplicate_title() -> ConflictError:
    return ConflictError(
        message="A note with this title already exists for this subject and semester",
        error_code="DUPLICATE_TITLE",
    )


def _note_not_found(note_id: Any) -> NotFoundError:
    return NotFoundError(resource="note", resource_id=str(note_id), error_code="NOTE_NOT_FOUND")


class NoteCatalog:
    """
    Business logic layer for notes.

    Error Handling Strategy:
        Store-level DuplicateKeyError is translated into DUPLICATE_TITLE here;
        StorageUnavailableError from the store propagates unchanged (503).
    """

    def __init__(
        self,
        store: CatalogStore,
        ledger: EngagementLedger,
        resolver: FileReferenceResolver,
        blob_store: BlobStore,
    ):
        self.store = store
        self.ledger = ledger
        self.resolver = resolver
        self.blob_store = blob_store

    def parse_note_id(self, raw: Any) -> uuid.UUID:
        """Reject malformed identifiers before they reach the store."""
        if not self.store.is_valid_id(raw):
            raise ValidationError(
                message="Invalid note ID format",
                error_code="INVALID_NOTE_ID",
                field="note_id",
            )
        return raw if isinstance(raw, uuid.UUID) else uuid.UUID(raw)

    async def _require_note(self, note_id: uuid.UUID) -> NoteRecord:
        note = await self.store.get_note(note_id)
        if note is None:
            raise _note_not_found(note_id)
        return note

    # ── Create ────────────────────────────────────────────────────────────

    async def create(self, owner: UserRecord, payload: Any) -> NoteRecord:
        """
        Validate and store a new note owned by `owner`.

        Raises:
            ValidationError: first failing rule of the create pipeline
            ConflictError(DUPLICATE_TITLE): the (title, subject, semester) key is taken
        """
        clean = validate_new_note(payload)

        if await self.store.find_note_by_key(clean["title"], clean["subject"], clean["semester"]):
            raise _duplicate_title()

        record = NoteRecord(
            id=uuid.uuid4(),
            title=clean["title"],
            description=clean["description"],
            subject=clean["subject"],
            semester=clean["semester"],
            branch=clean["branch"],
            files=build_file_references(clean["file_url"], clean["file_id"]),
            owner_id=owner.id,
            owner_name=owner.name,
            created_at=datetime.now(timezone.utc),
        )
        try:
            note = await self.store.insert_note(record)
        except DuplicateKeyError:
            raise _duplicate_title()

        await self.store.increment_user_counters(owner.id, {"notes_uploaded": 1})
        logger.info("Note %s created by %s: '%s'", note.id, owner.id, note.title)
        return note

    # ── Update ────────────────────────────────────────────────────────────

    async def update(self, requester: Identity, raw_id: Any, payload: Any) -> NoteRecord:
        """
        Apply a partial update. Only the owner may edit a note.

        Raises:
            ValidationError(INVALID_NOTE_ID / create pipeline codes)
            NotFoundError(NOTE_NOT_FOUND)
            PermissionDeniedError(FORBIDDEN)
            ConflictError(DUPLICATE_TITLE)
        """
        note_id = self.parse_note_id(raw_id)
        note = await self._require_note(note_id)
        if note.owner_id != requester.user_id:
            raise PermissionDeniedError(
                message="You can only edit your own notes",
                context={"note_id": str(note_id), "user_id": str(requester.user_id)},
            )

        changes = validate_note_changes(payload)
        if "file_id" in changes:
            changes["blob_id"] = changes.pop("file_id")
        if not changes:
            return note

        require_file_reference(
            changes.get("blob_id", note.blob_id),
            changes.get("file_url", note.file_url),
        )

        new_key = (
            changes.get("title", note.title),
            changes.get("subject", note.subject),
            changes.get("semester", note.semester),
        )
        if new_key != note.unique_key:
            holder = await self.store.find_note_by_key(*new_key)
            if holder is not None and holder.id != note_id:
                raise _duplicate_title()

        try:
            updated = await self.store.update_note(note_id, changes)
        except DuplicateKeyError:
            raise _duplicate_title()
        if updated is None:
            raise _note_not_found(note_id)

        logger.info("Note %s updated (%s)", note_id, ", ".join(sorted(changes)))
        return updated

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete(self, requester: Identity, raw_id: Any) -> NoteRecord:
        """
        Remove a note with its bookmarks and votes. Owner or admin only.

        The blob behind a blob reference is released best-effort: a failure
        there is logged and does not undo the deletion.
        """
        note_id = self.parse_note_id(raw_id)
        note = await self._require_note(note_id)
        if note.owner_id != requester.user_id and not requester.is_admin:
            raise PermissionDeniedError(
                message="You can only delete your own notes",
                context={"note_id": str(note_id), "user_id": str(requester.user_id)},
            )

        removed = await self.store.delete_note(note_id)
        if removed is None:
            raise _note_not_found(note_id)

        await self.store.increment_user_counters(removed.owner_id, {"notes_uploaded": -1})
        if removed.blob_id:
            released = await self.blob_store.delete(removed.blob_id)
            if not released:
                logger.warning("Blob %s of deleted note %s was not released", removed.blob_id, note_id)

        logger.info(
            "Note %s deleted by %s%s",
            note_id,
            requester.user_id,
            " (admin)" if requester.user_id != removed.owner_id else "",
        )
        return removed

    # ── Read ──────────────────────────────────────────────────────────────

    async def get(self, raw_id: Any) -> NoteRecord:
        """Fetch a note and count the view. The returned note includes this view."""
        note_id = self.parse_note_id(raw_id)
        note = await self.ledger.record_view(note_id)
        if note is None:
            raise _note_not_found(note_id)
        return note

    async def list(
        self,
        subject: Optional[str] = None,
        semester: Any = None,
        branch: Optional[str] = None,
        page: Any = None,
        limit: Any = None,
    ) -> NotePage:
        """
        One page of approved notes, newest first.

        Blank filters mean "any". Filters are exact matches after trimming.
        """
        page_value, limit_value = parse_pagination(page, limit)

        subject = subject.strip() if isinstance(subject, str) and subject.strip() else None
        branch = branch.strip() if isinstance(branch, str) and branch.strip() else None
        semester_value = None
        if semester is not None and not (isinstance(semester, str) and not semester.strip()):
            semester_value = parse_semester(semester)

        notes, total = await self.store.list_notes(
            subject=subject,
            semester=semester_value,
            branch=branch,
            offset=(page_value - 1) * limit_value,
            limit=limit_value,
        )
        return NotePage(notes=notes, page=page_value, limit=limit_value, total=total)

    # ── Download ──────────────────────────────────────────────────────────

    async def download(self, raw_id: Any) -> Union[RedirectTarget, BlobDownload]:
        """
        Resolve a note's document and count the download.

        The download is recorded only once the reference has resolved, so a
        missing file never inflates the counters.
        """
        note_id = self.parse_note_id(raw_id)
        note = await self._require_note(note_id)
        target = await self.resolver.resolve(note)
        await self.ledger.record_download(note_id)
        return target

    # ── Moderation ────────────────────────────────────────────────────────

    async def report(self, raw_id: Any, reason: Any) -> NoteRecord:
        note_id = self.parse_note_id(raw_id)
        text = reason.strip() if isinstance(reason, str) else ""
        if not text:
            raise ValidationError(
                message="A reason is required to report a note",
                error_code="REASON_REQUIRED",
                field="reason",
            )
        if len(text) > REPORT_REASON_MAX_LENGTH:
            raise ValidationError(
                message=f"Reason exceeds the maximum length of {REPORT_REASON_MAX_LENGTH} characters",
                error_code="REASON_TOO_LONG",
                field="reason",
            )
        note = await self.store.set_report(note_id, True, text)
        if note is None:
            raise _note_not_found(note_id)
        logger.info("Note %s reported", note_id)
        return note

    async def list_reports(self) -> List[NoteRecord]:
        return await self.store.list_reported_notes()

    async def resolve_report(self, raw_id: Any) -> NoteRecord:
        note_id = self.parse_note_id(raw_id)
        note = await self.store.set_report(note_id, False)
        if note is None:
            raise _note_not_found(note_id)
        logger.info("Report on note %s resolved", note_id)
        return note
