"""
NoteMitra Backend — Note Schemas
==================================

What:  Response models for notes and engagement, and the few typed request bodies.
Why:   Note create/update bodies are deliberately NOT typed models: the catalog's
       validation pipeline must see the raw JSON to report EMPTY_BODY,
       INVALID_TYPE and the other field codes in a fixed order.
"""

import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from notemitra.models.records import FileReference, NoteRecord, VoteType


class NoteResponse(BaseModel):
    """
    Full representation of a catalog note.

    `file_id` / `file_url` mirror the tagged `files` list for clients that
    only know the flat fields.
    """
    id: uuid.UUID
    title: str
    description: str
    subject: str
    semester: int
    branch: Optional[str] = None
    files: List[FileReference] = Field(default_factory=list)
    file_id: Optional[str] = Field(default=None, description="Internal blob id, if any")
    file_url: Optional[str] = Field(default=None, description="External document URL, if any")
    download_url: str = Field(description="Endpoint that delivers the document")
    owner_id: uuid.UUID
    owner_name: str
    views: int
    downloads: int
    upvotes: int
    downvotes: int
    is_approved: bool
    is_reported: bool
    report_reason: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, note: NoteRecord) -> "NoteResponse":
        return cls(
            id=note.id,
            title=note.title,
            description=note.description,
            subject=note.subject,
            semester=note.semester,
            branch=note.branch,
            files=note.files,
            file_id=note.blob_id,
            file_url=note.file_url,
            download_url=f"/api/notes/{note.id}/download",
            owner_id=note.owner_id,
            owner_name=note.owner_name,
            views=note.views,
            downloads=note.downloads,
            upvotes=note.upvotes,
            downvotes=note.downvotes,
            is_approved=note.is_approved,
            is_reported=note.is_reported,
            report_reason=note.report_reason,
            created_at=note.created_at,
        )


class NoteListResponse(BaseModel):
    """Offset-paginated page of approved notes, newest first."""
    notes: List[NoteResponse]
    page: int
    limit: int
    total: int = Field(description="Notes matching the filters across all pages")
    total_pages: int


class DeleteResponse(BaseModel):
    message: str = "Note deleted successfully"
    id: uuid.UUID


# ── Votes ─────────────────────────────────────────────────────────────────

class VoteRequest(BaseModel):
    # Untyped so the ledger reports INVALID_VOTE_TYPE instead of a 422
    vote_type: Any = Field(default=None, description="'upvote' or 'downvote'")


class VoteResponse(BaseModel):
    note_id: uuid.UUID
    upvotes: int
    downvotes: int
    user_vote: Optional[VoteType] = Field(
        default=None,
        description="The caller's vote after this request; null when it was removed",
    )


# ── Bookmarks ─────────────────────────────────────────────────────────────

class SaveResponse(BaseModel):
    message: str
    note_id: uuid.UUID
    saved_at: Optional[datetime] = None


class SavedStatusResponse(BaseModel):
    saved: bool


class SavedNoteItem(NoteResponse):
    saved_at: datetime


class SavedListResponse(BaseModel):
    notes: List[SavedNoteItem]
    count: int


# ── Uploads & Reports ─────────────────────────────────────────────────────

class UploadResponse(BaseModel):
    """Returned by POST /api/notes/upload-pdf; pass `file_id` to POST /api/notes."""
    file_id: str
    filename: str
    size: int
    content_type: str
    url: str


class ReportRequest(BaseModel):
    reason: Any = Field(default=None, description="Why the note should be reviewed (max 500 chars)")


class ReportListResponse(BaseModel):
    reports: List[NoteResponse]
    count: int
