"""
NoteMitra Backend — Domain Records
====================================

What:  Backend-neutral representations of users, notes, saved notes and votes.
How:   Pydantic models. Both persistence adapters return these records, so
       services never see an ORM row or an in-memory dict.
Who:   Produced by notemitra.storage; consumed by services and routes.

File references are a tagged union (`BlobRef | ExternalRef`) carried as a
list on the note. A note may hold both kinds during migration between
storage eras; the order of the list is the resolution priority.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"


class VoteType(str, Enum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


# ── File References ───────────────────────────────────────────────────────

class ExternalRef(BaseModel):
    """A URL pointing at bytes held by a third-party storage service."""

    kind: Literal["external"] = "external"
    url: str


class BlobRef(BaseModel):
    """An identifier of bytes held in the internal blob store."""

    kind: Literal["blob"] = "blob"
    blob_id: str


FileReference = Annotated[Union[ExternalRef, BlobRef], Field(discriminator="kind")]


def build_file_references(file_url: Optional[str], blob_id: Optional[str]) -> List[FileReference]:
    """Ordered references for the two stored columns; external URL first."""
    refs: List[FileReference] = []
    if file_url:
        refs.append(ExternalRef(url=file_url))
    if blob_id:
        refs.append(BlobRef(blob_id=blob_id))
    return refs


# ── Records ───────────────────────────────────────────────────────────────

class UserRecord(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    password_hash: str
    role: Role = Role.STUDENT
    branch: Optional[str] = None
    section: Optional[str] = None
    roll_no: Optional[str] = None
    is_admin: bool = False
    is_suspended: bool = False
    total_downloads: int = 0
    total_views: int = 0
    notes_uploaded: int = 0
    reputation: int = 0
    reset_token: Optional[str] = None
    reset_token_expiry: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NoteRecord(BaseModel):
    id: uuid.UUID
    title: str
    description: str
    subject: str
    semester: int
    branch: Optional[str] = None
    files: List[FileReference] = Field(default_factory=list)
    owner_id: uuid.UUID
    owner_name: str
    views: int = 0
    downloads: int = 0
    upvotes: int = 0
    downvotes: int = 0
    is_approved: bool = True
    is_reported: bool = False
    report_reason: Optional[str] = None
    created_at: datetime

    @property
    def file_url(self) -> Optional[str]:
        for ref in self.files:
            if isinstance(ref, ExternalRef):
                return ref.url
        return None

    @property
    def blob_id(self) -> Optional[str]:
        for ref in self.files:
            if isinstance(ref, BlobRef):
                return ref.blob_id
        return None

    @property
    def unique_key(self) -> tuple:
        return (self.title, self.subject, self.semester)


class SavedNoteRecord(BaseModel):
    user_id: uuid.UUID
    note_id: uuid.UUID
    saved_at: datetime

    model_config = {"from_attributes": True}


class VoteRecord(BaseModel):
    user_id: uuid.UUID
    note_id: uuid.UUID
    vote_type: VoteType
    created_at: datetime

    model_config = {"from_attributes": True}
