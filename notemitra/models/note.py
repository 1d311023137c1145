"""
NoteMitra Backend — Note SQLAlchemy Model
===========================================

What:  ORM model representing the `notes` table.
Who:   Used by SqlCatalogStore and by Alembic for schema management.
When:  Inserted by NoteCatalog.create; counters mutated by EngagementLedger.

Table Design Rationale:
    - UUID primary key: non-sequential, globally unique
    - blob_id / file_url: the two storage eras of a note's PDF. At least one
      is set; SqlCatalogStore exposes them as a tagged-union list.
    - uq_notes_title_subject_semester: the global (title, subject, semester)
      rule lives in the database so racing inserts cannot both succeed.
      Titles are stored trimmed, compared case-sensitively.

Indexes:
    idx_notes_created_at: newest-first listing
    idx_notes_filters:    subject / semester / branch filtering
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from notemitra.database import Base


class Note(Base):
    """
    A catalog entry describing an uploaded study document.

    Lifecycle:
        1. Created by NoteCatalog.create (all counters zero)
        2. Counters change through atomic UPDATE … RETURNING statements
        3. Deleted by the owner or an admin, together with its saved_notes
           and votes rows
    """

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Catalog metadata ──────────────────────────────────────────────────
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    semester: Mapped[int] = mapped_column(Integer, nullable=False, comment="1 to 8")
    branch: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # ── File references ───────────────────────────────────────────────────
    blob_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        comment="Identifier in the internal blob store",
    )
    file_url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="External storage URL; authoritative when present",
    )

    # ── Ownership (owner_name denormalized at creation time) ──────────────
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    owner_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # ── Engagement counters ───────────────────────────────────────────────
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    upvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    downvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    # ── Moderation ────────────────────────────────────────────────────────
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_reported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    report_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="When this note was created (UTC)",
    )

    __table_args__ = (
        UniqueConstraint("title", "subject", "semester", name="uq_notes_title_subject_semester"),
        Index("idx_notes_created_at", created_at.desc()),
        Index("idx_notes_filters", "subject", "semester", "branch"),
    )

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, title='{self.title}', semester={self.semester})>"
