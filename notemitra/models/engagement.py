"""
NoteMitra Backend — SavedNote and Vote SQLAlchemy Models
==========================================================

What:  The two per-(user, note) relations of the catalog.
How:   Each table carries a unique constraint on (user_id, note_id), so a
       duplicate bookmark or a second vote row is rejected by the database
       itself and surfaces as ALREADY_SAVED / a vote retry.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from notemitra.database import Base


class SavedNote(Base):
    """A bookmark. Unsave deletes the row; re-saving creates a new one."""

    __tablename__ = "saved_notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    saved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "note_id", name="uq_saved_notes_user_note"),
    )

    def __repr__(self) -> str:
        return f"<SavedNote(user_id={self.user_id}, note_id={self.note_id})>"


class Vote(Base):
    """At most one vote per (user, note); vote_type is 'upvote' or 'downvote'."""

    __tablename__ = "votes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    vote_type: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "note_id", name="uq_votes_user_note"),
    )

    def __repr__(self) -> str:
        return f"<Vote(user_id={self.user_id}, note_id={self.note_id}, type='{self.vote_type}')>"
