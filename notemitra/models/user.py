"""
NoteMitra Backend — User SQLAlchemy Model
===========================================

What:  ORM model representing the `users` table.
Who:   Used by SqlCatalogStore and by Alembic for schema management.

Table Design:
    - email is stored lower-cased and carries a unique index, so the
      case-insensitive uniqueness rule is enforced by the database.
    - total_downloads / total_views / notes_uploaded / reputation are only
      changed by atomic `col = col + :delta` updates, clamped at zero.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from notemitra.database import Base


class User(Base):
    """A registered student or teacher."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
        comment="Stable opaque user identifier",
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Lower-cased login email",
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="student",
        server_default=text("'student'"),
        comment="student or teacher",
    )

    # ── Optional profile ──────────────────────────────────────────────────
    branch: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    section: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    roll_no: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # ── Account status ────────────────────────────────────────────────────
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # ── Engagement aggregates ─────────────────────────────────────────────
    total_downloads: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    total_views: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    notes_uploaded: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    reputation: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Accrued from upvotes on owned notes; never negative",
    )

    # ── Password reset ────────────────────────────────────────────────────
    reset_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    reset_token_expiry: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="Join date (UTC); leaderboard tie-breaker",
    )

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
