"""Create catalog tables

Revision ID: 001
Revises: None
Create Date: 2025-01-10 00:00:00.000000+00:00

What:  Creates users, notes, saved_notes and votes.
How:   Unique constraints carry the catalog's uniqueness rules (email;
       title/subject/semester; one bookmark and one vote per user and note)
       so concurrent writers are arbitrated by PostgreSQL.

Rollback: downgrade() drops all four tables (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _counter(name: str) -> sa.Column:
    return sa.Column(name, sa.Integer(), nullable=False, server_default=sa.text("0"))


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False, comment="Stable opaque user identifier"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, comment="Lower-cased login email"),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'student'"),
            comment="student or teacher",
        ),
        sa.Column("branch", sa.String(100), nullable=True),
        sa.Column("section", sa.String(50), nullable=True),
        sa.Column("roll_no", sa.String(50), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_suspended", sa.Boolean(), nullable=False, server_default=sa.false()),
        _counter("total_downloads"),
        _counter("total_views"),
        _counter("notes_uploaded"),
        sa.Column(
            "reputation",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Accrued from upvotes on owned notes; never negative",
        ),
        sa.Column("reset_token", sa.String(128), nullable=True),
        sa.Column("reset_token_expiry", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
            comment="Join date (UTC); leaderboard tie-breaker",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "notes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False, comment="1 to 8"),
        sa.Column("branch", sa.String(100), nullable=True),
        sa.Column("blob_id", sa.String(64), nullable=True, comment="Identifier in the internal blob store"),
        sa.Column("file_url", sa.Text(), nullable=True, comment="External storage URL; authoritative when present"),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("owner_name", sa.String(100), nullable=False),
        _counter("views"),
        _counter("downloads"),
        _counter("upvotes"),
        _counter("downvotes"),
        sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_reported", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("report_reason", sa.String(500), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
            comment="When this note was created (UTC)",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"]),
        sa.UniqueConstraint("title", "subject", "semester", name="uq_notes_title_subject_semester"),
    )
    op.create_index("ix_notes_owner_id", "notes", ["owner_id"])
    op.create_index("idx_notes_created_at", "notes", [sa.text("created_at DESC")])
    op.create_index("idx_notes_filters", "notes", ["subject", "semester", "branch"])

    op.create_table(
        "saved_notes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("note_id", sa.Uuid(), nullable=False),
        sa.Column(
            "saved_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["note_id"], ["notes.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "note_id", name="uq_saved_notes_user_note"),
    )
    op.create_index("ix_saved_notes_user_id", "saved_notes", ["user_id"])
    op.create_index("ix_saved_notes_note_id", "saved_notes", ["note_id"])

    op.create_table(
        "votes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("note_id", sa.Uuid(), nullable=False),
        sa.Column("vote_type", sa.String(10), nullable=False, comment="upvote or downvote"),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["note_id"], ["notes.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "note_id", name="uq_votes_user_note"),
    )
    op.create_index("ix_votes_user_id", "votes", ["user_id"])
    op.create_index("ix_votes_note_id", "votes", ["note_id"])


def downgrade() -> None:
    """Drop every catalog table, dependents first. All data is lost."""
    op.drop_index("ix_votes_note_id", table_name="votes")
    op.drop_index("ix_votes_user_id", table_name="votes")
    op.drop_table("votes")
    op.drop_index("ix_saved_notes_note_id", table_name="saved_notes")
    op.drop_index("ix_saved_notes_user_id", table_name="saved_notes")
    op.drop_table("saved_notes")
    op.drop_index("idx_notes_filters", table_name="notes")
    op.drop_index("idx_notes_created_at", table_name="notes")
    op.drop_index("ix_notes_owner_id", table_name="notes")
    op.drop_table("notes")
    op.drop_table("users")
