"""
NoteMitra Backend — Durable Catalog Store (SQLAlchemy)
========================================================

What:  CatalogStore backed by a relational database through async SQLAlchemy.
How:   Every public method runs in its own session and transaction.
       Uniqueness comes from the table constraints (see notemitra.models);
       counters are changed with single `UPDATE … SET col = col + :d
       RETURNING …` statements so concurrent increments never lose updates.
Who:   Selected at startup by notemitra.storage.select_store.

Error translation (inside `_transaction`):
    IntegrityError              → DuplicateKeyError(<key of the operation>)
    DataError                   → ValidationError(INVALID_VALUE, 400)
    other DBAPIError / OSError  → StorageUnavailableError (503)

Production runs on PostgreSQL (asyncpg); the test-suite runs the same code
on SQLite (aiosqlite).
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from sqlalchemy import case, delete, func, select, text, update
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from notemitra.database import create_session_factory, create_tables, dispose_engine
from notemitra.exceptions import StorageUnavailableError, ValidationError
from notemitra.models import Note, SavedNote, User, Vote
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
NOTE_COLUMNS = {
    "title", "description", "subject", "semester", "branch", "file_url", "blob_id",
    "is_approved", "is_reported", "report_reason",
}
USER_COLUMNS = {
    "name", "branch", "section", "roll_no", "is_admin", "is_suspended",
    "password_hash", "reset_token", "reset_token_expiry",
}


def _note_record(row: Note) -> NoteRecord:
    return NoteRecord(
        id=row.id,
        title=row.title,
        description=row.description,
        subject=row.subject,
        semester=row.semester,
        branch=row.branch,
        files=build_file_references(row.file_url, row.blob_id),
        owner_id=row.owner_id,
        owner_name=row.owner_name,
        views=row.views,
        downloads=row.downloads,
        upvotes=row.upvotes,
        downvotes=row.downvotes,
        is_approved=row.is_approved,
        is_reported=row.is_reported,
        report_reason=row.report_reason,
        created_at=row.created_at,
    )


def _clamped_values(model, deltas: Dict[str, int], allowed: set) -> Dict[str, Any]:
    """Build `col = max(col + d, 0)` assignments for an UPDATE statement."""
    values = {}
    for field, delta in deltas.items():
        if field not in allowed:
            raise ValueError(f"'{field}' is not a counter")
        column = getattr(model, field)
        values[field] = case((column + delta < 0, 0), else_=column + delta)
    return values


class SqlCatalogStore(CatalogStore):
    """
    Durable store over an AsyncEngine.

    The engine is owned by the store: `close()` disposes it.
    """

    backend_name = "database"

    def __init__(self, engine: AsyncEngine, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._engine = engine
        self._session_factory = session_factory or create_session_factory(engine)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Verify connectivity and create missing tables."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            await create_tables(self._engine)
        except (DBAPIError, OSError) as e:
            raise StorageUnavailableError(
                message="Database is unreachable",
                context={"error": type(e).__name__, "detail": str(e)},
            ) from e
        logger.info("Durable catalog store ready (%s)", self._engine.url.get_backend_name())

    async def close(self) -> None:
        await dispose_engine(self._engine)

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", str(e))
            return False

    @asynccontextmanager
    async def _transaction(self, duplicate_key: str = "unknown") -> AsyncIterator[AsyncSession]:
        """Session + transaction with backend errors translated to catalog errors."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except IntegrityError as e:
            logger.info("Unique constraint rejected write on '%s'", duplicate_key)
            raise DuplicateKeyError(duplicate_key) from e
        except DataError as e:
            logger.warning("Database rejected a value on '%s': %s", duplicate_key, str(e))
            raise ValidationError(
                message="A submitted value is not accepted by the catalog",
                error_code="INVALID_VALUE",
                context={"error": type(e).__name__, "detail": str(e)},
            ) from e
        except (DBAPIError, OSError) as e:
            logger.error("Database operation failed: %s", str(e))
            raise StorageUnavailableError(
                context={"error": type(e).__name__, "detail": str(e)},
            ) from e

    # ── Users ─────────────────────────────────────────────────────────────

    async def insert_user(self, user: UserRecord) -> UserRecord:
        row = User(
            id=user.id,
            name=user.name,
            email=user.email.lower(),
            password_hash=user.password_hash,
            role=user.role.value,
            branch=user.branch,
            section=user.section,
            roll_no=user.roll_no,
            is_admin=user.is_admin,
            is_suspended=user.is_suspended,
            total_downloads=user.total_downloads,
            total_views=user.total_views,
            notes_uploaded=user.notes_uploaded,
            reputation=user.reputation,
            reset_token=user.reset_token,
            reset_token_expiry=user.reset_token_expiry,
            created_at=user.created_at,
        )
        async with self._transaction(duplicate_key="email") as session:
            session.add(row)
            await session.flush()
        return UserRecord.model_validate(row)

    async def get_user(self, user_id: uuid.UUID) -> Optional[UserRecord]:
        async with self._transaction() as session:
            row = await session.get(User, user_id)
            return UserRecord.model_validate(row) if row else None

    async def find_user_by_email(self, email: str) -> Optional[UserRecord]:
        async with self._transaction() as session:
            result = await session.execute(select(User).where(User.email == email.lower()))
            row = result.scalar_one_or_none()
            return UserRecord.model_validate(row) if row else None

    async def update_user(self, user_id: uuid.UUID, changes: Dict[str, Any]) -> Optional[UserRecord]:
        unknown = set(changes) - USER_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)}")
        async with self._transaction() as session:
            result = await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(**changes)
                .returning(User)
                .execution_options(synchronize_session=False)
            )
            row = result.scalar_one_or_none()
            return UserRecord.model_validate(row) if row else None

    async def increment_user_counters(
        self, user_id: uuid.UUID, deltas: Dict[str, int]
    ) -> Optional[UserRecord]:
        values = _clamped_values(User, deltas, USER_COUNTERS)
        async with self._transaction() as session:
            if not values:
                row = await session.get(User, user_id)
            else:
                result = await session.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(**values)
                    .returning(User)
                    .execution_options(synchronize_session=False)
                )
                row = result.scalar_one_or_none()
            return UserRecord.model_validate(row) if row else None

    async def list_uploaders(self) -> List[UserRecord]:
        async with self._transaction() as session:
            result = await session.execute(select(User).where(User.notes_uploaded > 0))
            return [UserRecord.model_validate(row) for row in result.scalars()]

    # ── Notes ─────────────────────────────────────────────────────────────

    async def insert_note(self, note: NoteRecord) -> NoteRecord:
        row = Note(
            id=note.id,
            title=note.title,
            description=note.description,
            subject=note.subject,
            semester=note.semester,
            branch=note.branch,
            file_url=note.file_url,
            blob_id=note.blob_id,
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
        async with self._transaction(duplicate_key="title_subject_semester") as session:
            session.add(row)
            await session.flush()
        return _note_record(row)

    async def get_note(self, note_id: uuid.UUID) -> Optional[NoteRecord]:
        async with self._transaction() as session:
            row = await session.get(Note, note_id)
            return _note_record(row) if row else None

    async def find_note_by_key(self, title: str, subject: str, semester: int) -> Optional[NoteRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                select(Note).where(
                    Note.title == title,
                    Note.subject == subject,
                    Note.semester == semester,
                )
            )
            row = result.scalar_one_or_none()
            return _note_record(row) if row else None

    async def update_note(self, note_id: uuid.UUID, changes: Dict[str, Any]) -> Optional[NoteRecord]:
        unknown = set(changes) - NOTE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update note fields: {sorted(unknown)}")
        async with self._transaction(duplicate_key="title_subject_semester") as session:
            if not changes:
                row = await session.get(Note, note_id)
            else:
                result = await session.execute(
                    update(Note)
                    .where(Note.id == note_id)
                    .values(**changes)
                    .returning(Note)
                    .execution_options(synchronize_session=False)
                )
                row = result.scalar_one_or_none()
            return _note_record(row) if row else None

    async def delete_note(self, note_id: uuid.UUID) -> Optional[NoteRecord]:
        async with self._transaction() as session:
            row = await session.get(Note, note_id)
            if row is None:
                return None
            removed = _note_record(row)
            # Explicit cascade: SQLite does not enforce foreign keys by default
            await session.execute(delete(SavedNote).where(SavedNote.note_id == note_id))
            await session.execute(delete(Vote).where(Vote.note_id == note_id))
            await session.delete(row)
        return removed

    async def increment_note_counters(
        self, note_id: uuid.UUID, deltas: Dict[str, int]
    ) -> Optional[NoteRecord]:
        values = _clamped_values(Note, deltas, NOTE_COUNTERS)
        async with self._transaction() as session:
            if not values:
                row = await session.get(Note, note_id)
            else:
                result = await session.execute(
                    update(Note)
                    .where(Note.id == note_id)
                    .values(**values)
                    .returning(Note)
                    .execution_options(synchronize_session=False)
                )
                row = result.scalar_one_or_none()
            return _note_record(row) if row else None

    async def list_notes(
        self,
        *,
        subject: Optional[str] = None,
        semester: Optional[int] = None,
        branch: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[NoteRecord], int]:
        conditions = [Note.is_approved.is_(True)]
        if subject is not None:
            conditions.append(Note.subject == subject)
        if semester is not None:
            conditions.append(Note.semester == semester)
        if branch is not None:
            conditions.append(Note.branch == branch)

        async with self._transaction() as session:
            total = (
                await session.execute(select(func.count()).select_from(Note).where(*conditions))
            ).scalar_one()
            result = await session.execute(
                select(Note)
                .where(*conditions)
                .order_by(Note.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return [_note_record(row) for row in result.scalars()], total

    async def list_reported_notes(self) -> List[NoteRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                select(Note).where(Note.is_reported.is_(True)).order_by(Note.created_at.desc())
            )
            return [_note_record(row) for row in result.scalars()]

    # ── Saved Notes ───────────────────────────────────────────────────────

    async def insert_saved_note(self, user_id: uuid.UUID, note_id: uuid.UUID) -> SavedNoteRecord:
        row = SavedNote(user_id=user_id, note_id=note_id, saved_at=datetime.now(timezone.utc))
        async with self._transaction(duplicate_key="user_note") as session:
            session.add(row)
            await session.flush()
        return SavedNoteRecord.model_validate(row)

    async def get_saved_note(self, user_id: uuid.UUID, note_id: uuid.UUID) -> Optional[SavedNoteRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                select(SavedNote).where(SavedNote.user_id == user_id, SavedNote.note_id == note_id)
            )
            row = result.scalar_one_or_none()
            return SavedNoteRecord.model_validate(row) if row else None

    async def delete_saved_note(self, user_id: uuid.UUID, note_id: uuid.UUID) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                delete(SavedNote).where(SavedNote.user_id == user_id, SavedNote.note_id == note_id)
            )
            return result.rowcount > 0

    async def list_saved_notes(self, user_id: uuid.UUID) -> List[Tuple[SavedNoteRecord, NoteRecord]]:
        async with self._transaction() as session:
            # Inner join drops bookmarks whose note no longer exists
            result = await session.execute(
                select(SavedNote, Note)
                .join(Note, Note.id == SavedNote.note_id)
                .where(SavedNote.user_id == user_id)
                .order_by(SavedNote.saved_at.desc())
            )
            return [
                (SavedNoteRecord.model_validate(saved), _note_record(note))
                for saved, note in result.all()
            ]

    # ── Votes ─────────────────────────────────────────────────────────────

    async def get_vote(self, user_id: uuid.UUID, note_id: uuid.UUID) -> Optional[VoteRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                select(Vote).where(Vote.user_id == user_id, Vote.note_id == note_id)
            )
            row = result.scalar_one_or_none()
            return VoteRecord.model_validate(row) if row else None

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
        async with self._transaction(duplicate_key="vote") as session:
            exists = await session.execute(select(Note.id).where(Note.id == note_id))
            if exists.scalar_one_or_none() is None:
                return None

            vote_filter = (Vote.user_id == user_id, Vote.note_id == note_id)
            if expected is None:
                # Concurrent first votes race on uq_votes_user_note
                session.add(Vote(
                    user_id=user_id,
                    note_id=note_id,
                    vote_type=new.value,
                    created_at=datetime.now(timezone.utc),
                ))
                try:
                    await session.flush()
                except IntegrityError:
                    raise VoteConflict(expected, None)
            else:
                stmt = (
                    delete(Vote).where(*vote_filter, Vote.vote_type == expected.value)
                    if new is None
                    else update(Vote)
                    .where(*vote_filter, Vote.vote_type == expected.value)
                    .values(vote_type=new.value)
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
                if result.rowcount != 1:
                    current = await session.execute(select(Vote.vote_type).where(*vote_filter))
                    actual = current.scalar_one_or_none()
                    raise VoteConflict(expected, VoteType(actual) if actual else None)

            result = await session.execute(
                update(Note)
                .where(Note.id == note_id)
                .values(**_clamped_values(Note, note_deltas, NOTE_COUNTERS))
                .returning(Note)
                .execution_options(synchronize_session=False)
            )
            note = _note_record(result.scalar_one())

            if owner_id is not None and reputation_delta:
                await session.execute(
                    update(User)
                    .where(User.id == owner_id)
                    .values(**_clamped_values(User, {"reputation": reputation_delta}, USER_COUNTERS))
                    .execution_options(synchronize_session=False)
                )
        return note
