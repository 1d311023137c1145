"""
NoteMitra Backend — Engagement Ledger
=======================================

What:  Views, downloads, votes and the reputation derived from them.
How:   Every change is a delta applied atomically by the store. Votes are
       rows (one per user and note); the ledger computes the transition
       from the current row and the store applies it only if that row is
       still what the ledger saw. A lost race raises VoteConflict and the
       transition is recomputed (tenacity, VOTE_RETRY_ATTEMPTS attempts).

Vote transitions (R = UPVOTE_REPUTATION):

    current    requested   result      note counters          owner reputation
    ─────────  ─────────   ─────────   ─────────────────────  ────────────────
    none       upvote      upvote      upvotes +1             +R
    none       downvote    downvote    downvotes +1            0
    upvote     upvote      none        upvotes -1             -R
    downvote   downvote    none        downvotes -1            0
    downvote   upvote      upvote      upvotes +1, downvotes -1  +R
    upvote     downvote    downvote    downvotes +1, upvotes -1  -R

Reputation is clamped at zero by the store.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from notemitra.config import Settings, settings
from notemitra.exceptions import ConflictError, NotFoundError, ValidationError
from notemitra.models.records import NoteRecord, VoteType
from notemitra.storage import CatalogStore, VoteConflict

logger = logging.getLogger(__name__)

COUNTER_FOR_VOTE = {VoteType.UPVOTE: "upvotes", VoteType.DOWNVOTE: "downvotes"}


@dataclass(frozen=True)
class VoteOutcome:
    note: NoteRecord
    user_vote: Optional[VoteType]


def parse_vote_type(value: Any) -> VoteType:
    try:
        return VoteType(value)
    except (TypeError, ValueError):
        raise ValidationError(
            message="Vote type must be 'upvote' or 'downvote'",
            error_code="INVALID_VOTE_TYPE",
            field="vote_type",
        )


def plan_vote(
    current: Optional[VoteType], requested: VoteType, upvote_reputation: int
) -> tuple:
    """
    Compute (new_vote, note_deltas, reputation_delta) for a vote request.

    Pure function; see the module docstring for the transition table.
    """
    if current is None:
        rep = upvote_reputation if requested is VoteType.UPVOTE else 0
        return requested, {COUNTER_FOR_VOTE[requested]: 1}, rep

    if current is requested:
        rep = -upvote_reputation if requested is VoteType.UPVOTE else 0
        return None, {COUNTER_FOR_VOTE[requested]: -1}, rep

    rep = upvote_reputation if requested is VoteType.UPVOTE else -upvote_reputation
    deltas: Dict[str, int] = {COUNTER_FOR_VOTE[requested]: 1, COUNTER_FOR_VOTE[current]: -1}
    return requested, deltas, rep


def _note_not_found(note_id: uuid.UUID) -> NotFoundError:
    return NotFoundError(resource="note", resource_id=str(note_id), error_code="NOTE_NOT_FOUND")


class EngagementLedger:
    """Records interaction events against notes and their owners."""

    def __init__(self, store: CatalogStore, config: Optional[Settings] = None):
        self.store = store
        self.config = config or settings

    async def record_view(self, note_id: uuid.UUID) -> Optional[NoteRecord]:
        """
        note.views += 1 and owner.total_views += 1.

        Returns the updated note, or None when it no longer exists. A
        missing owner is skipped silently.
        """
        note = await self.store.increment_note_counters(note_id, {"views": 1})
        if note is None:
            return None
        owner = await self.store.increment_user_counters(note.owner_id, {"total_views": 1})
        if owner is None:
            logger.debug("View on note %s whose owner %s no longer exists", note_id, note.owner_id)
        return note

    async def record_download(self, note_id: uuid.UUID) -> Optional[NoteRecord]:
        """note.downloads += 1 and owner.total_downloads += 1."""
        note = await self.store.increment_note_counters(note_id, {"downloads": 1})
        if note is None:
            return None
        await self.store.increment_user_counters(note.owner_id, {"total_downloads": 1})
        return note

    async def record_vote(self, user_id: uuid.UUID, note_id: uuid.UUID, vote_type: Any) -> VoteOutcome:
        """
        Create, remove or flip the caller's vote on a note.

        Raises:
            ValidationError(INVALID_VOTE_TYPE)
            NotFoundError(NOTE_NOT_FOUND)
            ConflictError(VOTE_CONFLICT): the vote kept changing underneath
                us for every retry attempt
        """
        requested = parse_vote_type(vote_type)
        try:
            async for attempt in self._vote_retrying():
                with attempt:
                    outcome = await self._apply_vote(user_id, note_id, requested)
        except VoteConflict as e:
            logger.error("Vote on note %s by %s still conflicting after retries", note_id, user_id)
            raise ConflictError(
                message="Your vote changed concurrently. Please try again.",
                error_code="VOTE_CONFLICT",
                context={"expected": str(e.expected), "actual": str(e.actual)},
            )
        logger.info(
            "Vote by %s on note %s → %s",
            user_id,
            note_id,
            outcome.user_vote.value if outcome.user_vote else "none",
        )
        return outcome

    def _vote_retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(VoteConflict),
            stop=stop_after_attempt(self.config.vote_retry_attempts),
            wait=wait_random_exponential(multiplier=0.01, max=0.1),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _apply_vote(self, user_id: uuid.UUID, note_id: uuid.UUID, requested: VoteType) -> VoteOutcome:
        note = await self.store.get_note(note_id)
        if note is None:
            raise _note_not_found(note_id)

        vote = await self.store.get_vote(user_id, note_id)
        current = vote.vote_type if vote else None
        new, deltas, reputation_delta = plan_vote(current, requested, self.config.upvote_reputation)

        updated = await self.store.apply_vote_transition(
            user_id,
            note_id,
            expected=current,
            new=new,
            note_deltas=deltas,
            owner_id=note.owner_id,
            reputation_delta=reputation_delta,
        )
        if updated is None:
            raise _note_not_found(note_id)
        return VoteOutcome(note=updated, user_vote=new)

    async def get_user_vote(self, user_id: uuid.UUID, note_id: uuid.UUID) -> Optional[VoteType]:
        vote = await self.store.get_vote(user_id, note_id)
        return vote.vote_type if vote else None
