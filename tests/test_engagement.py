"""
NoteMitra Backend — Engagement Ledger Tests
=============================================

What we test:
    ✅ The vote transition table (create, toggle off, switch)
    ✅ Owner reputation follows upvotes and never goes negative
    ✅ Concurrent votes by one user leave counters consistent with the vote row
    ✅ Persistent conflicts surface as VOTE_CONFLICT after retries
    ✅ Views and downloads update note and owner aggregates
"""

import asyncio
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from notemitra.config import Settings, settings
from notemitra.exceptions import ConflictError, NotFoundError, ValidationError
from notemitra.models.records import ExternalRef, NoteRecord, UserRecord, VoteType
from notemitra.services.engagement import EngagementLedger, plan_vote
from notemitra.storage import VoteConflict

R = settings.upvote_reputation


class TestPlanVote:

    @pytest.mark.parametrize(
        "current,requested,new,deltas,rep",
        [
            (None, VoteType.UPVOTE, VoteType.UPVOTE, {"upvotes": 1}, R),
            (None, VoteType.DOWNVOTE, VoteType.DOWNVOTE, {"downvotes": 1}, 0),
            (VoteType.UPVOTE, VoteType.UPVOTE, None, {"upvotes": -1}, -R),
            (VoteType.DOWNVOTE, VoteType.DOWNVOTE, None, {"downvotes": -1}, 0),
            (VoteType.DOWNVOTE, VoteType.UPVOTE, VoteType.UPVOTE, {"upvotes": 1, "downvotes": -1}, R),
            (VoteType.UPVOTE, VoteType.DOWNVOTE, VoteType.DOWNVOTE, {"downvotes": 1, "upvotes": -1}, -R),
        ],
    )
    def test_transition_table(self, current, requested, new, deltas, rep):
        assert plan_vote(current, requested, R) == (new, deltas, rep)


class TestRecordVote:

    @pytest.mark.asyncio
    async def test_upvote_then_toggle_off(self, store, make_user, make_note):
        owner = await make_user()
        voter = await make_user()
        note = await make_note(owner)
        ledger = EngagementLedger(store, settings)

        outcome = await ledger.record_vote(voter.id, note.id, "upvote")
        assert outcome.user_vote is VoteType.UPVOTE
        assert (outcome.note.upvotes, outcome.note.downvotes) == (1, 0)
        assert (await store.get_user(owner.id)).reputation == R

        outcome = await ledger.record_vote(voter.id, note.id, "upvote")
        assert outcome.user_vote is None
        assert (outcome.note.upvotes, outcome.note.downvotes) == (0, 0)
        assert (await store.get_user(owner.id)).reputation == 0
        assert await store.get_vote(voter.id, note.id) is None

    @pytest.mark.asyncio
    async def test_switch_direction(self, store, make_user, make_note):
        owner = await make_user()
        voter = await make_user()
        note = await make_note(owner)
        ledger = EngagementLedger(store, settings)

        await ledger.record_vote(voter.id, note.id, "downvote")
        assert (await store.get_user(owner.id)).reputation == 0

        outcome = await ledger.record_vote(voter.id, note.id, "upvote")
        assert (outcome.note.upvotes, outcome.note.downvotes) == (1, 0)
        assert (await store.get_user(owner.id)).reputation == R

        outcome = await ledger.record_vote(voter.id, note.id, "downvote")
        assert (outcome.note.upvotes, outcome.note.downvotes) == (0, 1)
        assert (await store.get_user(owner.id)).reputation == 0
        assert (await store.get_vote(voter.id, note.id)).vote_type is VoteType.DOWNVOTE

    @pytest.mark.asyncio
    async def test_votes_from_many_users(self, store, make_user, make_note):
        owner = await make_user()
        note = await make_note(owner)
        ledger = EngagementLedger(store, settings)

        for _ in range(3):
            voter = await make_user()
            await ledger.record_vote(voter.id, note.id, "upvote")
        voter = await make_user()
        outcome = await ledger.record_vote(voter.id, note.id, "downvote")

        assert (outcome.note.upvotes, outcome.note.downvotes) == (3, 1)
        assert (await store.get_user(owner.id)).reputation == 3 * R

    @pytest.mark.asyncio
    async def test_reputation_never_negative(self, store, make_user, make_note):
        owner = await make_user()
        voter = await make_user()
        note = await make_note(owner)
        ledger = EngagementLedger(store, settings)

        await ledger.record_vote(voter.id, note.id, "upvote")
        await store.increment_user_counters(owner.id, {"reputation": -R})
        await ledger.record_vote(voter.id, note.id, "upvote")

        assert (await store.get_user(owner.id)).reputation == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("vote_type", [None, "", "UPVOTE", "like", 1])
    async def test_invalid_vote_type(self, store, make_user, make_note, vote_type):
        owner = await make_user()
        note = await make_note(owner)

        with pytest.raises(ValidationError) as exc:
            await EngagementLedger(store, settings).record_vote(owner.id, note.id, vote_type)
        assert exc.value.error_code == "INVALID_VOTE_TYPE"

    @pytest.mark.asyncio
    async def test_unknown_note(self, store, make_user):
        voter = await make_user()
        with pytest.raises(NotFoundError) as exc:
            await EngagementLedger(store, settings).record_vote(voter.id, uuid.uuid4(), "upvote")
        assert exc.value.error_code == "NOTE_NOT_FOUND"


class TestConcurrentVotes:

    @pytest.mark.asyncio
    async def test_same_user_racing_upvotes(self, memory_store):
        """Counters must always equal the number of vote rows of each kind."""
        owner = await _insert_user(memory_store)
        voter = await _insert_user(memory_store)
        note = await _insert_note(memory_store, owner)
        ledger = EngagementLedger(memory_store, settings)

        results = await asyncio.gather(
            *(ledger.record_vote(voter.id, note.id, "upvote") for _ in range(6)),
            return_exceptions=True,
        )

        final = await memory_store.get_note(note.id)
        vote = await memory_store.get_vote(voter.id, note.id)
        expected_up = 1 if vote and vote.vote_type is VoteType.UPVOTE else 0
        assert final.upvotes == expected_up
        assert final.downvotes == 0
        assert (await memory_store.get_user(owner.id)).reputation == expected_up * R
        for result in results:
            assert not isinstance(result, Exception) or isinstance(result, ConflictError)

    @pytest.mark.asyncio
    async def test_conflict_retries_then_gives_up(self, memory_store):
        owner = await _insert_user(memory_store)
        note = await _insert_note(memory_store, owner)
        memory_store.apply_vote_transition = AsyncMock(side_effect=VoteConflict(None, VoteType.UPVOTE))
        ledger = EngagementLedger(memory_store, settings)

        with pytest.raises(ConflictError) as exc:
            await ledger.record_vote(owner.id, note.id, "upvote")

        assert exc.value.error_code == "VOTE_CONFLICT"
        assert memory_store.apply_vote_transition.await_count == settings.vote_retry_attempts

    @pytest.mark.asyncio
    @pytest.mark.parametrize("attempts", [1, 5])
    async def test_retry_budget_comes_from_ledger_config(self, memory_store, attempts):
        owner = await _insert_user(memory_store)
        note = await _insert_note(memory_store, owner)
        memory_store.apply_vote_transition = AsyncMock(side_effect=VoteConflict(None, VoteType.UPVOTE))
        ledger = EngagementLedger(memory_store, Settings(vote_retry_attempts=attempts))

        with pytest.raises(ConflictError):
            await ledger.record_vote(owner.id, note.id, "upvote")

        assert memory_store.apply_vote_transition.await_count == attempts

    @pytest.mark.asyncio
    async def test_conflict_recovers_on_retry(self, memory_store):
        owner = await _insert_user(memory_store)
        voter = await _insert_user(memory_store)
        note = await _insert_note(memory_store, owner)
        memory_store.apply_vote_transition = AsyncMock(
            side_effect=_fail_once_then(memory_store.apply_vote_transition)
        )
        ledger = EngagementLedger(memory_store, settings)

        outcome = await ledger.record_vote(voter.id, note.id, "upvote")

        assert outcome.user_vote is VoteType.UPVOTE
        assert outcome.note.upvotes == 1


class TestViewsAndDownloads:

    @pytest.mark.asyncio
    async def test_view_and_download_aggregates(self, store, make_user, make_note):
        owner = await make_user()
        note = await make_note(owner)
        ledger = EngagementLedger(store, settings)

        await ledger.record_view(note.id)
        await ledger.record_download(note.id)
        await ledger.record_download(note.id)

        stored = await store.get_note(note.id)
        user = await store.get_user(owner.id)
        assert (stored.views, stored.downloads) == (1, 2)
        assert (user.total_views, user.total_downloads) == (1, 2)

    @pytest.mark.asyncio
    async def test_unknown_note_returns_none(self, store):
        ledger = EngagementLedger(store, settings)
        assert await ledger.record_view(uuid.uuid4()) is None
        assert await ledger.record_download(uuid.uuid4()) is None


# ── Helpers ───────────────────────────────────────────────────────────────

def _fail_once_then(real):
    calls = {"count": 0}

    async def _side_effect(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 1:
            raise VoteConflict(None, VoteType.DOWNVOTE)
        return await real(*args, **kwargs)

    return _side_effect


async def _insert_user(store):
    return await store.insert_user(
        UserRecord(
            id=uuid.uuid4(),
            name="Kiran",
            email=f"{uuid.uuid4().hex[:8]}@example.edu",
            password_hash="x",
            created_at=datetime.now(timezone.utc),
        )
    )


async def _insert_note(store, owner):
    return await store.insert_note(
        NoteRecord(
            id=uuid.uuid4(),
            title=f"Note {uuid.uuid4().hex[:6]}",
            description="d",
            subject="Maths",
            semester=1,
            files=[ExternalRef(url="https://files.example.edu/m.pdf")],
            owner_id=owner.id,
            owner_name=owner.name,
            created_at=datetime.now(timezone.utc),
        )
    )
