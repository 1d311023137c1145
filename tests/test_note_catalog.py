"""
NoteMitra Backend — Note Catalog Unit Tests
=============================================

What we test:
    ✅ Create: owner counters, global (title, subject, semester) uniqueness
    ✅ Racing creates for one key: exactly one note, one DUPLICATE_TITLE
    ✅ Update: owner-only, merged file check, key collisions
    ✅ Delete: owner or admin, cascades bookmarks and votes
    ✅ Get counts a view; list paginates newest first with filters
    ✅ Download resolves before counting
    ✅ Reports and their resolution
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from notemitra.config import settings
from notemitra.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from notemitra.models.records import UserRecord, VoteType
from notemitra.services import build_services
from notemitra.services.file_resolver import RedirectTarget
from notemitra.services.identity import Identity


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_note(self, services, make_user, note_payload):
        owner = await make_user(name="Meera")

        note = await services.catalog.create(owner, note_payload)

        assert note.title == "Thermodynamics Unit 1"
        assert note.owner_id == owner.id
        assert note.owner_name == "Meera"
        assert note.file_url == note_payload["file_url"]
        assert (note.views, note.downloads, note.upvotes, note.downvotes) == (0, 0, 0, 0)
        assert (await services.store.get_user(owner.id)).notes_uploaded == 1

    @pytest.mark.asyncio
    async def test_duplicate_key_across_owners(self, services, make_user, note_payload):
        first = await make_user()
        second = await make_user()
        await services.catalog.create(first, note_payload)

        with pytest.raises(ConflictError) as exc:
            await services.catalog.create(second, dict(note_payload, title="  Thermodynamics Unit 1  "))
        assert exc.value.error_code == "DUPLICATE_TITLE"
        assert (await services.store.get_user(second.id)).notes_uploaded == 0

    @pytest.mark.asyncio
    async def test_racing_creates_yield_one_note(self, services, make_user, note_payload):
        first = await make_user()
        second = await make_user()

        results = await asyncio.gather(
            services.catalog.create(first, note_payload),
            services.catalog.create(second, dict(note_payload)),
            return_exceptions=True,
        )

        created = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, Exception)]
        assert len(created) == 1
        assert len(failed) == 1
        assert isinstance(failed[0], ConflictError)
        assert failed[0].error_code == "DUPLICATE_TITLE"

        notes, total = await services.store.list_notes(limit=10)
        assert total == 1
        assert notes[0].id == created[0].id
        uploads = [(await services.store.get_user(u.id)).notes_uploaded for u in (first, second)]
        assert sorted(uploads) == [0, 1]

    @pytest.mark.asyncio
    async def test_same_title_in_other_semester_is_allowed(self, services, make_user, note_payload):
        owner = await make_user()
        await services.catalog.create(owner, note_payload)
        other = await services.catalog.create(owner, dict(note_payload, semester=4))
        assert other.semester == 4

    @pytest.mark.asyncio
    async def test_title_comparison_is_case_sensitive(self, services, make_user, note_payload):
        owner = await make_user()
        await services.catalog.create(owner, note_payload)
        other = await services.catalog.create(owner, dict(note_payload, title="THERMODYNAMICS UNIT 1"))
        assert other.title == "THERMODYNAMICS UNIT 1"

    @pytest.mark.asyncio
    async def test_invalid_payload_stores_nothing(self, services, make_user, note_payload):
        owner = await make_user()
        with pytest.raises(ValidationError):
            await services.catalog.create(owner, dict(note_payload, semester=11))
        page = await services.catalog.list()
        assert page.total == 0


class TestUpdate:

    @pytest.mark.asyncio
    async def test_owner_updates_fields(self, services, make_user, note_payload):
        owner = await make_user()
        note = await services.catalog.create(owner, note_payload)

        updated = await services.catalog.update(
            Identity.from_user(owner), str(note.id), {"title": "Thermo Revised", "semester": "5"}
        )

        assert updated.title == "Thermo Revised"
        assert updated.semester == 5
        assert updated.description == note.description

    @pytest.mark.asyncio
    async def test_non_owner_is_forbidden(self, services, make_user, note_payload):
        owner = await make_user()
        intruder = await make_user(is_admin=True)
        note = await services.catalog.create(owner, note_payload)

        with pytest.raises(PermissionDeniedError) as exc:
            await services.catalog.update(Identity.from_user(intruder), note.id, {"title": "Mine now"})
        assert exc.value.error_code == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_cannot_remove_last_file_reference(self, services, make_user, note_payload):
        owner = await make_user()
        note = await services.catalog.create(owner, note_payload)

        with pytest.raises(ValidationError) as exc:
            await services.catalog.update(Identity.from_user(owner), note.id, {"file_url": ""})
        assert exc.value.error_code == "FILE_REQUIRED"

    @pytest.mark.asyncio
    async def test_swap_external_url_for_blob(self, services, make_user, note_payload):
        owner = await make_user()
        note = await services.catalog.create(owner, note_payload)
        blob_id = uuid.uuid4().hex

        updated = await services.catalog.update(
            Identity.from_user(owner), note.id, {"file_url": None, "fileId": blob_id}
        )

        assert updated.file_url is None
        assert updated.blob_id == blob_id

    @pytest.mark.asyncio
    async def test_key_collision(self, services, make_user, note_payload):
        owner = await make_user()
        await services.catalog.create(owner, note_payload)
        second = await services.catalog.create(owner, dict(note_payload, title="Thermo Unit 2"))

        with pytest.raises(ConflictError) as exc:
            await services.catalog.update(
                Identity.from_user(owner), second.id, {"title": note_payload["title"]}
            )
        assert exc.value.error_code == "DUPLICATE_TITLE"

    @pytest.mark.asyncio
    async def test_keeping_own_key_is_not_a_collision(self, services, make_user, note_payload):
        owner = await make_user()
        note = await services.catalog.create(owner, note_payload)
        updated = await services.catalog.update(
            Identity.from_user(owner), note.id, {"title": note_payload["title"], "branch": "Civil"}
        )
        assert updated.branch == "Civil"

    @pytest.mark.asyncio
    async def test_unknown_fields_only_is_a_no_op(self, services, make_user, note_payload):
        owner = await make_user()
        note = await services.catalog.create(owner, note_payload)
        unchanged = await services.catalog.update(Identity.from_user(owner), note.id, {"views": 999})
        assert unchanged.views == 0
        assert unchanged.title == note.title

    @pytest.mark.asyncio
    async def test_malformed_and_unknown_ids(self, services, make_user):
        owner = await make_user()
        with pytest.raises(ValidationError) as exc:
            await services.catalog.update(Identity.from_user(owner), "not-an-id", {"title": "x"})
        assert exc.value.error_code == "INVALID_NOTE_ID"

        with pytest.raises(NotFoundError) as exc:
            await services.catalog.update(Identity.from_user(owner), str(uuid.uuid4()), {"title": "x"})
        assert exc.value.error_code == "NOTE_NOT_FOUND"


class TestDelete:

    @pytest.mark.asyncio
    async def test_owner_deletes_and_relations_cascade(self, services, make_user, note_payload):
        owner = await make_user()
        reader = await make_user()
        note = await services.catalog.create(owner, note_payload)
        await services.saved.save(reader.id, note.id)
        await services.ledger.record_vote(reader.id, note.id, "upvote")

        removed = await services.catalog.delete(Identity.from_user(owner), str(note.id))

        assert removed.id == note.id
        assert await services.store.get_note(note.id) is None
        assert await services.store.get_saved_note(reader.id, note.id) is None
        assert await services.store.get_vote(reader.id, note.id) is None
        assert await services.saved.list_saved(reader.id) == []
        assert (await services.store.get_user(owner.id)).notes_uploaded == 0

    @pytest.mark.asyncio
    async def test_admin_may_delete(self, services, make_user, note_payload):
        owner = await make_user()
        admin = await make_user(is_admin=True)
        note = await services.catalog.create(owner, note_payload)

        await services.catalog.delete(Identity.from_user(admin), note.id)
        assert await services.store.get_note(note.id) is None

    @pytest.mark.asyncio
    async def test_stranger_may_not_delete(self, services, make_user, note_payload):
        owner = await make_user()
        stranger = await make_user()
        note = await services.catalog.create(owner, note_payload)

        with pytest.raises(PermissionDeniedError):
            await services.catalog.delete(Identity.from_user(stranger), note.id)
        assert await services.store.get_note(note.id) is not None

    @pytest.mark.asyncio
    async def test_delete_releases_blob(self, services, make_user, note_payload, sample_pdf_bytes, monkeypatch):
        monkeypatch.setattr(services.blob_store, "validate_mime_type", lambda content, filename: "application/pdf")
        info = await services.blob_store.store("unit1.pdf", sample_pdf_bytes)
        owner = await make_user()
        payload = dict(note_payload, file_url=None, file_id=info.blob_id)
        note = await services.catalog.create(owner, payload)

        await services.catalog.delete(Identity.from_user(owner), note.id)

        assert await services.blob_store.get_info(info.blob_id) is None


class TestRead:

    @pytest.mark.asyncio
    async def test_get_counts_view(self, services, make_user, note_payload):
        owner = await make_user()
        note = await services.catalog.create(owner, note_payload)

        first = await services.catalog.get(str(note.id))
        second = await services.catalog.get(str(note.id))

        assert first.views == 1
        assert second.views == 2
        assert (await services.store.get_user(owner.id)).total_views == 2

    @pytest.mark.asyncio
    async def test_concurrent_views_are_not_lost(self, memory_store, blob_store, note_payload):
        services = build_services(memory_store, settings, blob_store=blob_store)
        owner = await memory_store.insert_user(
            UserRecord(
                id=uuid.uuid4(),
                name="Meera",
                email="meera@example.edu",
                password_hash="x",
                created_at=datetime.now(timezone.utc),
            )
        )
        note = await services.catalog.create(owner, note_payload)

        await asyncio.gather(*(services.catalog.get(note.id) for _ in range(10)))

        assert (await memory_store.get_note(note.id)).views == 10
        assert (await memory_store.get_user(owner.id)).total_views == 10

    @pytest.mark.asyncio
    async def test_get_unknown(self, services):
        with pytest.raises(NotFoundError) as exc:
            await services.catalog.get(str(uuid.uuid4()))
        assert exc.value.error_code == "NOTE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_newest_first_with_pages(self, services, make_user, make_note):
        owner = await make_user()
        base = datetime.now(timezone.utc)
        for i in range(5):
            await make_note(owner, title=f"Note {i}", created_at=base + timedelta(minutes=i))

        page = await services.catalog.list(page="1", limit="2")
        assert [n.title for n in page.notes] == ["Note 4", "Note 3"]
        assert page.total == 5
        assert page.total_pages == 3

        last = await services.catalog.list(page=3, limit=2)
        assert [n.title for n in last.notes] == ["Note 0"]

        beyond = await services.catalog.list(page=9, limit=2)
        assert beyond.notes == []
        assert beyond.total == 5

    @pytest.mark.asyncio
    async def test_list_filters(self, services, make_user, make_note):
        owner = await make_user()
        await make_note(owner, title="A", subject="Physics", semester=3, branch="ME")
        await make_note(owner, title="B", subject="Physics", semester=4, branch="ME")
        await make_note(owner, title="C", subject="Chemistry", semester=3, branch="CE")

        physics = await services.catalog.list(subject=" Physics ")
        assert {n.title for n in physics.notes} == {"A", "B"}

        sem3 = await services.catalog.list(semester="3")
        assert {n.title for n in sem3.notes} == {"A", "C"}

        combined = await services.catalog.list(subject="Physics", semester=3, branch="ME")
        assert [n.title for n in combined.notes] == ["A"]

        anything = await services.catalog.list(subject="", semester="", branch="  ")
        assert anything.total == 3

    @pytest.mark.asyncio
    async def test_list_hides_unapproved(self, services, make_user, make_note):
        owner = await make_user()
        await make_note(owner, title="Visible")
        await make_note(owner, title="Pending", is_approved=False)

        page = await services.catalog.list()
        assert [n.title for n in page.notes] == ["Visible"]

    @pytest.mark.asyncio
    async def test_list_invalid_semester_filter(self, services):
        with pytest.raises(ValidationError) as exc:
            await services.catalog.list(semester="nine")
        assert exc.value.error_code == "INVALID_SEMESTER"


class TestDownload:

    @pytest.mark.asyncio
    async def test_external_url_redirect_counts_download(self, services, make_user, note_payload):
        owner = await make_user()
        note = await services.catalog.create(owner, note_payload)

        target = await services.catalog.download(str(note.id))

        assert isinstance(target, RedirectTarget)
        assert target.url == note_payload["file_url"]
        assert (await services.store.get_note(note.id)).downloads == 1
        assert (await services.store.get_user(owner.id)).total_downloads == 1

    @pytest.mark.asyncio
    async def test_missing_blob_does_not_count(self, services, make_user, make_note):
        owner = await make_user()
        note = await make_note(owner, blob_id=uuid.uuid4().hex)

        with pytest.raises(NotFoundError) as exc:
            await services.catalog.download(note.id)
        assert exc.value.error_code == "FILE_NOT_FOUND"
        assert (await services.store.get_note(note.id)).downloads == 0


class TestReports:

    @pytest.mark.asyncio
    async def test_report_and_resolve(self, services, make_user, note_payload):
        owner = await make_user()
        note = await services.catalog.create(owner, note_payload)

        reported = await services.catalog.report(str(note.id), "  Wrong subject  ")
        assert reported.is_reported is True
        assert reported.report_reason == "Wrong subject"
        assert [n.id for n in await services.catalog.list_reports()] == [note.id]

        resolved = await services.catalog.resolve_report(str(note.id))
        assert resolved.is_reported is False
        assert resolved.report_reason is None
        assert await services.catalog.list_reports() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reason,code", [(None, "REASON_REQUIRED"), ("  ", "REASON_REQUIRED"), ("r" * 501, "REASON_TOO_LONG")])
    async def test_report_reason_rules(self, services, make_user, note_payload, reason, code):
        owner = await make_user()
        note = await services.catalog.create(owner, note_payload)

        with pytest.raises(ValidationError) as exc:
            await services.catalog.report(note.id, reason)
        assert exc.value.error_code == code

    @pytest.mark.asyncio
    async def test_votes_survive_unrelated_updates(self, services, make_user, note_payload):
        owner = await make_user()
        voter = await make_user()
        note = await services.catalog.create(owner, note_payload)
        await services.ledger.record_vote(voter.id, note.id, "upvote")

        updated = await services.catalog.update(Identity.from_user(owner), note.id, {"description": "New"})

        assert updated.upvotes == 1
        assert await services.ledger.get_user_vote(voter.id, note.id) is VoteType.UPVOTE
