"""
NoteMitra Backend — Blob Store & File Resolver Tests
======================================================

What:  Upload validation, storage round trips and reference resolution.
How:   Temporary directories per test. libmagic is patched out where the
       test is about something other than content sniffing.

Test Strategy:
    ✅ Only .pdf extensions accepted (case-insensitive)
    ✅ Size limits: empty, Content-Length, actual size
    ✅ Stored blob streams back byte-for-byte
    ✅ Malformed blob ids never touch the file system
    ✅ Resolver prefers the external URL, then the blob
    ✅ Filenames are sanitized for Content-Disposition
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from notemitra.config import settings
from notemitra.exceptions import NotFoundError, ValidationError
from notemitra.models.records import BlobRef, ExternalRef, NoteRecord
from notemitra.services.blob_store import BlobStore
from notemitra.services.file_resolver import (
    BlobDownload,
    FileReferenceResolver,
    RedirectTarget,
    sanitize_filename,
)


def _pdf_mime(content, filename):
    return "application/pdf"


async def _collect(chunks) -> bytes:
    data = b""
    async for chunk in chunks:
        data += chunk
    return data


def _note(files) -> NoteRecord:
    return NoteRecord(
        id=uuid.uuid4(),
        title="t",
        description="d",
        subject="s",
        semester=1,
        files=files,
        owner_id=uuid.uuid4(),
        owner_name="o",
        created_at=datetime.now(timezone.utc),
    )


class TestBlobValidation:

    def test_pdf_extension_accepted(self, blob_store):
        assert blob_store.validate_extension("unit1.pdf") == ".pdf"
        assert blob_store.validate_extension("UNIT1.PDF") == ".pdf"

    @pytest.mark.parametrize("filename", ["notes.docx", "photo.jpg", "noextension", "evil.pdf.exe", ""])
    def test_other_extensions_rejected(self, blob_store, filename):
        with pytest.raises(ValidationError, match="not supported") as exc:
            blob_store.validate_extension(filename)
        assert exc.value.error_code == "INVALID_FILE_TYPE"

    def test_empty_file(self, blob_store):
        with pytest.raises(ValidationError) as exc:
            blob_store.validate_size(None, 0)
        assert exc.value.error_code == "EMPTY_FILE"

    def test_size_at_limit_passes(self, blob_store):
        blob_store.validate_size(settings.max_file_size, settings.max_file_size)

    def test_reported_size_over_limit(self, blob_store):
        with pytest.raises(ValidationError) as exc:
            blob_store.validate_size(settings.max_file_size + 1, 10)
        assert exc.value.error_code == "FILE_TOO_LARGE"

    def test_actual_size_over_limit(self, blob_store):
        with pytest.raises(ValidationError) as exc:
            blob_store.validate_size(None, settings.max_file_size + 1)
        assert exc.value.error_code == "FILE_TOO_LARGE"

    def test_wrong_content_rejected(self, blob_store):
        pytest.importorskip("magic")
        with patch("magic.from_buffer", return_value="text/plain"):
            with pytest.raises(ValidationError) as exc:
                blob_store.validate_mime_type(b"just text", "fake.pdf")
        assert exc.value.error_code == "INVALID_FILE_TYPE"

    @pytest.mark.parametrize("blob_id", ["../etc/passwd", "ABC", "", None, "g" * 32])
    def test_malformed_blob_ids(self, blob_store, blob_id):
        assert blob_store.is_valid_blob_id(blob_id) is False


class TestBlobStorage:

    @pytest.mark.asyncio
    async def test_store_and_stream(self, blob_store, sample_pdf_bytes):
        with patch.object(BlobStore, "validate_mime_type", side_effect=_pdf_mime):
            info = await blob_store.store("Unit 1.pdf", sample_pdf_bytes, len(sample_pdf_bytes))

        assert blob_store.is_valid_blob_id(info.blob_id)
        assert info.filename == "Unit 1.pdf"
        assert info.size == len(sample_pdf_bytes)

        fetched = await blob_store.get_info(info.blob_id)
        assert fetched.filename == "Unit 1.pdf"
        assert await _collect(blob_store.iter_chunks(info.blob_id, chunk_size=16)) == sample_pdf_bytes

    @pytest.mark.asyncio
    async def test_filename_path_is_dropped(self, blob_store, sample_pdf_bytes):
        with patch.object(BlobStore, "validate_mime_type", side_effect=_pdf_mime):
            info = await blob_store.store("../../secret/unit.pdf", sample_pdf_bytes)
        assert info.filename == "unit.pdf"
        assert (blob_store.storage_root / f"{info.blob_id}.pdf").exists()

    @pytest.mark.asyncio
    async def test_missing_sidecar_falls_back_to_file_stat(self, blob_store, sample_pdf_bytes):
        with patch.object(BlobStore, "validate_mime_type", side_effect=_pdf_mime):
            info = await blob_store.store("unit.pdf", sample_pdf_bytes)
        (blob_store.storage_root / f"{info.blob_id}.json").unlink()

        fetched = await blob_store.get_info(info.blob_id)

        assert fetched.size == len(sample_pdf_bytes)
        assert fetched.content_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_delete(self, blob_store, sample_pdf_bytes):
        with patch.object(BlobStore, "validate_mime_type", side_effect=_pdf_mime):
            info = await blob_store.store("unit.pdf", sample_pdf_bytes)

        assert await blob_store.delete(info.blob_id) is True
        assert await blob_store.get_info(info.blob_id) is None
        assert await blob_store.delete(info.blob_id) is False
        assert await blob_store.delete("../../etc/passwd") is False

    @pytest.mark.asyncio
    async def test_invalid_upload_writes_nothing(self, blob_store):
        with pytest.raises(ValidationError):
            await blob_store.store("unit.txt", b"hello")
        assert list(blob_store.storage_root.iterdir()) == []


class TestFileReferenceResolver:

    @pytest.mark.asyncio
    async def test_external_url_wins(self, blob_store):
        resolver = FileReferenceResolver(blob_store)
        note = _note([BlobRef(blob_id="a" * 32), ExternalRef(url="https://cdn.example/x.pdf")])

        target = await resolver.resolve(note)

        assert target == RedirectTarget(url="https://cdn.example/x.pdf")

    @pytest.mark.asyncio
    async def test_blob_download(self, blob_store, sample_pdf_bytes):
        with patch.object(BlobStore, "validate_mime_type", side_effect=_pdf_mime):
            info = await blob_store.store("Data Structures (v2).pdf", sample_pdf_bytes)
        resolver = FileReferenceResolver(blob_store)

        target = await resolver.resolve(_note([BlobRef(blob_id=info.blob_id)]))

        assert isinstance(target, BlobDownload)
        assert target.filename == "Data Structures _v2_.pdf"
        assert target.content_type == "application/pdf"
        assert target.size == len(sample_pdf_bytes)
        assert await _collect(target.chunks) == sample_pdf_bytes

    @pytest.mark.asyncio
    async def test_missing_blob(self, blob_store):
        resolver = FileReferenceResolver(blob_store)
        with pytest.raises(NotFoundError) as exc:
            await resolver.resolve(_note([BlobRef(blob_id=uuid.uuid4().hex)]))
        assert exc.value.error_code == "FILE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_no_reference(self, blob_store):
        resolver = FileReferenceResolver(blob_store)
        with pytest.raises(NotFoundError) as exc:
            await resolver.resolve(_note([]))
        assert exc.value.error_code == "NO_FILE_ASSOCIATED"

    def test_sanitize_filename(self):
        assert sanitize_filename('a"b;c.pdf') == "a_b_c.pdf"
        assert sanitize_filename("notes-v1.2 final.pdf") == "notes-v1.2 final.pdf"
        assert sanitize_filename("नोट्स.pdf") == "_____.pdf"
        assert sanitize_filename("Résumé\r\nX-Evil: 1.pdf") == "R_sum___X-Evil_ 1.pdf"
