"""
NoteMitra Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment overrides are applied before any notemitra import so the
       settings singleton picks them up.

Fixture Hierarchy:
    store        → parametrized: InMemoryCatalogStore and SqlCatalogStore
                   (SQLite file via aiosqlite), so every store-level and
                   service-level test runs against both backends
    blob_store   → BlobStore rooted in a per-test temporary directory
    services     → every service wired onto `store`
    client       → HTTPX AsyncClient talking to create_app(store)
    make_user    → inserts a user directly into the store
    register     → registers a user through the API, returns its token
"""

import os
import tempfile

# Override settings for testing BEFORE any notemitra imports
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./unused.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="notemitra_test_")
os.environ["RATE_LIMIT_REQUESTS"] = "100000"
os.environ["LOG_LEVEL"] = "WARNING"

import uuid
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from notemitra.config import settings
from notemitra.database import create_engine_from_settings
from notemitra.models.records import NoteRecord, UserRecord, build_file_references
from notemitra.services import build_services
from notemitra.services.blob_store import BlobStore
from notemitra.storage import InMemoryCatalogStore, SqlCatalogStore


# Smallest byte sequence libmagic would recognise as a PDF
SAMPLE_PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


# ══════════════════════════════════════════════════════════════════════════
# Stores & Services
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    """Each test using this fixture runs once per backend."""
    if request.param == "memory":
        yield InMemoryCatalogStore()
        return

    engine = create_engine_from_settings(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    sql_store = SqlCatalogStore(engine)
    await sql_store.initialize()
    yield sql_store
    await sql_store.close()


@pytest.fixture
def memory_store():
    return InMemoryCatalogStore()


@pytest.fixture
def blob_store(tmp_path):
    return BlobStore(str(tmp_path / "blobs"))


@pytest.fixture
def services(store, blob_store):
    return build_services(store, settings, blob_store=blob_store)


@pytest_asyncio.fixture
async def client(services):
    """
    HTTPX client against the full app (middleware, handlers, routes).

    ASGITransport does not run the lifespan; create_app(store) wires the
    services up front, and the fixture swaps in the test-scoped ones.
    """
    from notemitra.main import create_app

    app = create_app(services.store)
    app.state.services = services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


# ══════════════════════════════════════════════════════════════════════════
# Data Helpers
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_user(store):
    """Insert a user straight into the store (no password hashing)."""

    async def _make_user(name="Asha", email=None, **fields) -> UserRecord:
        record = UserRecord(
            id=uuid.uuid4(),
            name=name,
            email=email or f"{uuid.uuid4().hex[:8]}@example.edu",
            password_hash="not-a-real-hash",
            created_at=fields.pop("created_at", datetime.now(timezone.utc)),
            **fields,
        )
        return await store.insert_user(record)

    return _make_user


@pytest.fixture
def make_note(store):
    """Insert a note straight into the store, bypassing the catalog pipeline."""

    async def _make_note(owner: UserRecord, title="Thermodynamics Unit 1", **fields) -> NoteRecord:
        file_url = fields.pop("file_url", None)
        blob_id = fields.pop("blob_id", None)
        if file_url is None and blob_id is None:
            file_url = "https://files.example.edu/thermo.pdf"
        record = NoteRecord(
            id=uuid.uuid4(),
            title=title,
            description=fields.pop("description", "Lecture notes"),
            subject=fields.pop("subject", "Physics"),
            semester=fields.pop("semester", 3),
            files=build_file_references(file_url, blob_id),
            owner_id=owner.id,
            owner_name=owner.name,
            created_at=fields.pop("created_at", datetime.now(timezone.utc)),
            **fields,
        )
        return await store.insert_note(record)

    return _make_note


@pytest.fixture
def register(client):
    """Register through the API; returns (user_json, auth_headers)."""

    async def _register(name="Asha", email=None, password="secret123", **extra):
        body = {
            "name": name,
            "email": email or f"{uuid.uuid4().hex[:8]}@example.edu",
            "password": password,
            **extra,
        }
        response = await client.post("/api/auth/register", json=body)
        assert response.status_code == 201, response.text
        data = response.json()
        return data["user"], {"Authorization": f"Bearer {data['access_token']}"}

    return _register


@pytest.fixture
def sample_pdf_bytes():
    return SAMPLE_PDF


@pytest.fixture
def note_payload():
    return {
        "title": "Thermodynamics Unit 1",
        "description": "First and second law with solved problems",
        "subject": "Physics",
        "semester": 3,
        "branch": "Mechanical",
        "file_url": "https://files.example.edu/thermo.pdf",
    }
