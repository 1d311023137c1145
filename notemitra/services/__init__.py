# Services package init
"""
NoteMitra Backend — Services Layer
====================================

What:  Business logic between routes (HTTP) and the catalog store (persistence).
How:   Every service receives the CatalogStore chosen at startup. Routes get
       them from `app.state.services` through FastAPI dependencies.

Service Inventory:
    - IdentityResolver:       bearer token → Identity; active-account checks
    - NoteCatalog:            note create/update/delete/get/list, download, reports
    - EngagementLedger:       views, downloads, votes, reputation
    - SavedNoteIndex:         bookmarks
    - LeaderboardRanker:      ranked uploaders
    - FileReferenceResolver:  external URL redirect or blob stream
    - BlobStore:              uploaded PDF storage
    - UserService:            register, login, profile, suspension
"""

from dataclasses import dataclass
from typing import Optional

from notemitra.config import Settings, settings as default_settings
from notemitra.services.blob_store import BlobStore
from notemitra.services.engagement import EngagementLedger
from notemitra.services.file_resolver import FileReferenceResolver
from notemitra.services.identity import IdentityResolver
from notemitra.services.leaderboard import LeaderboardRanker
from notemitra.services.note_catalog import NoteCatalog
from notemitra.services.saved_notes import SavedNoteIndex
from notemitra.services.users import UserService
from notemitra.storage import CatalogStore


@dataclass
class Services:
    store: CatalogStore
    identity: IdentityResolver
    blob_store: BlobStore
    ledger: EngagementLedger
    resolver: FileReferenceResolver
    catalog: NoteCatalog
    saved: SavedNoteIndex
    leaderboard: LeaderboardRanker
    users: UserService


def build_services(
    store: CatalogStore,
    config: Optional[Settings] = None,
    blob_store: Optional[BlobStore] = None,
) -> Services:
    """Wire every service onto one store. No call site needs to know which store it is."""
    config = config or default_settings
    blob_store = blob_store or BlobStore(config.storage_root)
    identity = IdentityResolver(store, config)
    ledger = EngagementLedger(store, config)
    resolver = FileReferenceResolver(blob_store)
    return Services(
        store=store,
        identity=identity,
        blob_store=blob_store,
        ledger=ledger,
        resolver=resolver,
        catalog=NoteCatalog(store, ledger, resolver, blob_store),
        saved=SavedNoteIndex(store),
        leaderboard=LeaderboardRanker(store),
        users=UserService(store, identity),
    )
