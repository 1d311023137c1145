"""
NoteMitra Backend — Storage Package
=====================================

Persistence adapters behind one interface (`CatalogStore`) and the startup
routine that picks one of them for the lifetime of the process.
"""

import asyncio
import logging
from typing import Optional

from notemitra.config import Settings, settings as default_settings
from notemitra.database import create_engine_from_settings, dispose_engine
from notemitra.exceptions import StorageUnavailableError
from notemitra.storage.base import CatalogStore, DuplicateKeyError, VoteConflict
from notemitra.storage.memory import InMemoryCatalogStore
from notemitra.storage.sql import SqlCatalogStore

logger = logging.getLogger(__name__)

__all__ = [
    "CatalogStore",
    "DuplicateKeyError",
    "VoteConflict",
    "InMemoryCatalogStore",
    "SqlCatalogStore",
    "select_store",
]


async def select_store(config: Optional[Settings] = None) -> CatalogStore:
    """
    Choose and initialize the persistence adapter.

    STORAGE_BACKEND=memory    → InMemoryCatalogStore
    STORAGE_BACKEND=database  → SqlCatalogStore; an unreachable database raises
                                StorageUnavailableError and startup aborts
    STORAGE_BACKEND=auto      → SqlCatalogStore when the probe succeeds within
                                DB_CONNECT_TIMEOUT, otherwise InMemoryCatalogStore
                                for the rest of the process lifetime

    The decision is made once; no request ever switches backends.
    """
    config = config or default_settings

    if config.storage_backend == "memory":
        logger.info("Storage backend: memory (configured)")
        return InMemoryCatalogStore()

    engine = create_engine_from_settings(config.database_url)
    store = SqlCatalogStore(engine)
    try:
        await asyncio.wait_for(store.initialize(), timeout=config.db_connect_timeout)
    except (StorageUnavailableError, asyncio.TimeoutError) as e:
        await dispose_engine(engine)
        if config.storage_backend == "database":
            logger.critical("Durable store unreachable and STORAGE_BACKEND=database: %s", str(e))
            if isinstance(e, StorageUnavailableError):
                raise
            raise StorageUnavailableError(
                message="Database did not respond in time",
                context={"timeout_seconds": config.db_connect_timeout},
            ) from e
        logger.warning(
            "Durable store unreachable (%s); running on the in-memory store. "
            "Data will not survive a restart.",
            type(e).__name__,
        )
        return InMemoryCatalogStore()

    logger.info("Storage backend: database")
    return store
