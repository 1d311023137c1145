"""
NoteMitra Backend — Application Package Initializer
=====================================================

What: The notes-sharing catalog service: students upload lecture notes,
      browse and download them, vote and bookmark; uploaders earn reputation
      and compete on a leaderboard.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← NoteCatalog, EngagementLedger, ...
    ├─────────────────────────────────────┤
    │     Records & Schemas (Data)        │  ← Pydantic records + API contracts
    ├─────────────────────────────────────┤
    │   Catalog Store (Persistence)       │  ← SQL (async SQLAlchemy) or in-memory
    └─────────────────────────────────────┘

    The store is chosen once at startup. Services only see the CatalogStore
    interface, so both backends share every business rule.
"""

__version__ = "1.0.0"
