"""
NoteMitra Backend — Models Package
====================================

ORM tables (durable store) and backend-neutral domain records.

    user.py        → `users` table
    note.py        → `notes` table
    engagement.py  → `saved_notes` and `votes` tables
    records.py     → Pydantic records returned by both storage adapters
"""

from notemitra.models.engagement import SavedNote, Vote
from notemitra.models.note import Note
from notemitra.models.user import User

__all__ = ["User", "Note", "SavedNote", "Vote"]
