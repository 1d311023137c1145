"""
NoteMitra Backend — Leaderboard Ranker
========================================

What:  Ranked view of users who have uploaded at least one note.
How:   Recomputed from current user aggregates on every request; nothing is
       cached, so the board always reflects the latest counters.

Ordering:
    1. total_downloads   descending
    2. avg_downloads     descending  (total_downloads / notes_uploaded)
    3. created_at        ascending   (earlier joiners win ties)
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from notemitra.models.records import UserRecord
from notemitra.storage import CatalogStore


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: uuid.UUID
    name: str
    branch: Optional[str] = None
    notes_uploaded: int
    total_downloads: int
    total_views: int
    reputation: int
    avg_downloads: float
    joined_at: datetime


def _sort_key(user: UserRecord):
    avg = user.total_downloads / user.notes_uploaded
    return (-user.total_downloads, -avg, user.created_at.timestamp())


class LeaderboardRanker:
    def __init__(self, store: CatalogStore):
        self.store = store

    async def rank(self, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        uploaders = [u for u in await self.store.list_uploaders() if u.notes_uploaded > 0]
        uploaders.sort(key=_sort_key)
        if limit is not None:
            uploaders = uploaders[:limit]
        return [
            LeaderboardEntry(
                rank=position,
                user_id=user.id,
                name=user.name,
                branch=user.branch,
                notes_uploaded=user.notes_uploaded,
                total_downloads=user.total_downloads,
                total_views=user.total_views,
                reputation=user.reputation,
                avg_downloads=round(user.total_downloads / user.notes_uploaded, 2),
                joined_at=user.created_at,
            )
            for position, user in enumerate(uploaders, start=1)
        ]
