"""
NoteMitra Backend — Leaderboard Route
=======================================
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from notemitra.routes.dependencies import get_services
from notemitra.schemas.user import LeaderboardResponse
from notemitra.services import Services

router = APIRouter(prefix="/api", tags=["Leaderboard"])


@router.get(
    "/leaderboard",
    response_model=LeaderboardResponse,
    summary="Uploaders ranked by downloads",
    description=(
        "Users with at least one uploaded note, ordered by total downloads, then "
        "average downloads per note, then join date. Recomputed on every request."
    ),
)
async def leaderboard(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    services: Services = Depends(get_services),
) -> LeaderboardResponse:
    entries = await services.leaderboard.rank(limit=limit)
    return LeaderboardResponse(leaderboard=entries, count=len(entries))
