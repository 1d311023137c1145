"""
NoteMitra Backend — Admin Route Handlers
==========================================

What:  Moderation queue and account suspension.
Who:   Admin dashboard only; every route requires `is_admin`.
"""

import logging

from fastapi import APIRouter, Depends

from notemitra.routes.dependencies import get_services, require_admin
from notemitra.schemas.common import ErrorResponse
from notemitra.schemas.note import NoteResponse, ReportListResponse
from notemitra.schemas.user import UserResponse
from notemitra.services import Services
from notemitra.services.identity import Identity

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    responses={403: {"description": "Admin access required", "model": ErrorResponse}},
)


@router.get("/reports", response_model=ReportListResponse, summary="Reported notes, newest first")
async def list_reports(
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> ReportListResponse:
    notes = await services.catalog.list_reports()
    return ReportListResponse(reports=[NoteResponse.from_record(n) for n in notes], count=len(notes))


@router.put(
    "/reports/{note_id}/resolve",
    response_model=NoteResponse,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Dismiss a report",
)
async def resolve_report(
    note_id: str,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> NoteResponse:
    note = await services.catalog.resolve_report(note_id)
    logger.info("Admin %s resolved report on %s", admin.user_id, note_id)
    return NoteResponse.from_record(note)


@router.put(
    "/users/{user_id}/suspend",
    response_model=UserResponse,
    responses={404: {"description": "User not found", "model": ErrorResponse}},
    summary="Suspend an account",
)
async def suspend_user(
    user_id: str,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> UserResponse:
    user = await services.users.set_suspended(user_id, True)
    return UserResponse.from_record(user)


@router.put(
    "/users/{user_id}/unsuspend",
    response_model=UserResponse,
    responses={404: {"description": "User not found", "model": ErrorResponse}},
    summary="Reinstate a suspended account",
)
async def unsuspend_user(
    user_id: str,
    admin: Identity = Depends(require_admin),
    services: Services = Depends(get_services),
) -> UserResponse:
    user = await services.users.set_suspended(user_id, False)
    return UserResponse.from_record(user)
