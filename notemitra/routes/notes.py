"""
NoteMitra Backend — Notes Route Handlers
==========================================

What:  The catalog's HTTP surface: upload, CRUD, listing, votes, bookmarks,
       downloads and reports.
How:   Thin handlers. Each resolves identity where needed, calls one service
       method and shapes the response. Business rules live in the services.

Route order matters: `/notes/saved/list` is declared before `/notes/{note_id}`
so "saved" is never parsed as a note id.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, Query, Response, UploadFile
from fastapi.responses import RedirectResponse, StreamingResponse

from notemitra.models.records import UserRecord
from notemitra.routes.dependencies import (
    get_active_user,
    get_optional_identity,
    get_services,
)
from notemitra.schemas.common import ErrorResponse, MessageResponse
from notemitra.schemas.note import (
    DeleteResponse,
    NoteListResponse,
    NoteResponse,
    ReportRequest,
    SavedListResponse,
    SavedNoteItem,
    SavedStatusResponse,
    SaveResponse,
    UploadResponse,
    VoteRequest,
    VoteResponse,
)
from notemitra.services import Services
from notemitra.services.file_resolver import RedirectTarget
from notemitra.services.identity import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notes", tags=["Notes"])


# ── Upload & Create ───────────────────────────────────────────────────────

@router.post(
    "/upload-pdf",
    status_code=201,
    response_model=UploadResponse,
    responses={400: {"description": "Invalid file type or size", "model": ErrorResponse}},
    summary="Upload a PDF to the internal blob store",
)
async def upload_pdf(
    file: UploadFile = File(..., description="PDF document (max MAX_FILE_SIZE bytes)"),
    user: UserRecord = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> UploadResponse:
    """Store the document and return the `file_id` to reference when creating the note."""
    try:
        content = await file.read()
        logger.info(
            "Upload from %s: filename=%s, size=%d bytes",
            user.id,
            file.filename or "unknown",
            len(content),
        )
        info = await services.blob_store.store(
            filename=file.filename or "upload.pdf",
            content=content,
            content_length=file.size,
        )
    finally:
        await file.close()

    return UploadResponse(
        file_id=info.blob_id,
        filename=info.filename,
        size=info.size,
        content_type=info.content_type,
        url=f"/api/files/{info.blob_id}",
    )


@router.post(
    "",
    status_code=201,
    response_model=NoteResponse,
    responses={
        400: {"description": "Validation failed", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
        409: {"description": "Duplicate title for subject and semester", "model": ErrorResponse},
    },
    summary="Create a note",
)
async def create_note(
    payload: Any = Body(default=None),
    user: UserRecord = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> NoteResponse:
    note = await services.catalog.create(user, payload)
    return NoteResponse.from_record(note)


# ── Listing ───────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=NoteListResponse,
    responses={400: {"description": "Invalid page, limit or semester", "model": ErrorResponse}},
    summary="List approved notes, newest first",
)
async def list_notes(
    response: Response,
    subject: Optional[str] = Query(default=None),
    semester: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    page: Optional[str] = Query(default=None, description="1-based page number (default 1)"),
    limit: Optional[str] = Query(default=None, description="Items per page, 1 to 100 (default 20)"),
    services: Services = Depends(get_services),
) -> NoteListResponse:
    # Raw strings so the catalog reports INVALID_PAGE / INVALID_LIMIT itself
    result = await services.catalog.list(
        subject=subject,
        semester=semester,
        branch=branch,
        page=page,
        limit=limit,
    )
    response.headers["X-Total-Count"] = str(result.total)
    return NoteListResponse(
        notes=[NoteResponse.from_record(n) for n in result.notes],
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.get(
    "/saved/list",
    response_model=SavedListResponse,
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
    summary="The caller's bookmarked notes",
)
async def list_saved(
    user: UserRecord = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> SavedListResponse:
    rows = await services.saved.list_saved(user.id)
    items = [
        SavedNoteItem(**NoteResponse.from_record(note).model_dump(), saved_at=saved.saved_at)
        for saved, note in rows
    ]
    return SavedListResponse(notes=items, count=len(items))


# ── Single Note ───────────────────────────────────────────────────────────

@router.get(
    "/{note_id}",
    response_model=NoteResponse,
    responses={
        400: {"description": "Malformed note id", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
    },
    summary="Get a note (counts a view)",
)
async def get_note(
    note_id: str,
    services: Services = Depends(get_services),
) -> NoteResponse:
    note = await services.catalog.get(note_id)
    return NoteResponse.from_record(note)


@router.put(
    "/{note_id}",
    response_model=NoteResponse,
    responses={
        400: {"description": "Validation failed", "model": ErrorResponse},
        403: {"description": "Not the owner", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
        409: {"description": "Duplicate title for subject and semester", "model": ErrorResponse},
    },
    summary="Update a note you own",
)
async def update_note(
    note_id: str,
    payload: Any = Body(default=None),
    user: UserRecord = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> NoteResponse:
    note = await services.catalog.update(Identity.from_user(user), note_id, payload)
    return NoteResponse.from_record(note)


@router.delete(
    "/{note_id}",
    response_model=DeleteResponse,
    responses={
        403: {"description": "Not the owner or an admin", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
    },
    summary="Delete a note (owner or admin)",
)
async def delete_note(
    note_id: str,
    user: UserRecord = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> DeleteResponse:
    removed = await services.catalog.delete(Identity.from_user(user), note_id)
    return DeleteResponse(id=removed.id)


# ── Engagement ────────────────────────────────────────────────────────────

@router.post(
    "/{note_id}/vote",
    response_model=VoteResponse,
    responses={
        400: {"description": "Invalid vote type or note id", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
    },
    summary="Upvote or downvote; repeating the same vote removes it",
)
async def vote(
    note_id: str,
    body: Optional[VoteRequest] = None,
    user: UserRecord = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> VoteResponse:
    parsed_id = services.catalog.parse_note_id(note_id)
    outcome = await services.ledger.record_vote(user.id, parsed_id, body.vote_type if body else None)
    return VoteResponse(
        note_id=outcome.note.id,
        upvotes=outcome.note.upvotes,
        downvotes=outcome.note.downvotes,
        user_vote=outcome.user_vote,
    )


@router.post(
    "/{note_id}/save",
    status_code=201,
    response_model=SaveResponse,
    responses={
        404: {"description": "Note not found", "model": ErrorResponse},
        409: {"description": "Already saved", "model": ErrorResponse},
    },
    summary="Bookmark a note",
)
async def save_note(
    note_id: str,
    user: UserRecord = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> SaveResponse:
    parsed_id = services.catalog.parse_note_id(note_id)
    saved = await services.saved.save(user.id, parsed_id)
    return SaveResponse(message="Note saved", note_id=parsed_id, saved_at=saved.saved_at)


@router.delete(
    "/{note_id}/save",
    response_model=SaveResponse,
    responses={404: {"description": "Note was not saved", "model": ErrorResponse}},
    summary="Remove a bookmark",
)
async def unsave_note(
    note_id: str,
    user: UserRecord = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> SaveResponse:
    parsed_id = services.catalog.parse_note_id(note_id)
    await services.saved.unsave(user.id, parsed_id)
    return SaveResponse(message="Note removed from saved", note_id=parsed_id)


@router.get(
    "/{note_id}/saved",
    response_model=SavedStatusResponse,
    summary="Whether the caller has bookmarked a note (false when anonymous)",
)
async def is_saved(
    note_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    services: Services = Depends(get_services),
) -> SavedStatusResponse:
    if identity is None or not services.store.is_valid_id(note_id):
        return SavedStatusResponse(saved=False)
    parsed_id = services.catalog.parse_note_id(note_id)
    return SavedStatusResponse(saved=await services.saved.is_saved(identity.user_id, parsed_id))


# ── Download & Report ─────────────────────────────────────────────────────

@router.get(
    "/{note_id}/download",
    responses={
        200: {"description": "PDF stream", "content": {"application/pdf": {}}},
        302: {"description": "Redirect to external storage"},
        404: {"description": "Note or file not found", "model": ErrorResponse},
    },
    summary="Download a note's document (counts a download)",
)
async def download_note(
    note_id: str,
    services: Services = Depends(get_services),
):
    target = await services.catalog.download(note_id)
    if isinstance(target, RedirectTarget):
        return RedirectResponse(url=target.url, status_code=302)

    return StreamingResponse(
        target.chunks,
        media_type=target.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{target.filename}"',
            "Content-Length": str(target.size),
            "X-Note-Id": note_id,
        },
    )


@router.post(
    "/{note_id}/report",
    response_model=MessageResponse,
    responses={
        400: {"description": "Missing or too long reason", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
    },
    summary="Flag a note for moderator review",
)
async def report_note(
    note_id: str,
    body: Optional[ReportRequest] = None,
    user: UserRecord = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> MessageResponse:
    await services.catalog.report(note_id, body.reason if body else None)
    logger.info("Note %s reported by %s", note_id, user.id)
    return MessageResponse(message="Note reported successfully")
