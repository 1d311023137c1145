"""
NoteMitra Backend — Blob File Route
=====================================

What:  Serves an uploaded PDF inline by its blob id (for in-browser preview).
How:   Streams through the FileReferenceResolver so a client disconnect
       cancels the read. Unlike /api/notes/{id}/download, this does not
       count a download.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from notemitra.routes.dependencies import get_services
from notemitra.schemas.common import ErrorResponse
from notemitra.services import Services

router = APIRouter(prefix="/api/files", tags=["Files"])


@router.get(
    "/{file_id}",
    responses={
        200: {"description": "PDF stream", "content": {"application/pdf": {}}},
        404: {"description": "File not found", "model": ErrorResponse},
    },
    summary="View an uploaded PDF",
)
async def serve_file(
    file_id: str,
    services: Services = Depends(get_services),
) -> StreamingResponse:
    blob = await services.resolver.open_blob(file_id)
    return StreamingResponse(
        blob.chunks,
        media_type=blob.content_type,
        headers={
            "Content-Disposition": f'inline; filename="{blob.filename}"',
            "Content-Length": str(blob.size),
            "Cache-Control": "public, max-age=86400",
        },
    )
