# Schemas package init
"""
NoteMitra Backend — Pydantic Request/Response Schemas
=======================================================

What:  The API contract between clients and the backend.
How:   Routes convert domain records (notemitra.models.records) into these
       response models; internal fields such as password hashes never leave
       the service.

    common.py  → ErrorResponse, HealthResponse, MessageResponse
    note.py    → note, vote, bookmark, upload and report payloads
    user.py    → registration, login and profile payloads
"""
