"""
NoteMitra Backend — Shared Response Schemas
=============================================
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "DUPLICATE_TITLE",
            "message": "A note with this title already exists for this subject and semester",
            "details": {},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional client-safe context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    """Service status plus the storage backend chosen at startup."""
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    storage_backend: str = Field(description="Active catalog store: database or memory")
    storage: str = Field(description="Store reachability: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
