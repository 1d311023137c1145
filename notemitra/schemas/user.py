"""
NoteMitra Backend — User Schemas
==================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from notemitra.models.records import Role, UserRecord
from notemitra.services.leaderboard import LeaderboardEntry


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    role: Role = Role.STUDENT
    branch: Optional[str] = None
    section: Optional[str] = None
    roll_no: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class ProfileUpdateRequest(BaseModel):
    """
    Editable profile fields.

    Unknown keys (email, role, reputation, counters, …) are ignored rather
    than rejected; only fields the client actually sent are applied.
    """
    name: Optional[str] = None
    branch: Optional[str] = None
    section: Optional[str] = None
    roll_no: Optional[str] = None

    model_config = {"extra": "ignore"}


class UserResponse(BaseModel):
    """Public profile. The password hash and reset token are never exposed."""
    id: uuid.UUID
    name: str
    email: str
    role: Role
    branch: Optional[str] = None
    section: Optional[str] = None
    roll_no: Optional[str] = None
    is_admin: bool
    is_suspended: bool
    total_downloads: int
    total_views: int
    notes_uploaded: int
    reputation: int
    created_at: datetime

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserResponse":
        return cls.model_validate(user.model_dump(exclude={"password_hash", "reset_token", "reset_token_expiry"}))


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class LeaderboardResponse(BaseModel):
    leaderboard: List[LeaderboardEntry]
    count: int
