"""
NoteMitra Backend — User Service
==================================

What:  Registration, login, profile management and account suspension.
How:   Passwords are hashed with passlib (PBKDF2-SHA256) in a worker thread
       so hashing never blocks the event loop. Login issues a bearer token
       through the IdentityResolver.
Who:   Called by notemitra.routes.auth and notemitra.routes.admin.

Profile updates only touch name, branch, section and roll_no. Email, role,
admin flag, reputation and counters are ignored even when submitted.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from passlib.context import CryptContext

from notemitra.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from notemitra.models.records import Role, UserRecord
from notemitra.services.identity import IdentityResolver
from notemitra.storage import CatalogStore, DuplicateKeyError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

PROFILE_FIELDS = ("name", "branch", "section", "roll_no")
NAME_MAX_LENGTH = 100
# Column sizes of the users table
PROFILE_MAX_LENGTHS = {"branch": 100, "section": 50, "roll_no": 50}


async def hash_password(password: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, pwd_context.hash, password)


async def verify_password(plain: str, hashed: str) -> bool:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, pwd_context.verify, plain, hashed)


def _clean_optional(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _clean_profile_field(field: str, value: Any) -> Optional[str]:
    cleaned = _clean_optional(value)
    max_length = PROFILE_MAX_LENGTHS[field]
    if cleaned is not None and len(cleaned) > max_length:
        raise ValidationError(
            message=f"{field} exceeds the maximum length of {max_length} characters",
            error_code=f"{field.upper()}_TOO_LONG",
            field=field,
            details={"max_length": max_length},
        )
    return cleaned


class UserService:
    def __init__(self, store: CatalogStore, identity: IdentityResolver):
        self.store = store
        self.identity = identity

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        role: Role = Role.STUDENT,
        branch: Optional[str] = None,
        section: Optional[str] = None,
        roll_no: Optional[str] = None,
    ) -> Tuple[UserRecord, str]:
        """
        Create an account and return it with a fresh access token.

        Raises:
            ValidationError(INVALID_NAME, BRANCH_TOO_LONG, SECTION_TOO_LONG, ROLL_NO_TOO_LONG)
            ConflictError(EMAIL_EXISTS): email already registered (case-insensitive)
        """
        name = (name or "").strip()
        if not name or len(name) > NAME_MAX_LENGTH:
            raise ValidationError(
                message=f"Name must be between 1 and {NAME_MAX_LENGTH} characters",
                error_code="INVALID_NAME",
                field="name",
            )
        email = email.strip().lower()
        if await self.store.find_user_by_email(email):
            raise self._email_exists()

        record = UserRecord(
            id=uuid.uuid4(),
            name=name,
            email=email,
            password_hash=await hash_password(password),
            role=role,
            branch=_clean_profile_field("branch", branch),
            section=_clean_profile_field("section", section),
            roll_no=_clean_profile_field("roll_no", roll_no),
            created_at=datetime.now(timezone.utc),
        )
        try:
            user = await self.store.insert_user(record)
        except DuplicateKeyError:
            raise self._email_exists()

        logger.info("User registered: %s (%s)", user.id, user.role.value)
        return user, self.identity.issue_token(user)

    @staticmethod
    def _email_exists() -> ConflictError:
        return ConflictError(
            message="An account with this email already exists",
            error_code="EMAIL_EXISTS",
        )

    async def login(self, email: str, password: str) -> Tuple[UserRecord, str]:
        """
        Verify credentials and issue an access token.

        Unknown email and wrong password produce the same error so the
        response does not reveal which accounts exist.
        """
        user = await self.store.find_user_by_email(email.strip())
        if user is None or not await verify_password(password, user.password_hash):
            raise AuthenticationError(
                message="Invalid email or password",
                error_code="INVALID_CREDENTIALS",
            )
        if user.is_suspended:
            raise PermissionDeniedError(
                message="Your account has been suspended",
                error_code="ACCOUNT_INACTIVE",
            )
        logger.info("User logged in: %s", user.id)
        return user, self.identity.issue_token(user)

    async def get_profile(self, user_id: uuid.UUID) -> UserRecord:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id), error_code="USER_NOT_FOUND")
        return user

    async def update_profile(self, user_id: uuid.UUID, payload: Dict[str, Any]) -> UserRecord:
        changes: Dict[str, Any] = {}
        if "name" in payload:
            name = payload["name"].strip() if isinstance(payload["name"], str) else ""
            if not name or len(name) > NAME_MAX_LENGTH:
                raise ValidationError(
                    message=f"Name must be between 1 and {NAME_MAX_LENGTH} characters",
                    error_code="INVALID_NAME",
                    field="name",
                )
            changes["name"] = name
        for field in ("branch", "section", "roll_no"):
            if field in payload:
                changes[field] = _clean_profile_field(field, payload[field])

        if not changes:
            return await self.get_profile(user_id)
        user = await self.store.update_user(user_id, changes)
        if user is None:
            raise NotFoundError(resource="user", resource_id=str(user_id), error_code="USER_NOT_FOUND")
        logger.info("Profile updated for %s (%s)", user_id, ", ".join(sorted(changes)))
        return user

    async def set_suspended(self, raw_user_id: Any, suspended: bool) -> UserRecord:
        """
        Suspend or reinstate an account. Admin accounts cannot be suspended.

        Callers must already have checked that the requester is an admin.
        """
        if not self.store.is_valid_id(raw_user_id):
            raise ValidationError(
                message="Invalid user ID format",
                error_code="INVALID_USER_ID",
                field="user_id",
            )
        user_id = uuid.UUID(str(raw_user_id))
        target = await self.store.get_user(user_id)
        if target is None:
            raise NotFoundError(resource="user", resource_id=str(user_id), error_code="USER_NOT_FOUND")
        if suspended and target.is_admin:
            raise PermissionDeniedError(
                message="Admin accounts cannot be suspended",
                error_code="CANNOT_SUSPEND_ADMIN",
            )
        user = await self.store.update_user(user_id, {"is_suspended": suspended})
        logger.info("User %s %s", user_id, "suspended" if suspended else "unsuspended")
        return user
