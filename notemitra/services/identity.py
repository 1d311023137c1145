"""
NoteMitra Backend — Identity Resolver
=======================================

What:  Turns a bearer credential into an Identity and guards mutating calls.
How:   Credentials are HS256 JWTs (python-jose) carrying `sub` (user id),
       `role`, `type="access"`, `iat` and `exp`. Every resolve re-reads the
       user from the store, so suspension and deletion take effect at once.
Who:   Used by route dependencies (notemitra.routes.dependencies).

Failure order for `resolve` (first match wins):
    1. header absent or blank         → NO_AUTH_HEADER
    2. not "Bearer <value>"           → INVALID_AUTH_FORMAT
    3. signed token past its `exp`    → TOKEN_EXPIRED
    4. bad signature / claims / sub   → INVALID_TOKEN
    5. subject resolves to no user    → USER_NOT_FOUND
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from notemitra.config import Settings, settings as default_settings
from notemitra.exceptions import AuthenticationError, PermissionDeniedError
from notemitra.models.records import Role, UserRecord
from notemitra.storage import CatalogStore

logger = logging.getLogger(__name__)

TOKEN_TYPE = "access"


class Identity(BaseModel):
    """The resolved caller of a request."""

    user_id: uuid.UUID
    name: str
    role: Role
    is_admin: bool = False
    is_suspended: bool = False

    @classmethod
    def from_user(cls, user: UserRecord) -> "Identity":
        return cls(
            user_id=user.id,
            name=user.name,
            role=user.role,
            is_admin=user.is_admin,
            is_suspended=user.is_suspended,
        )


class IdentityResolver:
    """Issues and verifies bearer tokens against the catalog store."""

    def __init__(self, store: CatalogStore, config: Optional[Settings] = None):
        self.store = store
        self.config = config or default_settings

    def issue_token(self, user: UserRecord, expires_delta: Optional[timedelta] = None) -> str:
        """Create a signed access token for `user`."""
        now = datetime.now(timezone.utc)
        expires = now + (expires_delta or timedelta(minutes=self.config.access_token_expire_minutes))
        claims = {
            "sub": str(user.id),
            "role": user.role.value,
            "type": TOKEN_TYPE,
            "iat": now,
            "exp": expires,
        }
        return jwt.encode(claims, self.config.jwt_secret_key, algorithm=self.config.jwt_algorithm)

    def _extract_token(self, authorization: Optional[str]) -> str:
        if authorization is None or not authorization.strip():
            raise AuthenticationError(
                message="Authorization header is required",
                error_code="NO_AUTH_HEADER",
            )
        parts = authorization.strip().split()
        if len(parts) != 2 or parts[0] != "Bearer":
            raise AuthenticationError(
                message="Authorization header must be 'Bearer <token>'",
                error_code="INVALID_AUTH_FORMAT",
            )
        return parts[1]

    def _decode_subject(self, token: str) -> uuid.UUID:
        try:
            payload = jwt.decode(
                token,
                self.config.jwt_secret_key,
                algorithms=[self.config.jwt_algorithm],
            )
        except ExpiredSignatureError:
            raise AuthenticationError(
                message="Your session has expired. Please log in again.",
                error_code="TOKEN_EXPIRED",
            )
        except JWTError as e:
            raise AuthenticationError(
                message="Invalid authentication token",
                error_code="INVALID_TOKEN",
                context={"reason": str(e)},
            )

        if payload.get("type") != TOKEN_TYPE:
            raise AuthenticationError(
                message="Invalid authentication token",
                error_code="INVALID_TOKEN",
                context={"reason": "wrong token type"},
            )
        subject = payload.get("sub")
        if not isinstance(subject, str) or not self.store.is_valid_id(subject):
            raise AuthenticationError(
                message="Invalid authentication token",
                error_code="INVALID_TOKEN",
                context={"reason": "malformed subject"},
            )
        return uuid.UUID(subject)

    async def resolve(self, authorization: Optional[str]) -> Identity:
        """Resolve an Authorization header value to the caller's Identity."""
        token = self._extract_token(authorization)
        user_id = self._decode_subject(token)
        user = await self.store.get_user(user_id)
        if user is None:
            raise AuthenticationError(
                message="User not found",
                error_code="USER_NOT_FOUND",
                context={"user_id": str(user_id)},
            )
        return Identity.from_user(user)

    async def resolve_optional(self, authorization: Optional[str]) -> Optional[Identity]:
        """Like `resolve`, but any credential problem yields None."""
        try:
            return await self.resolve(authorization)
        except AuthenticationError:
            return None

    async def require_active(self, identity: Identity) -> UserRecord:
        """
        Re-check the caller against the store before a mutation.

        The decision is never cached: a user suspended after their token was
        issued is refused on the very next write.
        """
        user = await self.store.get_user(identity.user_id)
        if user is None:
            raise AuthenticationError(message="User not found", error_code="USER_NOT_FOUND")
        if user.is_suspended:
            logger.info("Refused mutation by suspended user %s", user.id)
            raise PermissionDeniedError(
                message="Your account has been suspended",
                error_code="ACCOUNT_INACTIVE",
            )
        return user
