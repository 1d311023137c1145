"""
NoteMitra Backend — Route Dependencies
========================================

What:  FastAPI dependencies shared by the route modules.
How:   Services live on `app.state.services` (built at startup from the
       chosen store). Authentication dependencies read the raw
       Authorization header so the IdentityResolver can report the exact
       failure code rather than a generic 401/403 from FastAPI's security
       helpers.
"""

from typing import Optional

from fastapi import Depends, Header, Request

from notemitra.exceptions import PermissionDeniedError, StorageUnavailableError
from notemitra.models.records import UserRecord
from notemitra.services import Services
from notemitra.services.identity import Identity


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise StorageUnavailableError(message="The catalog is still starting up. Please retry shortly.")
    return services


async def get_identity(
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> Identity:
    """Resolve the caller; fails with the resolver's error codes."""
    return await services.identity.resolve(authorization)


async def get_optional_identity(
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> Optional[Identity]:
    return await services.identity.resolve_optional(authorization)


async def get_active_user(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> UserRecord:
    """For mutating routes: the caller must exist and not be suspended."""
    return await services.identity.require_active(identity)


async def require_admin(user: UserRecord = Depends(get_active_user)) -> Identity:
    """Active account with the admin flag, read fresh from the store."""
    if not user.is_admin:
        raise PermissionDeniedError(message="Admin access required")
    return Identity.from_user(user)
