"""
NoteMitra Backend — Auth Route Handlers
=========================================

What:  Registration, login and the caller's own profile.
Who:   Called by the frontend sign-in and profile pages.
"""

import logging

from fastapi import APIRouter, Depends

from notemitra.models.records import UserRecord
from notemitra.routes.dependencies import get_active_user, get_identity, get_services
from notemitra.schemas.common import ErrorResponse
from notemitra.schemas.user import (
    AuthResponse,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    UserResponse,
)
from notemitra.services import Services
from notemitra.services.identity import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    responses={409: {"description": "Email already registered", "model": ErrorResponse}},
    summary="Create an account",
)
async def register(
    body: RegisterRequest,
    services: Services = Depends(get_services),
) -> AuthResponse:
    user, token = await services.users.register(
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
        branch=body.branch,
        section=body.section,
        roll_no=body.roll_no,
    )
    return AuthResponse(access_token=token, user=UserResponse.from_record(user))


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={
        401: {"description": "Invalid credentials", "model": ErrorResponse},
        403: {"description": "Account suspended", "model": ErrorResponse},
    },
    summary="Exchange email and password for a bearer token",
)
async def login(
    body: LoginRequest,
    services: Services = Depends(get_services),
) -> AuthResponse:
    user, token = await services.users.login(body.email, body.password)
    return AuthResponse(access_token=token, user=UserResponse.from_record(user))


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"description": "Missing or invalid token", "model": ErrorResponse}},
    summary="The caller's profile",
)
async def me(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> UserResponse:
    user = await services.users.get_profile(identity.user_id)
    return UserResponse.from_record(user)


@router.put(
    "/profile",
    response_model=UserResponse,
    responses={
        400: {"description": "Invalid name", "model": ErrorResponse},
        401: {"description": "Missing or invalid token", "model": ErrorResponse},
    },
    summary="Update name, branch, section or roll number",
)
async def update_profile(
    body: ProfileUpdateRequest,
    user: UserRecord = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> UserResponse:
    updated = await services.users.update_profile(user.id, body.model_dump(exclude_unset=True))
    return UserResponse.from_record(updated)
