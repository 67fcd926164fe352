"""
Authentication endpoints.

POST   /api/auth/register        Create an account with email/password
POST   /api/auth/login           Email/password login
POST   /api/auth/refresh         New access token from a refresh token
POST   /api/auth/logout          End every session of the caller
GET    /api/auth/me              Current user
PATCH  /api/auth/me              Update own profile
GET    /api/auth/sessions        Caller's sessions
DELETE /api/auth/sessions/{id}   Revoke one session
"""

from __future__ import annotations

import ipaddress

from fastapi import APIRouter, Depends, Request

from monorepo_shared.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RegisterRequest,
)
from monorepo_shared.schemas.common import APIResponse
from monorepo_shared.schemas.users import ProfileUpdateRequest, Session, User

from app.core.auth import AuthenticatedUser, get_current_user
from app.core.container import ServiceContainer, get_container
from app.services import auth as auth_service
from app.services.auth import ClientInfo

router = APIRouter()

# Longest textual IPv6 address
MAX_IP_LENGTH = 45


def client_info(request: Request) -> ClientInfo:
    """User agent and client IP, preferring proxy headers.

    A header value that is not an IP address is dropped rather than stored.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.headers.get("X-Real-IP") or (request.client.host if request.client else None)
    if ip:
        try:
            ip = str(ipaddress.ip_address(ip))
        except ValueError:
            ip = None
    # An IPv6 zone suffix can push an otherwise valid address past the column
    if ip and len(ip) > MAX_IP_LENGTH:
        ip = None
    return ClientInfo(user_agent=request.headers.get("User-Agent"), ip_address=ip or None)


# ---------------------------------------------------------------------------
# Email/Password
# ---------------------------------------------------------------------------

@router.post(
    "/register",
    response_model=APIResponse[AuthResponse],
    response_model_exclude_none=True,
    status_code=201,
)
async def register(
    body: RegisterRequest,
    client: ClientInfo = Depends(client_info),
    container: ServiceContainer = Depends(get_container),
):
    """Register a new user with email/password."""
    result = await auth_service.register(container, body, client)
    return APIResponse(data=result, message="Account created successfully")


@router.post("/login", response_model=APIResponse[AuthResponse], response_model_exclude_none=True)
async def login(
    body: LoginRequest,
    client: ClientInfo = Depends(client_info),
    container: ServiceContainer = Depends(get_container),
):
    """Authenticate with email/password and receive a token pair."""
    result = await auth_service.login(container, body, client)
    return APIResponse(data=result, message="Login successful")


@router.post("/refresh", response_model=APIResponse[RefreshTokenResponse], response_model_exclude_none=True)
async def refresh(
    body: RefreshTokenRequest,
    container: ServiceContainer = Depends(get_container),
):
    result = await auth_service.refresh(container, body)
    return APIResponse(data=result)


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------

@router.post("/logout", response_model=APIResponse[None], response_model_exclude_none=True)
async def logout(
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """Log out everywhere: all of the caller's sessions are deleted."""
    await auth_service.logout(container, auth)
    return APIResponse(message="Logged out successfully")


@router.get("/me", response_model=APIResponse[User], response_model_exclude_none=True)
async def me(
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    user = await auth_service.get_me(container, auth)
    return APIResponse(data=user)


@router.patch("/me", response_model=APIResponse[User], response_model_exclude_none=True)
async def update_me(
    body: ProfileUpdateRequest,
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    user = await auth_service.update_me(container, auth, body)
    return APIResponse(data=user, message="Profile updated")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@router.get("/sessions", response_model=APIResponse[list[Session]], response_model_exclude_none=True)
async def list_sessions(
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    sessions = await auth_service.list_sessions(container, auth)
    return APIResponse(data=sessions)


@router.delete("/sessions/{session_id}", response_model=APIResponse[None], response_model_exclude_none=True)
async def revoke_session(
    session_id: str,
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """Revoke one session. Admins may revoke anyone's."""
    await auth_service.revoke_session(container, auth, session_id)
    return APIResponse(message="Session revoked")
