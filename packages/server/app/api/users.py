"""
User endpoints.

GET    /api/users/{userId}        Public profile
PATCH  /api/users/{userId}/role   Change role (admin only)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from monorepo_shared.schemas.common import APIResponse
from monorepo_shared.schemas.users import PublicUser, RoleUpdateRequest, User

from app.core.auth import AuthenticatedUser, get_current_user, require_admin
from app.core.container import ServiceContainer, get_container
from app.services import users as user_service

router = APIRouter()


@router.get("/{user_id}", response_model=APIResponse[PublicUser], response_model_exclude_none=True)
async def get_user(
    user_id: str,
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    profile = await user_service.get_public_profile(container, user_id)
    return APIResponse(data=profile)


@router.patch("/{user_id}/role", response_model=APIResponse[User], response_model_exclude_none=True)
async def change_role(
    user_id: str,
    body: RoleUpdateRequest,
    auth: AuthenticatedUser = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
):
    """Change a user's role (Admin only)."""
    user = await user_service.change_role(container, auth, user_id, body.role)
    return APIResponse(data=user, message="Role updated")
