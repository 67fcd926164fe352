"""
User management service: role changes and public profiles.
"""

from __future__ import annotations

import structlog

from monorepo_shared.schemas.common import UserRole
from monorepo_shared.schemas.users import PublicUser, User

from app.core import typeid
from app.core.auth import AuthenticatedUser
from app.core.container import ServiceContainer
from app.core.errors import NotFoundError, ValidationError
from app.core.typeid import IdKind

log = structlog.get_logger()


async def _get_user(container: ServiceContainer, user_id: str) -> User:
    if not typeid.is_valid(IdKind.USER, user_id):
        raise NotFoundError("User not found")
    user = await container.repositories.users.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def get_public_profile(container: ServiceContainer, user_id: str) -> PublicUser:
    user = await _get_user(container, user_id)
    return PublicUser.model_validate(user.model_dump())


async def change_role(
    container: ServiceContainer, auth: AuthenticatedUser, user_id: str, role: UserRole
) -> User:
    """Set a user's role (admin only). Admins cannot demote themselves."""
    user = await _get_user(container, user_id)
    if user.id == auth.user_id and role != UserRole.ADMIN:
        raise ValidationError("Admins cannot remove their own admin role")
    if user.role == role:
        return user

    updated = await container.repositories.users.update(user_id, role=role)
    if updated is None:
        raise NotFoundError("User not found")
    log.info("user.role_changed", user_id=user_id, old_role=user.role.value, new_role=role.value, by=auth.user_id)
    return updated
