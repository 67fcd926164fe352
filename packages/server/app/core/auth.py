"""
Access control.

FastAPI dependencies that authenticate the bearer access token and gate on
role, plus the ownership rule route handlers apply once they have loaded a
resource:

- ``get_current_user``: 401 unless a valid access token is presented.
- ``get_optional_user``: the caller's claims, or None; never fails.
- ``require_role(*roles)``: 403 unless the caller holds one of ``roles``.
- ``assert_resource_owner``: 403 unless the caller owns it or is an admin.

Verified claims are also attached to ``request.state.user``.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from monorepo_shared.schemas.auth import TokenClaims
from monorepo_shared.schemas.common import UserRole

from app.core.container import ServiceContainer, get_container
from app.core.errors import AuthenticationError, AuthorizationError
from app.core.tokens import InvalidTokenError, extract_bearer

log = structlog.get_logger()

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)


class AuthenticatedUser:
    """Claims of the caller's verified access token."""

    def __init__(self, claims: TokenClaims):
        self.claims = claims
        self.user_id = claims.sub
        self.email = claims.email
        self.role = claims.role

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

def _authenticate(container: ServiceContainer, header: Optional[str]) -> AuthenticatedUser:
    token = extract_bearer(header)
    if token is None:
        raise AuthenticationError("Authentication required")
    try:
        claims = container.tokens.verify_access(token)
    except InvalidTokenError as exc:
        raise AuthenticationError(f"Authentication failed: {exc}") from exc
    return AuthenticatedUser(claims)


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
    container: ServiceContainer = Depends(get_container),
) -> AuthenticatedUser:
    """Require a valid access token."""
    auth = _authenticate(container, authorization)
    request.state.user = auth
    return auth


async def get_optional_user(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
    container: ServiceContainer = Depends(get_container),
) -> Optional[AuthenticatedUser]:
    """The caller if a valid access token is presented, else None."""
    if not authorization:
        return None
    try:
        auth = _authenticate(container, authorization)
    except AuthenticationError:
        return None
    request.state.user = auth
    return auth


# ---------------------------------------------------------------------------
# Authorization dependencies (role checks)
# ---------------------------------------------------------------------------

def require_role(*roles: UserRole):
    """Build a dependency admitting only callers whose role is in ``roles``."""
    allowed = frozenset(UserRole(r) for r in roles)

    async def _require_role(
        auth: AuthenticatedUser = Depends(get_current_user),
    ) -> AuthenticatedUser:
        if auth.role not in allowed:
            log.info("auth.role_denied", user_id=auth.user_id, role=auth.role.value)
            raise AuthorizationError(
                f"Access denied. Required role: {' or '.join(sorted(r.value for r in allowed))}"
            )
        return auth

    return _require_role


require_admin = require_role(UserRole.ADMIN)
require_moderator = require_role(UserRole.ADMIN, UserRole.MODERATOR)


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------

def is_resource_owner(owner_id: str, auth: AuthenticatedUser) -> bool:
    return auth.user_id == owner_id or auth.is_admin


def assert_resource_owner(owner_id: str, auth: AuthenticatedUser) -> None:
    if not is_resource_owner(owner_id, auth):
        raise AuthorizationError("Access denied: you do not own this resource")
