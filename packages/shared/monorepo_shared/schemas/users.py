"""User, session and OAuth account schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from .common import CamelModel, OAuthProvider, UserRole


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

class User(CamelModel):
    """An authenticated user. Never carries the password hash."""
    id: str
    email: str
    name: str
    role: UserRole = UserRole.USER
    email_verified: bool = False
    avatar_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PublicUser(CamelModel):
    """Profile fields safe to show to other users."""
    id: str
    name: str
    avatar_url: Optional[str] = None
    created_at: datetime


class Session(CamelModel):
    """One refresh-capable login line (one device)."""
    id: str
    user_id: str
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    expires_at: datetime
    created_at: datetime


class OAuthAccount(CamelModel):
    """A provider account linked to a user, including the provider's tokens."""
    id: str
    user_id: str
    provider: OAuthProvider
    provider_account_id: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class LinkedAccount(CamelModel):
    """OAuth link as exposed over the API (no provider tokens)."""
    id: str
    provider: OAuthProvider
    provider_account_id: str
    created_at: datetime


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class ProfileUpdateRequest(CamelModel):
    """Update the caller's own profile."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    avatar_url: Optional[str] = None


class RoleUpdateRequest(CamelModel):
    """Change a user's role (admin only)."""
    role: UserRole
