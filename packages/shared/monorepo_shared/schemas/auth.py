"""Authentication request/response schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from .common import CamelModel, TokenType, UserRole
from .users import User


class RegisterRequest(CamelModel):
    # Presence is checked by the server so a missing field yields one
    # itemised 400 rather than a schema error per field.
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = None
    name: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = None


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str
    expires_in: int


class AuthResponse(TokenPair):
    user: User


class RefreshTokenResponse(CamelModel):
    access_token: str
    expires_in: int


class OAuthUrlResponse(CamelModel):
    url: str
    state: str


class OAuthProvidersResponse(CamelModel):
    google: bool
    facebook: bool
    twitter: bool


class TokenClaims(CamelModel):
    """Verified JWT payload."""
    sub: str
    email: str
    role: UserRole
    type: TokenType
    iat: int
    exp: int
