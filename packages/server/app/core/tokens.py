"""
JWT access/refresh tokens.

Both kinds are HS256-signed with one secret and carry fixed ``iss``/``aud``
claims plus a ``type`` claim, so one kind is never accepted as the other.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import ValidationError as PydanticValidationError

from monorepo_shared.schemas.auth import TokenClaims
from monorepo_shared.schemas.common import TokenType

ISSUER = "monorepo-api"
AUDIENCE = "monorepo-client"
ALGORITHM = "HS256"

ACCESS_TOKEN_TTL = timedelta(minutes=15)
REFRESH_TOKEN_TTL = timedelta(days=7)

MIN_SECRET_BYTES = 32


class InvalidTokenError(Exception):
    """Signature, issuer, audience, type or required claims did not check out."""


class ExpiredTokenError(InvalidTokenError):
    """The token was valid but is past its ``exp``."""


class WeakSecretError(ValueError):
    pass


@dataclass(frozen=True)
class TokenPayload:
    user_id: str
    email: str
    role: str


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    expires_in: int


class TokenService:
    """Issues and verifies tokens with a single shared secret."""

    def __init__(
        self,
        secret: str,
        *,
        access_ttl: timedelta = ACCESS_TOKEN_TTL,
        refresh_ttl: timedelta = REFRESH_TOKEN_TTL,
    ):
        if len(secret.encode()) < MIN_SECRET_BYTES:
            raise WeakSecretError(f"JWT secret must be at least {MIN_SECRET_BYTES} bytes")
        self._secret = secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    # -- issuing ------------------------------------------------------------

    def create_token(
        self,
        payload: TokenPayload,
        token_type: TokenType,
        *,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        if expires_delta is None:
            expires_delta = self.access_ttl if token_type == TokenType.ACCESS else self.refresh_ttl
        now = datetime.now(timezone.utc)
        claims = {
            "sub": payload.user_id,
            "email": payload.email,
            "role": payload.role,
            "type": TokenType(token_type).value,
            "iss": ISSUER,
            "aud": AUDIENCE,
            "iat": now,
            "exp": now + expires_delta,
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def create_access_token(self, payload: TokenPayload) -> str:
        return self.create_token(payload, TokenType.ACCESS)

    def create_refresh_token(self, payload: TokenPayload) -> str:
        return self.create_token(payload, TokenType.REFRESH)

    def issue_pair(self, payload: TokenPayload) -> IssuedTokens:
        return IssuedTokens(
            access_token=self.create_access_token(payload),
            refresh_token=self.create_refresh_token(payload),
            expires_in=int(self.access_ttl.total_seconds()),
        )

    # -- verifying ----------------------------------------------------------

    def verify(self, token: str) -> TokenClaims:
        """Decode and check a token of either kind."""
        try:
            decoded = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                issuer=ISSUER,
                audience=AUDIENCE,
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredTokenError("Token has expired") from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError(str(exc)) from exc

        try:
            return TokenClaims.model_validate(decoded)
        except PydanticValidationError as exc:
            raise InvalidTokenError("Token payload is malformed") from exc

    def _verify_type(self, token: str, expected: TokenType) -> TokenClaims:
        claims = self.verify(token)
        if claims.type != expected:
            raise InvalidTokenError(f"Expected {expected.value} token, got {claims.type.value}")
        return claims

    def verify_access(self, token: str) -> TokenClaims:
        return self._verify_type(token, TokenType.ACCESS)

    def verify_refresh(self, token: str) -> TokenClaims:
        return self._verify_type(token, TokenType.REFRESH)


def extract_bearer(header: Optional[str]) -> Optional[str]:
    """Return the token from ``Bearer <token>``, or None for anything else."""
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        return None
    return parts[1]
