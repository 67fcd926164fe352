"""
Auth flow: register, login, refresh, logout, profile and session management.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from starlette.concurrency import run_in_threadpool

from monorepo_shared.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshTokenRequest,
    RefreshTokenResponse,
    RegisterRequest,
)
from monorepo_shared.schemas.users import ProfileUpdateRequest, Session, User
from monorepo_shared.utils import normalize_email, validate_email

from app.core import typeid
from app.core.auth import AuthenticatedUser
from app.core.container import ServiceContainer
from app.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DuplicateKeyError,
    NotFoundError,
    ValidationError,
)
from app.core.passwords import PasswordHashError, is_common_password, validate_password_strength
from app.core.tokens import InvalidTokenError, TokenPayload
from app.core.typeid import IdKind
from app.repositories.base import NewSession, NewUser

log = structlog.get_logger()

SESSION_TTL = timedelta(days=7)


@dataclass(frozen=True)
class ClientInfo:
    """Who is logging in, as far as the request headers say."""
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def token_payload(user: User) -> TokenPayload:
    return TokenPayload(user_id=user.id, email=user.email, role=user.role.value)


async def start_session(container: ServiceContainer, user: User, client: ClientInfo) -> AuthResponse:
    """Issue a token pair for ``user`` and record the session it starts."""
    tokens = container.tokens.issue_pair(token_payload(user))
    await container.repositories.sessions.create(
        NewSession(
            user_id=user.id,
            expires_at=datetime.now(timezone.utc) + SESSION_TTL,
            user_agent=client.user_agent,
            ip_address=client.ip_address,
        )
    )
    return AuthResponse(
        user=user,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
    )


async def _verify_password(container: ServiceContainer, password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        await run_in_threadpool(container.passwords.verify_dummy, password)
        return False
    try:
        return await run_in_threadpool(container.passwords.verify, password, hashed)
    except PasswordHashError:
        log.warning("auth.password_hash_unusable")
        return False


# ---------------------------------------------------------------------------
# Register / login / refresh
# ---------------------------------------------------------------------------

async def register(container: ServiceContainer, body: RegisterRequest, client: ClientInfo) -> AuthResponse:
    if not body.email or not body.password or not body.name or not body.name.strip():
        raise ValidationError("Email, password, and name are required")

    email = normalize_email(body.email)
    if not validate_email(email):
        raise ValidationError("Invalid email format")

    strength = validate_password_strength(body.password)
    if not strength.valid:
        raise ValidationError(
            "; ".join(strength.errors),
            code="Password does not meet requirements",
            details=strength.errors,
        )

    if is_common_password(body.password):
        raise ValidationError("Password is too common. Please choose a stronger password.")

    users = container.repositories.users
    if await users.exists_by_email(email):
        raise ConflictError("An account with this email already exists")

    password_hash = await run_in_threadpool(container.passwords.hash, body.password)
    try:
        user = await users.create(NewUser(email=email, name=body.name.strip(), password_hash=password_hash))
    except DuplicateKeyError as exc:
        # Lost a race with a concurrent registration for the same email
        raise ConflictError("An account with this email already exists") from exc

    log.info("user.registered", user_id=user.id)
    return await start_session(container, user, client)


async def login(container: ServiceContainer, body: LoginRequest, client: ClientInfo) -> AuthResponse:
    if not body.email or not body.password:
        raise ValidationError("Email and password are required")

    found = await container.repositories.users.find_by_email_with_password_hash(body.email)
    user, password_hash = found if found else (None, None)

    if not await _verify_password(container, body.password, password_hash) or user is None:
        log.warning("auth.login_failure", reason="bad_credentials" if user else "unknown_email")
        raise AuthenticationError("Invalid email or password")

    log.info("auth.login_success", user_id=user.id)
    return await start_session(container, user, client)


async def refresh(container: ServiceContainer, body: RefreshTokenRequest) -> RefreshTokenResponse:
    if not body.refresh_token:
        raise ValidationError("Refresh token is required")

    try:
        claims = container.tokens.verify_refresh(body.refresh_token)
    except InvalidTokenError as exc:
        raise AuthenticationError("Invalid or expired refresh token") from exc

    user = await container.repositories.users.find_by_id(claims.sub)
    if user is None:
        raise NotFoundError("User not found")

    # TODO: tie refresh tokens to a session id so that logout-all and session
    # revocation also invalidate them; today a refresh token stays usable until
    # it expires even when the user has no session left. Rotation with reuse
    # detection needs the same session id.
    tokens = container.tokens.issue_pair(token_payload(user))
    return RefreshTokenResponse(access_token=tokens.access_token, expires_in=tokens.expires_in)


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------

async def logout(container: ServiceContainer, auth: AuthenticatedUser) -> int:
    """End every session of the caller (all devices)."""
    removed = await container.repositories.sessions.delete_all_by_user_id(auth.user_id)
    log.info("auth.logout", user_id=auth.user_id, sessions_removed=removed)
    return removed


async def get_me(container: ServiceContainer, auth: AuthenticatedUser) -> User:
    user = await container.repositories.users.find_by_id(auth.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def update_me(container: ServiceContainer, auth: AuthenticatedUser, body: ProfileUpdateRequest) -> User:
    fields = body.model_dump(exclude_unset=True)
    if "name" in fields:
        if fields["name"] is None or not fields["name"].strip():
            raise ValidationError("Name cannot be empty")
        fields["name"] = fields["name"].strip()
    if not fields:
        return await get_me(container, auth)

    user = await container.repositories.users.update(auth.user_id, **fields)
    if user is None:
        raise NotFoundError("User not found")
    log.info("user.profile_updated", user_id=user.id, fields=sorted(fields))
    return user


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

async def list_sessions(container: ServiceContainer, auth: AuthenticatedUser) -> list[Session]:
    return await container.repositories.sessions.find_by_user_id(auth.user_id)


async def revoke_session(container: ServiceContainer, auth: AuthenticatedUser, session_id: str) -> None:
    if not typeid.is_valid(IdKind.SESSION, session_id):
        raise NotFoundError("Session not found")

    sessions = container.repositories.sessions
    session = await sessions.find_by_id(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    if session.user_id != auth.user_id and not auth.is_admin:
        raise AuthorizationError("Cannot revoke another user's session")

    await sessions.delete(session_id)
    log.info("auth.session_revoked", session_id=session_id, user_id=session.user_id, by=auth.user_id)
