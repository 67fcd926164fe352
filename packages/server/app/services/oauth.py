"""
OAuth flow: authorization URLs, callback handling and account resolution.
"""

from __future__ import annotations

from typing import Optional

import structlog

from monorepo_shared.schemas.auth import AuthResponse, OAuthProvidersResponse, OAuthUrlResponse
from monorepo_shared.schemas.common import OAuthProvider
from monorepo_shared.schemas.users import LinkedAccount, User

from app.core import typeid
from app.core.auth import AuthenticatedUser, assert_resource_owner
from app.core.container import ServiceContainer
from app.core.errors import ConflictError, DuplicateKeyError, NotConfiguredError, NotFoundError
from app.core.oauth import OAuthClient, OAuthProfile, generate_code_verifier, generate_state
from app.core.typeid import IdKind
from app.repositories.base import NewUser, OAuthAccountData
from app.services.auth import ClientInfo, start_session

log = structlog.get_logger()


def providers_status(container: ServiceContainer) -> OAuthProvidersResponse:
    settings = container.settings
    return OAuthProvidersResponse(
        google=settings.is_oauth_configured("google"),
        facebook=settings.is_oauth_configured("facebook"),
        twitter=settings.is_oauth_configured("twitter"),
    )


def get_client(container: ServiceContainer, provider: OAuthProvider) -> OAuthClient:
    client = container.oauth_client(provider)
    if client is None:
        raise NotConfiguredError(f"{provider.value.capitalize()} OAuth is not configured")
    return client


def begin_authorization(
    container: ServiceContainer, provider: OAuthProvider
) -> tuple[OAuthUrlResponse, Optional[str]]:
    """Build the provider URL. Returns it with the PKCE verifier, if the provider uses one."""
    client = get_client(container, provider)
    state = generate_state()
    code_verifier = generate_code_verifier() if client.uses_pkce else None
    url = client.authorization_url(state, code_verifier)
    return OAuthUrlResponse(url=url, state=state), code_verifier


async def complete_authorization(
    container: ServiceContainer,
    provider: OAuthProvider,
    code: str,
    code_verifier: Optional[str],
    client_info: ClientInfo,
) -> AuthResponse:
    """Exchange the code, resolve the local user and start a session."""
    client = get_client(container, provider)
    tokens = await client.exchange_code(code, code_verifier)
    profile = await client.fetch_profile(tokens)
    user = await resolve_account(container, profile)
    log.info("oauth.login_success", provider=provider.value, user_id=user.id)
    return await start_session(container, user, client_info)


# ---------------------------------------------------------------------------
# Account resolution
# ---------------------------------------------------------------------------

def _link_data(profile: OAuthProfile) -> OAuthAccountData:
    return OAuthAccountData(
        provider=profile.provider,
        provider_account_id=profile.provider_account_id,
        access_token=profile.tokens.access_token,
        refresh_token=profile.tokens.refresh_token,
        expires_at=profile.tokens.expires_at,
    )


async def resolve_account(container: ServiceContainer, profile: OAuthProfile) -> User:
    """Find or create the local user behind a provider profile.

    1. Known provider account: refresh its stored tokens.
    2. Known email: link the provider account and mark the email verified.
       Placeholder emails are never matched against existing users.
    3. Otherwise: create the user and its first link together.
    """
    users = container.repositories.users
    oauth_accounts = container.repositories.oauth_accounts
    link = _link_data(profile)

    existing = await oauth_accounts.find_by_provider_and_account_id(
        profile.provider, profile.provider_account_id
    )
    if existing is not None:
        await oauth_accounts.upsert(existing.user_id, link)
        user_id = existing.user_id
    else:
        by_email = None if profile.email_is_placeholder else await users.find_by_email(profile.email)
        if by_email is not None:
            try:
                await oauth_accounts.upsert(by_email.id, link)
            except DuplicateKeyError as exc:
                raise ConflictError(
                    f"This account already has a different {profile.provider.value} login linked"
                ) from exc
            if not by_email.email_verified:
                await users.update(by_email.id, email_verified=True)
            log.info("oauth.account_linked", provider=profile.provider.value, user_id=by_email.id)
            user_id = by_email.id
        else:
            user_id = await _create_oauth_user(container, profile, link)

    user = await users.find_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _create_oauth_user(container: ServiceContainer, profile: OAuthProfile, link: OAuthAccountData) -> str:
    new_user = NewUser(
        email=profile.email,
        name=profile.name,
        email_verified=not profile.email_is_placeholder,
        avatar_url=profile.avatar_url,
    )
    try:
        user = await container.repositories.users.create(new_user, oauth_account=link)
    except DuplicateKeyError:
        # A concurrent callback for the same provider account got there first
        winner = await container.repositories.oauth_accounts.find_by_provider_and_account_id(
            profile.provider, profile.provider_account_id
        )
        if winner is None:
            raise
        return winner.user_id

    log.info("user.registered", user_id=user.id, provider=profile.provider.value)
    return user.id


# ---------------------------------------------------------------------------
# Linked accounts
# ---------------------------------------------------------------------------

async def list_linked_accounts(container: ServiceContainer, auth: AuthenticatedUser) -> list[LinkedAccount]:
    accounts = await container.repositories.oauth_accounts.find_all_by_user_id(auth.user_id)
    return [LinkedAccount.model_validate(a.model_dump()) for a in accounts]


async def unlink_account(container: ServiceContainer, auth: AuthenticatedUser, account_id: str) -> None:
    if not typeid.is_valid(IdKind.OAUTH_ACCOUNT, account_id):
        raise NotFoundError("Linked account not found")

    repos = container.repositories
    account = await repos.oauth_accounts.find_by_id(account_id)
    if account is None:
        raise NotFoundError("Linked account not found")
    assert_resource_owner(account.user_id, auth)

    remaining = await repos.oauth_accounts.find_all_by_user_id(account.user_id)
    if len(remaining) <= 1 and not await repos.users.has_password(account.user_id):
        raise ConflictError("Cannot unlink the only sign-in method for this account")

    await repos.oauth_accounts.delete(account_id)
    log.info("oauth.account_unlinked", provider=account.provider.value, user_id=account.user_id, by=auth.user_id)
