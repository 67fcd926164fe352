"""
OAuth endpoints.

GET    /api/auth/oauth/providers        Which providers are configured
GET    /api/auth/oauth/accounts         Caller's linked provider accounts
DELETE /api/auth/oauth/accounts/{id}    Unlink a provider account
GET    /api/auth/oauth/{provider}       Start login: authorization URL + state cookies
GET    /api/auth/callback/{provider}    Provider redirect target; always redirects to the frontend
"""

from __future__ import annotations

import secrets
from typing import Optional
from urllib.parse import urlencode

import structlog
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse

from monorepo_shared.schemas.auth import OAuthProvidersResponse, OAuthUrlResponse
from monorepo_shared.schemas.common import APIResponse, OAuthProvider
from monorepo_shared.schemas.users import LinkedAccount

from app.api.auth import client_info
from app.core.auth import AuthenticatedUser, get_current_user
from app.core.container import ServiceContainer, get_container
from app.core.errors import NotFoundError
from app.services import oauth as oauth_service
from app.services.auth import ClientInfo

log = structlog.get_logger()
router = APIRouter()

STATE_COOKIE = "oauth_state"
VERIFIER_COOKIE = "oauth_code_verifier"
OAUTH_COOKIE_MAX_AGE = 600


def _cookie_kwargs(container: ServiceContainer) -> dict:
    return {
        "httponly": True,
        "secure": container.settings.is_production,
        "samesite": "lax",
        "path": "/",
    }


def _parse_provider(value: str) -> Optional[OAuthProvider]:
    try:
        return OAuthProvider(value)
    except ValueError:
        return None


def _clear_oauth_cookies(response: Response, container: ServiceContainer) -> None:
    for name in (STATE_COOKIE, VERIFIER_COOKIE):
        response.delete_cookie(name, **_cookie_kwargs(container))


# ---------------------------------------------------------------------------
# Providers / linked accounts
# ---------------------------------------------------------------------------

@router.get("/oauth/providers", response_model=APIResponse[OAuthProvidersResponse])
async def list_providers(container: ServiceContainer = Depends(get_container)):
    """Report which providers have both client id and secret configured."""
    return APIResponse(data=oauth_service.providers_status(container))


@router.get(
    "/oauth/accounts",
    response_model=APIResponse[list[LinkedAccount]],
    response_model_exclude_none=True,
)
async def list_linked_accounts(
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    accounts = await oauth_service.list_linked_accounts(container, auth)
    return APIResponse(data=accounts)


@router.delete(
    "/oauth/accounts/{account_id}",
    response_model=APIResponse[None],
    response_model_exclude_none=True,
)
async def unlink_account(
    account_id: str,
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    await oauth_service.unlink_account(container, auth, account_id)
    return APIResponse(message="Account unlinked")


# ---------------------------------------------------------------------------
# Authorization code flow
# ---------------------------------------------------------------------------

@router.get(
    "/oauth/{provider}",
    response_model=APIResponse[OAuthUrlResponse],
    response_model_exclude_none=True,
)
async def authorize(
    provider: str,
    response: Response,
    container: ServiceContainer = Depends(get_container),
):
    """Return the provider's authorization URL and set the state (and PKCE) cookies."""
    parsed = _parse_provider(provider)
    if parsed is None:
        raise NotFoundError(f"Unknown OAuth provider: {provider}")

    result, code_verifier = oauth_service.begin_authorization(container, parsed)

    cookie_kwargs = _cookie_kwargs(container)
    response.set_cookie(STATE_COOKIE, result.state, max_age=OAUTH_COOKIE_MAX_AGE, **cookie_kwargs)
    if code_verifier is not None:
        response.set_cookie(VERIFIER_COOKIE, code_verifier, max_age=OAUTH_COOKIE_MAX_AGE, **cookie_kwargs)

    log.info("oauth.authorize", provider=parsed.value)
    return APIResponse(data=result)


def _error_redirect(container: ServiceContainer, provider: str) -> RedirectResponse:
    query = urlencode({"provider": provider})
    return RedirectResponse(f"{container.settings.frontend_url}/auth/error?{query}", status_code=302)


@router.get("/callback/{provider}")
async def callback(
    provider: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    client: ClientInfo = Depends(client_info),
    container: ServiceContainer = Depends(get_container),
):
    """Finish the login and send the browser back to the frontend.

    The state and verifier cookies are cleared on every outcome. Failures
    become a redirect to the frontend error page, never a JSON error.
    """
    stored_state = request.cookies.get(STATE_COOKIE)
    code_verifier = request.cookies.get(VERIFIER_COOKIE)

    response = await _handle_callback(container, provider, code, state, stored_state, code_verifier, client)
    _clear_oauth_cookies(response, container)
    return response


async def _handle_callback(
    container: ServiceContainer,
    provider: str,
    code: Optional[str],
    state: Optional[str],
    stored_state: Optional[str],
    code_verifier: Optional[str],
    client: ClientInfo,
) -> RedirectResponse:
    parsed = _parse_provider(provider)
    if parsed is None:
        log.warning("oauth.callback_rejected", provider=provider, reason="unknown_provider")
        return _error_redirect(container, provider)

    if not state or not stored_state or not secrets.compare_digest(state.encode(), stored_state.encode()):
        log.warning("oauth.callback_rejected", provider=parsed.value, reason="state_mismatch")
        return _error_redirect(container, parsed.value)
    if not code:
        log.warning("oauth.callback_rejected", provider=parsed.value, reason="missing_code")
        return _error_redirect(container, parsed.value)

    try:
        result = await oauth_service.complete_authorization(container, parsed, code, code_verifier, client)
    except Exception:
        log.exception("oauth.callback_failed", provider=parsed.value)
        return _error_redirect(container, parsed.value)

    query = urlencode({"accessToken": result.access_token, "refreshToken": result.refresh_token})
    return RedirectResponse(f"{container.settings.frontend_url}/auth/callback?{query}", status_code=302)
