"""
OAuth 2.0 authorization-code clients for Google, Facebook and Twitter.

Each client builds its provider's authorization URL, exchanges a code for
tokens and fetches the user's profile, normalised to OAuthProfile. All
network calls go through one shared httpx.AsyncClient whose timeout comes
from configuration.
"""

from __future__ import annotations

import abc
import base64
import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar, Optional
from urllib.parse import urlencode

import httpx
import structlog

from monorepo_shared.schemas.common import OAuthProvider

from app.core.config import Settings

log = structlog.get_logger()

TWITTER_PLACEHOLDER_DOMAIN = "twitter.placeholder"


class OAuthProviderError(Exception):
    """Code exchange or profile fetch failed."""


@dataclass(frozen=True)
class OAuthTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class OAuthProfile:
    provider: OAuthProvider
    provider_account_id: str
    email: str
    name: str
    avatar_url: Optional[str]
    tokens: OAuthTokens
    # True when the provider gave no email and one was synthesised
    email_is_placeholder: bool = False


# ---------------------------------------------------------------------------
# State / PKCE
# ---------------------------------------------------------------------------

def generate_state() -> str:
    return secrets.token_urlsafe(32)


def generate_code_verifier() -> str:
    """RFC 7636 verifier: 43-128 unreserved characters."""
    return secrets.token_urlsafe(48)


def code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

class OAuthClient(abc.ABC):
    provider: ClassVar[OAuthProvider]
    authorize_endpoint: ClassVar[str]
    token_endpoint: ClassVar[str]
    scopes: ClassVar[tuple[str, ...]]
    uses_pkce: ClassVar[bool] = False

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, http: httpx.AsyncClient):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._http = http

    def authorization_url(self, state: str, code_verifier: Optional[str] = None) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
        }
        if self.uses_pkce:
            if code_verifier is None:
                raise ValueError(f"{self.provider.value} requires a PKCE code verifier")
            params["code_challenge"] = code_challenge(code_verifier)
            params["code_challenge_method"] = "S256"
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    # -- HTTP helpers ---------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self._http.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            raise OAuthProviderError(
                f"{self.provider.value} returned {exc.response.status_code} for {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise OAuthProviderError(f"{self.provider.value} request failed: {exc!r}") from exc
        except ValueError as exc:
            raise OAuthProviderError(f"{self.provider.value} returned invalid JSON") from exc

    def _token_request_data(self, code: str, code_verifier: Optional[str]) -> dict[str, str]:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.uses_pkce:
            if code_verifier is None:
                raise OAuthProviderError("Missing PKCE code verifier")
            data["code_verifier"] = code_verifier
        return data

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> OAuthTokens:
        body = await self._request(
            "POST",
            self.token_endpoint,
            data=self._token_request_data(code, code_verifier),
            headers={"Accept": "application/json"},
        )
        return _parse_tokens(body)

    @abc.abstractmethod
    async def fetch_profile(self, tokens: OAuthTokens) -> OAuthProfile: ...


def _parse_tokens(body: dict[str, Any]) -> OAuthTokens:
    access_token = body.get("access_token")
    if not access_token:
        raise OAuthProviderError("Token response has no access_token")
    expires_at = None
    if body.get("expires_in"):
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(body["expires_in"]))
    return OAuthTokens(
        access_token=access_token,
        refresh_token=body.get("refresh_token"),
        expires_at=expires_at,
    )


class GoogleOAuthClient(OAuthClient):
    provider = OAuthProvider.GOOGLE
    authorize_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    userinfo_endpoint = "https://www.googleapis.com/oauth2/v2/userinfo"
    scopes = ("openid", "email", "profile")
    uses_pkce = True

    async def fetch_profile(self, tokens: OAuthTokens) -> OAuthProfile:
        info = await self._request(
            "GET",
            self.userinfo_endpoint,
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        if not info.get("id") or not info.get("email"):
            raise OAuthProviderError("Google profile is missing id or email")
        return OAuthProfile(
            provider=self.provider,
            provider_account_id=str(info["id"]),
            email=info["email"],
            name=info.get("name") or info["email"].split("@")[0],
            avatar_url=info.get("picture"),
            tokens=tokens,
        )


class FacebookOAuthClient(OAuthClient):
    provider = OAuthProvider.FACEBOOK
    authorize_endpoint = "https://www.facebook.com/v16.0/dialog/oauth"
    token_endpoint = "https://graph.facebook.com/v16.0/oauth/access_token"
    profile_endpoint = "https://graph.facebook.com/me"
    scopes = ("email", "public_profile")

    async def fetch_profile(self, tokens: OAuthTokens) -> OAuthProfile:
        info = await self._request(
            "GET",
            self.profile_endpoint,
            params={
                "access_token": tokens.access_token,
                "fields": "id,name,email,picture.width(200)",
            },
        )
        if not info.get("id"):
            raise OAuthProviderError("Facebook profile is missing id")
        if not info.get("email"):
            raise OAuthProviderError("Email not provided by Facebook")
        picture = (info.get("picture") or {}).get("data") or {}
        return OAuthProfile(
            provider=self.provider,
            provider_account_id=str(info["id"]),
            email=info["email"],
            name=info.get("name") or info["email"].split("@")[0],
            avatar_url=picture.get("url"),
            tokens=tokens,
        )


class TwitterOAuthClient(OAuthClient):
    provider = OAuthProvider.TWITTER
    authorize_endpoint = "https://twitter.com/i/oauth2/authorize"
    token_endpoint = "https://api.twitter.com/2/oauth2/token"
    profile_endpoint = "https://api.twitter.com/2/users/me"
    scopes = ("users.read", "tweet.read")
    uses_pkce = True

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> OAuthTokens:
        # Confidential clients authenticate with HTTP Basic, not the form body
        data = self._token_request_data(code, code_verifier)
        data.pop("client_secret")
        body = await self._request(
            "POST",
            self.token_endpoint,
            data=data,
            auth=(self.client_id, self.client_secret),
            headers={"Accept": "application/json"},
        )
        return _parse_tokens(body)

    async def fetch_profile(self, tokens: OAuthTokens) -> OAuthProfile:
        body = await self._request(
            "GET",
            self.profile_endpoint,
            params={"user.fields": "profile_image_url"},
            headers={"Authorization": f"Bearer {tokens.access_token}"},
        )
        info = body.get("data") or {}
        if not info.get("id") or not info.get("username"):
            raise OAuthProviderError("Twitter profile is missing id or username")
        avatar = info.get("profile_image_url")
        if avatar:
            avatar = avatar.replace("_normal", "_400x400")
        return OAuthProfile(
            provider=self.provider,
            provider_account_id=str(info["id"]),
            email=f"{info['username']}@{TWITTER_PLACEHOLDER_DOMAIN}",
            name=info.get("name") or info["username"],
            avatar_url=avatar,
            tokens=tokens,
            email_is_placeholder=True,
        )


CLIENT_CLASSES: dict[OAuthProvider, type[OAuthClient]] = {
    OAuthProvider.GOOGLE: GoogleOAuthClient,
    OAuthProvider.FACEBOOK: FacebookOAuthClient,
    OAuthProvider.TWITTER: TwitterOAuthClient,
}


def build_oauth_clients(settings: Settings, http: httpx.AsyncClient) -> dict[OAuthProvider, OAuthClient]:
    """Instantiate a client for every provider with both id and secret set."""
    clients: dict[OAuthProvider, OAuthClient] = {}
    for provider, cls in CLIENT_CLASSES.items():
        if not settings.is_oauth_configured(provider.value):
            continue
        client_id, client_secret, redirect_uri = settings.oauth_credentials(provider.value)
        clients[provider] = cls(client_id, client_secret, redirect_uri, http)
    log.info("oauth.providers_configured", providers=[p.value for p in clients])
    return clients
