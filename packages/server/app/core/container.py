"""
Process-wide service objects, built once by create_app and stored on
``app.state.container``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from starlette.requests import Request

from monorepo_shared.schemas.common import OAuthProvider

from app.core.config import Settings
from app.core.oauth import OAuthClient, build_oauth_clients
from app.core.passwords import PasswordHasher
from app.core.tokens import TokenService
from app.repositories.base import Repositories


@dataclass
class ServiceContainer:
    settings: Settings
    repositories: Repositories
    tokens: TokenService
    passwords: PasswordHasher
    http: httpx.AsyncClient
    oauth_clients: dict[OAuthProvider, OAuthClient]

    def oauth_client(self, provider: OAuthProvider) -> Optional[OAuthClient]:
        return self.oauth_clients.get(provider)

    async def aclose(self) -> None:
        await self.http.aclose()
        await self.repositories.aclose()


def build_repositories(settings: Settings) -> Repositories:
    if settings.storage_backend == "sql":
        from app.repositories.sql import create_sql_repositories_from_settings

        return create_sql_repositories_from_settings(settings)

    from app.repositories.memory import create_memory_repositories

    return create_memory_repositories()


def build_container(
    settings: Settings,
    *,
    repositories: Optional[Repositories] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ServiceContainer:
    http = http_client or httpx.AsyncClient(
        timeout=httpx.Timeout(settings.oauth_request_timeout_seconds),
    )
    return ServiceContainer(
        settings=settings,
        repositories=repositories or build_repositories(settings),
        tokens=TokenService(settings.jwt_secret),
        passwords=PasswordHasher(rounds=settings.bcrypt_rounds),
        http=http,
        oauth_clients=build_oauth_clients(settings, http),
    )


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the app's container."""
    return request.app.state.container
