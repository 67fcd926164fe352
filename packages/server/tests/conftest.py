"""
Shared fixtures: an app wired to in-memory storage and fake OAuth providers.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings
from app.main import create_app
from app.repositories.memory import create_memory_repositories

TEST_JWT_SECRET = "test-secret-key-that-is-definitely-32-bytes-plus"
FRONTEND_URL = "http://frontend.test"
STRONG_PASSWORD = "Password123"


def make_settings(**overrides: Any) -> Settings:
    values = dict(
        _env_file=None,
        app_env="test",
        jwt_secret=TEST_JWT_SECRET,
        bcrypt_rounds=4,
        frontend_url=FRONTEND_URL,
        google_client_id="google-id",
        google_client_secret="google-secret",
        facebook_client_id="facebook-id",
        facebook_client_secret="facebook-secret",
        twitter_client_id="twitter-id",
        twitter_client_secret="twitter-secret",
        log_level="warning",
    )
    values.update(overrides)
    return Settings(**values)


class FakeProviders:
    """httpx.MockTransport handler standing in for Google, Facebook and Twitter."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.google_profile: dict = {
            "id": "google-123",
            "email": "g.user@gmail.com",
            "name": "Google User",
            "picture": "https://lh3.googleusercontent.com/a/pic",
        }
        self.facebook_profile: dict = {
            "id": "fb-456",
            "email": "fb.user@example.com",
            "name": "Facebook User",
            "picture": {"data": {"url": "https://graph.facebook.com/pic.jpg"}},
        }
        self.twitter_profile: dict = {
            "data": {
                "id": "tw-789",
                "name": "Tweety",
                "username": "tweety",
                "profile_image_url": "https://pbs.twimg.com/profile_images/1/abc_normal.jpg",
            }
        }

    def _token(self) -> httpx.Response:
        if self.token_status != 200:
            return httpx.Response(self.token_status, json={"error": "invalid_grant"})
        return httpx.Response(
            200,
            json={
                "access_token": "provider-access-token",
                "refresh_token": "provider-refresh-token",
                "expires_in": 3600,
                "token_type": "Bearer",
            },
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path
        if (host, path) in {
            ("oauth2.googleapis.com", "/token"),
            ("graph.facebook.com", "/v16.0/oauth/access_token"),
            ("api.twitter.com", "/2/oauth2/token"),
        }:
            return self._token()
        if (host, path) == ("www.googleapis.com", "/oauth2/v2/userinfo"):
            return httpx.Response(200, json=self.google_profile)
        if (host, path) == ("graph.facebook.com", "/me"):
            return httpx.Response(200, json=self.facebook_profile)
        if (host, path) == ("api.twitter.com", "/2/users/me"):
            return httpx.Response(200, json=self.twitter_profile)
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def repositories():
    return create_memory_repositories()


@pytest.fixture
def providers() -> FakeProviders:
    return FakeProviders()


@pytest.fixture
async def app(settings, repositories, providers):
    http = httpx.AsyncClient(transport=httpx.MockTransport(providers))
    application = create_app(settings, repositories=repositories, http_client=http)
    yield application
    await application.state.container.aclose()


@pytest.fixture
def container(app):
    return app.state.container


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def register(
    client: AsyncClient,
    email: str = "a@b.com",
    password: str = STRONG_PASSWORD,
    name: str = "A",
    headers: Optional[dict] = None,
) -> dict:
    resp = await client.post(
        "/api/auth/register",
        json={"email": email, "password": password, "name": name},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def login(client: AsyncClient, email: str, password: str = STRONG_PASSWORD) -> dict:
    resp = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


async def make_admin(client: AsyncClient, container, email: str = "admin@example.com") -> dict:
    """Register a user, promote them, and log in again so the token says admin."""
    data = await register(client, email=email, name="Admin")
    await container.repositories.users.update(data["user"]["id"], role="admin")
    return await login(client, email)
