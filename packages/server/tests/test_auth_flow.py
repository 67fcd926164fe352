"""
Email/password flow: register, login, refresh, logout, profile and sessions.
"""

from __future__ import annotations

import statistics
import time

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from app.main import create_app
from app.repositories.memory import create_memory_repositories

from conftest import STRONG_PASSWORD, bearer, login, make_settings, register


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_returns_user_and_tokens(self, client: AsyncClient):
        resp = await client.post(
            "/api/auth/register",
            json={"email": "a@b.com", "password": STRONG_PASSWORD, "name": "A"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Account created successfully"

        data = body["data"]
        assert data["user"]["email"] == "a@b.com"
        assert data["user"]["emailVerified"] is False
        assert data["user"]["role"] == "user"
        assert data["user"]["id"].startswith("user_")
        assert "passwordHash" not in data["user"]
        assert data["accessToken"] and data["refreshToken"]
        assert data["expiresIn"] == 900

    @pytest.mark.asyncio
    async def test_email_is_normalized(self, client: AsyncClient):
        data = await register(client, email="  Mixed.Case@Example.COM ")
        assert data["user"]["email"] == "mixed.case@example.com"

    @pytest.mark.asyncio
    async def test_register_creates_session(self, client: AsyncClient, container):
        data = await register(client, headers={"User-Agent": "pytest-agent", "X-Forwarded-For": "1.2.3.4, 10.0.0.1"})
        sessions = await container.repositories.sessions.find_by_user_id(data["user"]["id"])
        assert len(sessions) == 1
        assert sessions[0].user_agent == "pytest-agent"
        assert sessions[0].ip_address == "1.2.3.4"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "headers, expected",
        [
            ({"X-Forwarded-For": "not-an-ip"}, None),
            ({"X-Forwarded-For": "1" * 300}, None),
            ({"X-Real-IP": "fe80::1%" + "eth" * 20}, None),
            ({"X-Forwarded-For": "2001:DB8::1"}, "2001:db8::1"),
            ({"X-Real-IP": "203.0.113.9"}, "203.0.113.9"),
        ],
    )
    async def test_client_ip_is_stored_only_when_valid(self, client: AsyncClient, container, headers, expected):
        data = await register(client, headers=headers)
        [session] = await container.repositories.sessions.find_by_user_id(data["user"]["id"])
        assert session.ip_address == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload, field",
        [
            ({"email": "a" * 250 + "@b.com", "password": STRONG_PASSWORD, "name": "A"}, "email"),
            ({"email": "a@b.com", "password": STRONG_PASSWORD, "name": "N" * 256}, "name"),
        ],
    )
    async def test_overlong_fields_rejected(self, client: AsyncClient, payload, field):
        resp = await client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400
        body = resp.json()
        assert body["message"] == "Invalid request"
        assert [d["field"] for d in body["details"]] == [field]

    @pytest.mark.asyncio
    async def test_name_at_column_limit_accepted(self, client: AsyncClient):
        data = await register(client, name="N" * 255)
        assert data["user"]["name"] == "N" * 255

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"password": STRONG_PASSWORD, "name": "A"},
            {"email": "a@b.com", "name": "A"},
            {"email": "a@b.com", "password": STRONG_PASSWORD},
            {"email": "a@b.com", "password": STRONG_PASSWORD, "name": "   "},
        ],
    )
    async def test_missing_fields(self, client: AsyncClient, payload):
        resp = await client.post("/api/auth/register", json=payload)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Email, password, and name are required"

    @pytest.mark.asyncio
    async def test_invalid_email(self, client: AsyncClient):
        resp = await client.post(
            "/api/auth/register",
            json={"email": "not-an-email", "password": STRONG_PASSWORD, "name": "A"},
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid email format"

    @pytest.mark.asyncio
    async def test_weak_password_lists_every_failure(self, client: AsyncClient):
        resp = await client.post(
            "/api/auth/register",
            json={"email": "a@b.com", "password": "short", "name": "A"},
        )
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Password does not meet requirements"
        assert "Password must be at least 8 characters" in body["details"]
        assert "Password must contain at least one uppercase letter" in body["details"]
        assert "Password must contain at least one number" in body["details"]
        assert body["message"] == "; ".join(body["details"])

    @pytest.mark.asyncio
    async def test_common_password(self, client: AsyncClient):
        resp = await client.post(
            "/api/auth/register",
            json={"email": "a@b.com", "password": "Welcome123", "name": "A"},
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Password is too common. Please choose a stronger password."

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, client: AsyncClient):
        await register(client, email="a@b.com")
        resp = await client.post(
            "/api/auth/register",
            json={"email": "A@B.com", "password": STRONG_PASSWORD, "name": "Other"},
        )
        assert resp.status_code == 409
        assert resp.json() == {
            "success": False,
            "error": "Conflict",
            "message": "An account with this email already exists",
        }


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_success(self, client: AsyncClient):
        registered = await register(client)
        resp = await client.post("/api/auth/login", json={"email": "A@B.COM", "password": STRONG_PASSWORD})
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Login successful"
        assert body["data"]["user"]["id"] == registered["user"]["id"]

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_look_the_same(self, client: AsyncClient):
        await register(client)
        wrong = await client.post("/api/auth/login", json={"email": "a@b.com", "password": "Wrong12345"})
        unknown = await client.post("/api/auth/login", json={"email": "x@y.com", "password": "Wrong12345"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {
            "success": False,
            "error": "Unauthorized",
            "message": "Invalid email or password",
        }

    @pytest.mark.asyncio
    async def test_missing_credentials(self, client: AsyncClient):
        resp = await client.post("/api/auth/login", json={"email": "a@b.com"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Email and password are required"

    @pytest.mark.asyncio
    async def test_oauth_only_account_cannot_password_login(self, client: AsyncClient, container):
        from app.repositories.base import NewUser

        await container.repositories.users.create(NewUser(email="oauth@example.com", name="O"))
        resp = await client.post("/api/auth/login", json={"email": "oauth@example.com", "password": STRONG_PASSWORD})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_email_takes_as_long_as_wrong_password(self):
        # Real bcrypt cost so the hash dominates the request time
        settings = make_settings(bcrypt_rounds=10)
        app = create_app(settings, repositories=create_memory_repositories(), http_client=httpx.AsyncClient())
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            await register(ac, email="timing@example.com")

            async def timed(email: str) -> float:
                start = time.perf_counter()
                resp = await ac.post("/api/auth/login", json={"email": email, "password": "Wrong12345"})
                assert resp.status_code == 401
                return time.perf_counter() - start

            known = [await timed("timing@example.com") for _ in range(5)]
            unknown = [await timed("nobody@example.com") for _ in range(5)]
        await app.state.container.aclose()

        ratio = statistics.median(unknown) / statistics.median(known)
        assert 0.33 < ratio < 3.0

    @pytest.mark.asyncio
    async def test_first_unknown_email_login_is_not_slower(self):
        settings = make_settings(bcrypt_rounds=10)
        app = create_app(settings, repositories=create_memory_repositories(), http_client=httpx.AsyncClient())
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            await register(ac, email="timing@example.com")

            async def timed(email: str) -> float:
                start = time.perf_counter()
                resp = await ac.post("/api/auth/login", json={"email": email, "password": "Wrong12345"})
                assert resp.status_code == 401
                return time.perf_counter() - start

            first_unknown = await timed("nobody@example.com")
            known = statistics.median([await timed("timing@example.com") for _ in range(3)])
        await app.state.container.aclose()

        # A decoy hash built on demand would make this roughly twice as slow
        assert first_unknown / known < 1.5


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_issues_new_access_token(self, client: AsyncClient, container):
        data = await register(client)
        resp = await client.post("/api/auth/refresh", json={"refreshToken": data["refreshToken"]})
        assert resp.status_code == 200
        refreshed = resp.json()["data"]
        assert refreshed["expiresIn"] == 900
        claims = container.tokens.verify_access(refreshed["accessToken"])
        assert claims.sub == data["user"]["id"]

    @pytest.mark.asyncio
    async def test_refresh_picks_up_role_change(self, client: AsyncClient, container):
        data = await register(client)
        await container.repositories.users.update(data["user"]["id"], role="moderator")
        resp = await client.post("/api/auth/refresh", json={"refreshToken": data["refreshToken"]})
        claims = container.tokens.verify_access(resp.json()["data"]["accessToken"])
        assert claims.role.value == "moderator"

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_refresh_token(self, client: AsyncClient):
        data = await register(client)
        resp = await client.post("/api/auth/refresh", json={"refreshToken": data["accessToken"]})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid or expired refresh token"

    @pytest.mark.asyncio
    async def test_missing_refresh_token(self, client: AsyncClient):
        resp = await client.post("/api/auth/refresh", json={})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Refresh token is required"

    @pytest.mark.asyncio
    async def test_refresh_for_vanished_user(self, client: AsyncClient, container):
        from app.core.tokens import TokenPayload

        pair = container.tokens.issue_pair(
            TokenPayload(user_id="user_01h2xcejqtf2nbrexx3vqjhp41", email="gone@example.com", role="user")
        )
        resp = await client.post("/api/auth/refresh", json={"refreshToken": pair.refresh_token})
        assert resp.status_code == 404
        assert resp.json()["message"] == "User not found"


class TestMe:
    @pytest.mark.asyncio
    async def test_get_me(self, client: AsyncClient):
        data = await register(client, name="Alice")
        resp = await client.get("/api/auth/me", headers=bearer(data["accessToken"]))
        assert resp.status_code == 200
        assert resp.json()["data"]["name"] == "Alice"

    @pytest.mark.asyncio
    async def test_get_me_requires_auth(self, client: AsyncClient):
        resp = await client.get("/api/auth/me")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_update_me(self, client: AsyncClient):
        data = await register(client)
        resp = await client.patch(
            "/api/auth/me",
            json={"name": "  New Name ", "avatarUrl": "https://example.com/a.png"},
            headers=bearer(data["accessToken"]),
        )
        assert resp.status_code == 200
        user = resp.json()["data"]
        assert user["name"] == "New Name"
        assert user["avatarUrl"] == "https://example.com/a.png"

    @pytest.mark.asyncio
    async def test_update_me_cannot_change_role(self, client: AsyncClient):
        data = await register(client)
        resp = await client.patch(
            "/api/auth/me", json={"role": "admin"}, headers=bearer(data["accessToken"])
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["role"] == "user"

    @pytest.mark.asyncio
    async def test_update_me_rejects_blank_name(self, client: AsyncClient):
        data = await register(client)
        resp = await client.patch("/api/auth/me", json={"name": "   "}, headers=bearer(data["accessToken"]))
        assert resp.status_code == 400


class TestSessions:
    @pytest.mark.asyncio
    async def test_each_login_starts_a_session(self, client: AsyncClient):
        data = await register(client)
        await login(client, "a@b.com")
        resp = await client.get("/api/auth/sessions", headers=bearer(data["accessToken"]))
        sessions = resp.json()["data"]
        assert len(sessions) == 2
        assert all(s["id"].startswith("sess_") for s in sessions)

    @pytest.mark.asyncio
    async def test_logout_ends_every_session(self, client: AsyncClient, container):
        data = await register(client)
        await login(client, "a@b.com")
        second = await login(client, "a@b.com")
        user_id = data["user"]["id"]
        assert len(await container.repositories.sessions.find_by_user_id(user_id)) == 3

        resp = await client.post("/api/auth/logout", headers=bearer(second["accessToken"]))
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Logged out successfully"}
        assert await container.repositories.sessions.find_by_user_id(user_id) == []

    @pytest.mark.asyncio
    async def test_revoke_own_session(self, client: AsyncClient, container):
        data = await register(client)
        other = await login(client, "a@b.com")
        sessions = await container.repositories.sessions.find_by_user_id(data["user"]["id"])

        resp = await client.delete(f"/api/auth/sessions/{sessions[0].id}", headers=bearer(other["accessToken"]))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Session revoked"
        remaining = await container.repositories.sessions.find_by_user_id(data["user"]["id"])
        assert [s.id for s in remaining] == [sessions[1].id]

    @pytest.mark.asyncio
    async def test_cannot_revoke_another_users_session(self, client: AsyncClient, container):
        alice = await register(client, email="alice@example.com")
        bob = await register(client, email="bob@example.com")
        [alice_session] = await container.repositories.sessions.find_by_user_id(alice["user"]["id"])

        resp = await client.delete(f"/api/auth/sessions/{alice_session.id}", headers=bearer(bob["accessToken"]))
        assert resp.status_code == 403
        assert resp.json()["message"] == "Cannot revoke another user's session"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session_id", ["sess_01h2xcejqtf2nbrexx3vqjhp41", "not-an-id", "user_01h2xcejqtf2nbrexx3vqjhp41"])
    async def test_unknown_session(self, client: AsyncClient, session_id):
        data = await register(client)
        resp = await client.delete(f"/api/auth/sessions/{session_id}", headers=bearer(data["accessToken"]))
        assert resp.status_code == 404
        assert resp.json()["message"] == "Session not found"
