"""
Tests for the authentication/authorization dependencies and ownership rule.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from monorepo_shared.schemas.auth import TokenClaims
from monorepo_shared.schemas.common import TokenType, UserRole

from app.core.auth import (
    AuthenticatedUser,
    assert_resource_owner,
    get_current_user,
    get_optional_user,
    is_resource_owner,
    require_admin,
    require_moderator,
)
from app.core.container import build_container
from app.core.errors import AuthorizationError, register_exception_handlers
from app.core.tokens import TokenPayload

OWNER = "user_01h2xcejqtf2nbrexx3vqjhp42"
OTHER = "user_01h2xcejqtf2nbrexx3vqjhp43"


def _auth(user_id: str, role: UserRole) -> AuthenticatedUser:
    now = int(datetime.now(timezone.utc).timestamp())
    return AuthenticatedUser(
        TokenClaims(sub=user_id, email="x@example.com", role=role, type=TokenType.ACCESS, iat=now, exp=now + 60)
    )


@pytest.fixture
def gate(settings, repositories):
    app = FastAPI()
    register_exception_handlers(app)
    container = build_container(settings, repositories=repositories)
    app.state.container = container

    @app.get("/private")
    async def private(request: Request, auth: AuthenticatedUser = Depends(get_current_user)):
        return {"sub": auth.user_id, "attached": request.state.user.user_id}

    @app.get("/maybe")
    async def maybe(request: Request, auth=Depends(get_optional_user)):
        return {
            "sub": auth.user_id if auth else None,
            "attached": getattr(request.state, "user", None) is not None,
        }

    @app.get("/admin")
    async def admin_only(auth: AuthenticatedUser = Depends(require_admin)):
        return {"ok": True}

    @app.get("/staff")
    async def staff_only(auth: AuthenticatedUser = Depends(require_moderator)):
        return {"ok": True}

    return app, container


def _token(container, role: str = "user", user_id: str = OWNER) -> str:
    return container.tokens.create_access_token(TokenPayload(user_id=user_id, email="x@example.com", role=role))


class TestRequireAuth:
    def test_valid_access_token(self, gate):
        app, container = gate
        client = TestClient(app)
        resp = client.get("/private", headers={"Authorization": f"Bearer {_token(container)}"})
        assert resp.status_code == 200
        assert resp.json() == {"sub": OWNER, "attached": OWNER}

    def test_missing_header(self, gate):
        app, _ = gate
        resp = TestClient(app).get("/private")
        assert resp.status_code == 401
        assert resp.json() == {
            "success": False,
            "error": "Unauthorized",
            "message": "Authentication required",
        }

    def test_malformed_header(self, gate):
        app, container = gate
        resp = TestClient(app).get("/private", headers={"Authorization": _token(container)})
        assert resp.status_code == 401

    def test_refresh_token_rejected(self, gate):
        app, container = gate
        pair = container.tokens.issue_pair(TokenPayload(user_id=OWNER, email="x@example.com", role="user"))
        resp = TestClient(app).get("/private", headers={"Authorization": f"Bearer {pair.refresh_token}"})
        assert resp.status_code == 401
        assert resp.json()["message"].startswith("Authentication failed:")

    def test_expired_token_rejected(self, gate):
        app, container = gate
        token = container.tokens.create_token(
            TokenPayload(user_id=OWNER, email="x@example.com", role="user"),
            TokenType.ACCESS,
            expires_delta=timedelta(seconds=-5),
        )
        resp = TestClient(app).get("/private", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestOptionalAuth:
    def test_anonymous(self, gate):
        app, _ = gate
        resp = TestClient(app).get("/maybe")
        assert resp.status_code == 200
        assert resp.json() == {"sub": None, "attached": False}

    def test_authenticated(self, gate):
        app, container = gate
        resp = TestClient(app).get("/maybe", headers={"Authorization": f"Bearer {_token(container)}"})
        assert resp.json() == {"sub": OWNER, "attached": True}

    def test_bad_token_is_treated_as_anonymous(self, gate):
        app, _ = gate
        resp = TestClient(app).get("/maybe", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 200
        assert resp.json() == {"sub": None, "attached": False}


class TestRequireRole:
    @pytest.mark.parametrize("role,status", [("admin", 200), ("moderator", 403), ("user", 403)])
    def test_admin_route(self, gate, role, status):
        app, container = gate
        resp = TestClient(app).get("/admin", headers={"Authorization": f"Bearer {_token(container, role)}"})
        assert resp.status_code == status
        if status == 403:
            assert resp.json()["message"] == "Access denied. Required role: admin"

    @pytest.mark.parametrize("role,status", [("admin", 200), ("moderator", 200), ("user", 403)])
    def test_staff_route(self, gate, role, status):
        app, container = gate
        resp = TestClient(app).get("/staff", headers={"Authorization": f"Bearer {_token(container, role)}"})
        assert resp.status_code == status

    def test_role_check_requires_authentication_first(self, gate):
        app, _ = gate
        assert TestClient(app).get("/admin").status_code == 401


class TestOwnership:
    def test_owner_passes(self):
        assert_resource_owner(OWNER, _auth(OWNER, UserRole.USER))

    def test_admin_passes_for_any_resource(self):
        assert_resource_owner(OWNER, _auth(OTHER, UserRole.ADMIN))

    @pytest.mark.parametrize("role", [UserRole.USER, UserRole.MODERATOR])
    def test_non_owner_denied(self, role):
        with pytest.raises(AuthorizationError, match="you do not own this resource"):
            assert_resource_owner(OWNER, _auth(OTHER, role))

    def test_is_resource_owner(self):
        assert is_resource_owner(OWNER, _auth(OWNER, UserRole.MODERATOR))
        assert not is_resource_owner(OWNER, _auth(OTHER, UserRole.MODERATOR))
