"""
Tests for the authentication endpoints.

These run against the ASGI app with the bootstrap admin account.
"""

import pytest

from escrow_auth.services import token_codec

LOGIN = {"username": "admin", "password": "SecurePass123!"}


def set_cookie_headers(response):
    return response.headers.get_list("set-cookie")


def cookie_header(response, name):
    for header in set_cookie_headers(response):
        if header.startswith(f"{name}="):
            return header
    return None


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_success(self, app_client):
        """Valid credentials return a token pair and set both cookies."""
        response = await app_client.post("/auth/login", json=LOGIN)

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Login successful"
        assert data["user"]["id"] == "1"
        assert data["user"]["role"] == "admin"
        assert data["user"]["username"] == "admin"
        assert "system_config" in data["permissions"]

        session_cookie = cookie_header(response, "sessionId")
        assert session_cookie is not None
        assert "HttpOnly" in session_cookie
        assert "SameSite=strict" in session_cookie

        token_cookie = cookie_header(response, "AUTH_TOKEN")
        assert token_cookie is not None
        assert "Max-Age=1800" in token_cookie
        # not production
        assert "; Secure" not in token_cookie

        session_id = response.cookies["sessionId"]
        assert data["refreshToken"] == f"refresh_{session_id}"

    @pytest.mark.asyncio
    async def test_login_token_carries_identity(self, app_client):
        response = await app_client.post("/auth/login", json=LOGIN)
        payload = token_codec.parse(response.json()["token"]).payload

        identity = token_codec.extract_identity(payload)
        assert identity.user_id == "1"
        assert identity.role == "admin"
        assert payload["exp"] - payload["iat"] == 1800
        assert payload["iss"] == "escrow-app"
        assert payload["aud"] == "escrow-users"

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, app_client):
        response = await app_client.post("/auth/login", json={"username": "admin", "password": "nope"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials"}
        assert cookie_header(response, "sessionId") is None

    @pytest.mark.asyncio
    async def test_login_unknown_user(self, app_client):
        response = await app_client.post("/auth/login", json={"username": "ghost", "password": "x"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_missing_fields(self, app_client):
        """Malformed body is a 400 with an error message."""
        response = await app_client.post("/auth/login", json={"username": "admin"})

        assert response.status_code == 400
        assert "password" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_login_evicts_oldest_session(self, app_client, app, test_settings):
        session_ids = []
        for _ in range(test_settings.max_sessions_per_user + 1):
            response = await app_client.post("/auth/login", json=LOGIN)
            session_ids.append(response.cookies["sessionId"])

        registry = app.state.session_registry
        assert registry.get_session(session_ids[0]) is None
        assert len(registry.get_user_sessions("1")) == test_settings.max_sessions_per_user

    @pytest.mark.asyncio
    async def test_production_sets_secure_token_cookie(self, test_settings):
        from httpx import ASGITransport, AsyncClient

        from escrow_auth.main import create_app

        app = create_app(test_settings.model_copy(update={"environment": "production"}))
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/auth/login", json=LOGIN)

        assert "; Secure" in cookie_header(response, "AUTH_TOKEN")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_success(self, app_client, app, logged_in):
        session_id, login_body = logged_in

        response = await app_client.post("/auth/refresh", json={"refreshToken": login_body["refreshToken"]})

        assert response.status_code == 200
        data = response.json()
        assert data["refreshToken"] == f"refresh_{session_id}"
        assert data["user"]["email"] == "admin@example.com"
        assert token_codec.extract_identity(token_codec.parse(data["token"]).payload).user_id == "1"
        assert cookie_header(response, "AUTH_TOKEN") is not None

        session = app.state.session_registry.get_session(session_id)
        assert "lastTokenRefresh" in session.metadata
        assert session.metadata["lastTokenRefresh"].endswith("Z")

    @pytest.mark.asyncio
    async def test_refresh_does_not_extend_session(self, app_client, app, logged_in):
        session_id, login_body = logged_in
        registry = app.state.session_registry
        expires_before = registry.get_session(session_id).expires_at

        await app_client.post("/auth/refresh", json={"refreshToken": login_body["refreshToken"]})

        assert registry.get_session(session_id).expires_at == expires_before

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"refreshToken": ""}, {"refreshToken": None}])
    async def test_refresh_token_required(self, app_client, body):
        response = await app_client.post("/auth/refresh", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Refresh token required"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["refresh_unknown", "not-a-refresh-token", "refresh_"])
    async def test_refresh_unknown_token(self, app_client, token):
        response = await app_client.post("/auth/refresh", json={"refreshToken": token})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid refresh token"}

    @pytest.mark.asyncio
    async def test_refresh_after_logout_is_rejected(self, app_client, logged_in):
        _, login_body = logged_in

        await app_client.post("/auth/logout")
        response = await app_client.post("/auth/refresh", json={"refreshToken": login_body["refreshToken"]})

        assert response.status_code == 401


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_destroys_session(self, app_client, app, logged_in):
        session_id, _ = logged_in

        response = await app_client.post("/auth/logout")

        assert response.status_code == 200
        assert response.json() == {"message": "Logged out successfully"}
        assert app.state.session_registry.get_session(session_id) is None
        for name in ("sessionId", "session_id", "AUTH_TOKEN"):
            assert cookie_header(response, name) is not None

    @pytest.mark.asyncio
    async def test_logout_without_session(self, app_client):
        """Logging out with no cookie still succeeds."""
        response = await app_client.post("/auth/logout")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_logout_is_idempotent(self, app_client, logged_in):
        first = await app_client.post("/auth/logout")
        second = await app_client.post("/auth/logout")
        assert first.status_code == second.status_code == 200


class TestHeartbeat:
    @pytest.mark.asyncio
    async def test_heartbeat_success(self, app_client, app, logged_in):
        session_id, _ = logged_in

        response = await app_client.post("/auth/heartbeat")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["sessionActive"] is True
        assert data["expiresAt"].endswith("Z")
        assert data["lastActivity"].endswith("Z")
        assert "lastHeartbeat" in app.state.session_registry.get_session(session_id).metadata

    @pytest.mark.asyncio
    async def test_heartbeat_legacy_cookie_name(self, app_client, logged_in):
        session_id, _ = logged_in
        app_client.cookies.clear()
        app_client.cookies.set("session_id", session_id)

        response = await app_client.post("/auth/heartbeat")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_heartbeat_without_cookie(self, app_client):
        response = await app_client.post("/auth/heartbeat")

        assert response.status_code == 400
        assert response.json() == {"error": "Session cookie required"}

    @pytest.mark.asyncio
    async def test_heartbeat_unknown_session(self, app_client):
        app_client.cookies.set("sessionId", "does-not-exist")

        response = await app_client.post("/auth/heartbeat")

        assert response.status_code == 401
        assert response.json() == {"error": "Session not found"}


class TestApiPrefix:
    @pytest.mark.asyncio
    async def test_routes_mounted_under_api(self, app_client):
        login = await app_client.post("/api/auth/login", json=LOGIN)
        assert login.status_code == 200

        refresh = await app_client.post("/api/auth/refresh", json={"refreshToken": login.json()["refreshToken"]})
        assert refresh.status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_route_is_json_404(self, app_client):
        response = await app_client.get("/auth/does-not-exist")

        assert response.status_code == 404
        assert "error" in response.json()
