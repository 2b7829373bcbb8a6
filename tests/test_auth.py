from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi import HTTPException
from httpx import ASGITransport, AsyncClient
from jose import jwt

from sso_bridge.config import Settings, get_settings
from sso_bridge.database import get_db
from sso_bridge.main import create_app
from sso_bridge.services.user_service import UserService, is_token_revoked
from sso_bridge.utils.auth import create_access_token, decode_token


class TestJWTToken:
    """Tests for session token creation and validation."""

    def test_create_access_token(self):
        """Test that access token is created successfully."""
        token = create_access_token("test-user-id")
        assert isinstance(token, str)
        assert len(token) > 0

    def test_decode_valid_token(self):
        """Test that valid token is decoded correctly."""
        token = create_access_token("test-user-id")
        payload = decode_token(token)
        assert payload.sub == "test-user-id"
        assert payload.iat is not None

    def test_decode_expired_token(self):
        """Test that expired token raises error."""
        token = create_access_token("test-user", expires_delta=timedelta(hours=-1))

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)
        assert exc_info.value.status_code == 401


class TestTokenRevocation:
    @pytest.mark.asyncio
    async def test_is_token_revoked(self, db_session, test_user):
        now = datetime.now(timezone.utc).timestamp()
        assert is_token_revoked(test_user, now) is False

        await UserService(db_session).revoke_sessions(test_user)
        assert is_token_revoked(test_user, now - 1) is True
        assert is_token_revoked(test_user, None) is True
        assert is_token_revoked(test_user, now + 5) is False

    @pytest.mark.asyncio
    async def test_revocation_is_ordered_within_a_second(self, test_user):
        second = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
        test_user.sessions_revoked_at = second + timedelta(milliseconds=100)

        assert is_token_revoked(test_user, second.timestamp()) is True
        assert is_token_revoked(test_user, second.timestamp() + 0.5) is False

    @pytest.mark.asyncio
    async def test_naive_revocation_time_is_utc(self, test_user):
        second = datetime(2026, 3, 1, 12, 0, 0)
        test_user.sessions_revoked_at = second
        utc_second = second.replace(tzinfo=timezone.utc).timestamp()

        assert is_token_revoked(test_user, utc_second - 0.1) is True
        assert is_token_revoked(test_user, utc_second + 0.1) is False

    @pytest.mark.asyncio
    async def test_token_issued_after_revocation_works(
        self, client: AsyncClient, db_session, test_user
    ):
        await UserService(db_session).revoke_sessions(test_user)
        await db_session.commit()

        issued = datetime.now(timezone.utc) + timedelta(seconds=2)
        token = jwt.encode(
            {"sub": str(test_user.id), "iat": issued, "exp": issued + timedelta(hours=1)},
            get_settings().secret_key,
            algorithm="HS256",
        )
        response = await client.get(
            "/api/v1/auth/session", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_login_right_after_logout_sync_works(
        self, client: AsyncClient, db_session, test_user
    ):
        """Test that a token minted in the same second as a revocation is honoured."""
        await UserService(db_session).revoke_sessions(test_user)
        await db_session.commit()

        token = create_access_token(str(test_user.id))
        assert decode_token(token).iat >= test_user.sessions_revoked_at.timestamp()
        response = await client.get(
            "/api/v1/auth/session", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 200


class TestSession:
    """Tests for the session provider endpoints."""

    @pytest.mark.asyncio
    async def test_unauthenticated_request_fails(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/session")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token_fails(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/auth/session",
            headers={"Authorization": "Bearer invalid-token"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_token_succeeds(self, client: AsyncClient, test_user, auth_headers):
        response = await client.get("/api/v1/auth/session", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(test_user.id)
        assert data["email"] == test_user.email
        assert data["email_verified"] is True
        assert data["role"] == "user"

    @pytest.mark.asyncio
    async def test_inactive_user_is_anonymous(
        self, client: AsyncClient, db_session, test_user, auth_headers
    ):
        test_user.is_active = False
        await db_session.commit()
        response = await client.get("/api/v1/auth/session", headers=auth_headers)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_auth_status(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/status")
        assert response.status_code == 200
        assert response.json() == {"mode": "token", "session_cookie": "session_token"}

    @pytest.mark.asyncio
    async def test_forward_auth_headers(self, client: AsyncClient, test_user, monkeypatch):
        """Test that Remote-User is trusted only when AUTH_TRUST_HEADER is on."""
        headers = {"Remote-User": test_user.username}

        response = await client.get("/api/v1/auth/session", headers=headers)
        assert response.status_code == 401

        monkeypatch.setattr(get_settings(), "auth_trust_header", True)
        response = await client.get("/api/v1/auth/session", headers=headers)
        assert response.status_code == 200
        assert response.json()["id"] == str(test_user.id)

    @pytest.mark.asyncio
    async def test_session_cookie_name(self, client: AsyncClient, test_user):
        token = create_access_token(str(test_user.id))
        response = await client.get("/api/v1/auth/session", headers={"Cookie": f"session_token={token}"})
        assert response.status_code == 200


class TestAppSettings:
    """Tests that the session layer follows the settings the app was built with."""

    @pytest_asyncio.fixture
    async def custom_client(self, db_session) -> AsyncGenerator[AsyncClient, None]:
        settings = Settings(
            debug=True,
            secret_key="another-signing-key-for-tests",
            session_cookie_name="bridge_session",
            auth_trust_header=True,
            database_url="sqlite+aiosqlite:///:memory:",
            discourse_base_url="https://forum.example.com",
            discourse_sso_secret="test-sso-secret-value",
        )
        custom_app = create_app(settings)

        async def override_get_db():
            yield db_session

        custom_app.dependency_overrides[get_db] = override_get_db
        async with AsyncClient(transport=ASGITransport(app=custom_app), base_url="http://test") as ac:
            yield ac

    @pytest.mark.asyncio
    async def test_auth_status_reflects_app_settings(self, custom_client: AsyncClient):
        response = await custom_client.get("/api/v1/auth/status")
        assert response.json() == {"mode": "forward-auth", "session_cookie": "bridge_session"}

    @pytest.mark.asyncio
    async def test_tokens_use_app_secret_and_cookie(self, custom_client: AsyncClient, test_user):
        default_token = create_access_token(str(test_user.id))
        response = await custom_client.get(
            "/api/v1/auth/session", headers={"Cookie": f"bridge_session={default_token}"}
        )
        assert response.status_code == 401

        token = create_access_token(str(test_user.id), secret_key="another-signing-key-for-tests")
        response = await custom_client.get(
            "/api/v1/auth/session", headers={"Cookie": f"bridge_session={token}"}
        )
        assert response.status_code == 200

        response = await custom_client.get(
            "/api/v1/auth/session", headers={"Cookie": f"session_token={token}"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_forward_auth_from_app_settings(self, custom_client: AsyncClient, test_user):
        response = await custom_client.get(
            "/api/v1/auth/session", headers={"Remote-User": test_user.username}
        )
        assert response.status_code == 200
        assert response.json()["id"] == str(test_user.id)
