from datetime import timedelta
from typing import Any

import pytest
from fastapi import HTTPException
from httpx import AsyncClient

from focusdesk.api import auth as auth_api
from focusdesk.config import Settings
from focusdesk.repositories import Stores
from focusdesk.utils.auth import create_access_token, decode_token

OIDC_SETTINGS = Settings(debug=False, oidc_issuer_url="https://id.example.com", oidc_client_id="focusdesk")


@pytest.fixture
def provider_claims(monkeypatch) -> dict[str, Any]:
    """Run sync in OIDC mode; the provider vouches for the subject plus whatever claims a test adds."""
    claims: dict[str, Any] = {}

    async def fake_verify(id_token, external_id, settings):
        return {"sub": external_id, **claims}

    monkeypatch.setattr(auth_api, "settings", OIDC_SETTINGS)
    monkeypatch.setattr(auth_api, "verify_external_identity", fake_verify)
    return claims


class TestJWTToken:
    """Tests for JWT token creation and validation."""

    def test_decode_valid_token(self):
        """The token subject is the external id."""
        token = create_access_token("test-user-id")
        payload = decode_token(token)
        assert payload.sub == "test-user-id"

    def test_decode_expired_token(self):
        """Test that expired token raises error."""
        token = create_access_token("test-user", expires_delta=timedelta(hours=-1))

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token)
        assert exc_info.value.status_code == 401

    def test_decode_garbage(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_token("not-a-jwt")
        assert exc_info.value.status_code == 401


class TestAuthStatus:
    @pytest.mark.asyncio
    async def test_dev_mode(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/status")
        assert response.status_code == 200
        assert response.json() == {"configured": True, "mode": "dev", "error": None}


class TestAuthSync:
    """Tests for auth sync endpoint."""

    @pytest.mark.asyncio
    async def test_first_user_becomes_admin(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/sync",
            json={"external_id": "first-123", "email": "First@Example.com"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "first@example.com"
        assert data["role"] == "admin"
        assert data["internal_user_id"] == 1000
        assert data["access_token"]

    @pytest.mark.asyncio
    async def test_sync_is_idempotent(self, client: AsyncClient, admin_user):
        payload = {"external_id": "new-user-123", "email": "newuser@example.com"}
        first = await client.post("/api/v1/auth/sync", json=payload)
        second = await client.post("/api/v1/auth/sync", json=payload)

        assert first.status_code == second.status_code == 200
        assert first.json()["internal_user_id"] == second.json()["internal_user_id"]
        assert first.json()["role"] == "user"

    @pytest.mark.asyncio
    async def test_new_external_id_with_known_email_is_merged(self, client: AsyncClient, regular_user):
        response = await client.post(
            "/api/v1/auth/sync",
            json={"external_id": "user-ext-reregistered", "email": "user@example.com"},
        )
        assert response.status_code == 200
        assert response.json()["internal_user_id"] == regular_user.internal_user_id

        token = response.json()["access_token"]
        me = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["internal_user_id"] == regular_user.internal_user_id

    @pytest.mark.asyncio
    async def test_sync_missing_required_fields(self, client: AsyncClient):
        """Test sync with missing required fields fails."""
        response = await client.post("/api/v1/auth/sync", json={"external_id": "test-123"})
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    @pytest.mark.asyncio
    async def test_sync_blank_external_id(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/sync", json={"external_id": "   ", "email": "blank@example.com"}
        )
        assert response.status_code == 422
        assert response.json()["errors"] == [{"field": "external_id", "message": "must not be empty"}]


class TestProtectedRoutes:
    """Tests for authentication requirement on protected routes."""

    @pytest.mark.asyncio
    async def test_unauthenticated_request_fails(self, client: AsyncClient):
        response = await client.get("/api/v1/users/me")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token_fails(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/users/me",
            headers={"Authorization": "Bearer invalid-token"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_token_for_unknown_identity_fails(self, client: AsyncClient):
        """A well-formed token whose subject was never synced is not a user."""
        token = create_access_token("never-synced")
        response = await client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_token_succeeds(self, client: AsyncClient, regular_user, user_headers):
        response = await client.get("/api/v1/auth/session", headers=user_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["email"] == regular_user.email
        assert data["role"] == "user"


class TestOidcSync:
    """In OIDC mode the email comes from the verified token, never the request body."""

    @pytest.mark.asyncio
    async def test_body_email_cannot_claim_admin(self, client: AsyncClient, admin_user, provider_claims):
        provider_claims.update(email="someone@example.com", email_verified=True)

        response = await client.post(
            "/api/v1/auth/sync",
            json={"external_id": "other-sub", "email": "admin@example.com", "id_token": "token"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["internal_user_id"] != admin_user.internal_user_id
        assert data["email"] == "someone@example.com"
        assert data["role"] == "user"

    @pytest.mark.asyncio
    async def test_unverified_email_cannot_take_over_account(
        self, client: AsyncClient, stores: Stores, admin_user, provider_claims
    ):
        provider_claims.update(email="admin@example.com", email_verified=False)

        response = await client.post(
            "/api/v1/auth/sync",
            json={"external_id": "other-sub", "email": "admin@example.com", "id_token": "token"},
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Not permitted to link an existing account through an unverified email"
        assert await stores.users.get_by_external_id("other-sub") is None
        assert (await stores.users.get_by_email("admin@example.com")).external_id == "admin-ext"

    @pytest.mark.asyncio
    async def test_verified_email_reattaches_account(self, client: AsyncClient, regular_user, provider_claims):
        provider_claims.update(email="User@Example.com", email_verified=True)

        response = await client.post(
            "/api/v1/auth/sync",
            json={"external_id": "user-ext-new", "email": "ignored@example.com", "id_token": "token"},
        )

        assert response.status_code == 200
        assert response.json()["internal_user_id"] == regular_user.internal_user_id

    @pytest.mark.asyncio
    async def test_token_without_email_is_rejected(self, client: AsyncClient, provider_claims):
        response = await client.post(
            "/api/v1/auth/sync",
            json={"external_id": "other-sub", "email": "someone@example.com", "id_token": "token"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "OIDC id_token carries no email claim"
