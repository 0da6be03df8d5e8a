"""Tests for the user management endpoints."""

import pytest
from fakes import ADMIN_A, BUSINESS_1, add_user
from google.api_core.exceptions import ServiceUnavailable
from httpx import AsyncClient

from app.core.exceptions import InternalException
from app.core.rate_limiter import RateLimitPolicy


@pytest.mark.asyncio
class TestCreateUserEndpoint:
    async def test_created_in_admin_business(self, client: AsyncClient, auth_headers, users):
        response = await client.post(
            "/api/users/create",
            json={"email": "clerk@example.com", "displayName": "Clerk", "role": "accountant"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["email"] == "clerk@example.com"
        assert data["displayName"] == "Clerk"
        assert data["role"] == "accountant"
        assert data["businessId"] == BUSINESS_1
        assert "outcome" not in data
        assert users.profiles[data["uid"]]["createdBy"] == ADMIN_A

    async def test_missing_fields(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/users/create", json={"email": "clerk@example.com"}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Bad Request"
        assert response.json()["success"] is False

    async def test_partial_failure_reports_phases(
        self, client: AsyncClient, auth_headers, users
    ):
        users.failures["create_profile"] = ServiceUnavailable("firestore down")

        response = await client.post(
            "/api/users/create",
            json={"email": "half@example.com", "displayName": "Half", "role": "viewer"},
            headers=auth_headers,
        )

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Internal Server Error"
        assert data["identityWriteOk"] is True
        assert data["profileWriteOk"] is False

    async def test_malformed_body(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/users/create",
            content="not json",
            headers={**auth_headers, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Request validation failed"


@pytest.mark.asyncio
class TestDeleteUserEndpoint:
    async def test_cross_tenant_delete_forbidden(self, client: AsyncClient, auth_headers, identity):
        response = await client.request(
            "DELETE", "/api/users/delete", json={"uid": "u2"}, headers=auth_headers
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"
        assert identity.called("delete_user") == []

    async def test_delete_own_user(self, client: AsyncClient, auth_headers, identity):
        response = await client.request(
            "DELETE", "/api/users/delete", json={"uid": "u1"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["uid"] == "u1"
        assert "u1" not in identity.records

    async def test_missing_header_unauthorized(self, client: AsyncClient, tenants):
        response = await client.request("DELETE", "/api/users/delete", json={"uid": "u1"})

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_malformed_header_still_counts_against_rate_limit(
        self, client: AsyncClient, auth_headers, limiter
    ):
        limiter.enabled = True
        limiter.policies["default"] = RateLimitPolicy("default", points=3, window=60)

        first = await client.request(
            "DELETE",
            "/api/users/delete",
            json={"uid": "u1"},
            headers={"Authorization": "Basic abc"},
        )
        second = await client.request(
            "DELETE", "/api/users/delete", json={"uid": "u1"}, headers=auth_headers
        )

        assert first.status_code == 401
        assert second.status_code == 429
        data = second.json()
        assert data["error"] == "Rate Limited"
        assert data["retryAfter"] == 60
        assert second.headers["Retry-After"] == "60"
        assert second.headers["X-RateLimit-Limit"] == "3"


@pytest.mark.asyncio
class TestOtherOperations:
    async def test_reset_password(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/users/reset-password", json={"uid": "u1"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json()["resetLink"].startswith("https://")

    async def test_update_role_backfills_tenant(
        self, client: AsyncClient, auth_headers, identity, users
    ):
        add_user(identity, users, "legacy", role="viewer", claims={"role": "viewer"})

        response = await client.post(
            "/api/users/update-role",
            json={"uid": "legacy", "role": "sales_user"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert "log out and log back in" in data["message"]
        assert data["businessIdBackfilled"] is True
        assert users.profiles["legacy"]["businessId"] == BUSINESS_1
        assert identity.records["legacy"].custom_claims["businessId"] == BUSINESS_1

    async def test_list_auth_users(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/users/list-auth", headers=auth_headers)

        assert response.status_code == 200
        uids = {user["uid"] for user in response.json()["users"]}
        assert uids == {ADMIN_A, "u1"}

    async def test_list_auth_users_degrades(self, client: AsyncClient, auth_headers, identity):
        identity.failures["list_users_page"] = InternalException("provider down")

        response = await client.get("/api/users/list-auth", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["users"] == []
        assert response.json()["degraded"] is True

    async def test_repair_without_body_targets_caller(self, client: AsyncClient, auth_headers):
        response = await client.post("/api/users/repair-business", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["uid"] == ADMIN_A
        assert response.json()["changes"]["customClaimsUpdated"] is True

    async def test_audit_logs_for_owner(self, client: AsyncClient, auth_headers):
        await client.post("/api/users/reset-password", json={"uid": "u1"}, headers=auth_headers)

        response = await client.get("/api/users/audit-logs", headers=auth_headers)

        assert response.status_code == 200
        assert [log["action"] for log in response.json()["logs"]] == ["PASSWORD_RESET"]


@pytest.mark.asyncio
class TestSurface:
    async def test_health(self, client: AsyncClient):
        response = await client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_unknown_route_uses_envelope(self, client: AsyncClient):
        response = await client.get("/api/nowhere")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Not Found", "error": "Not Found"}
