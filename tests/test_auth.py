"""Tests for the admin guard and session bootstrap."""

import pytest
from fakes import ADMIN_A, BUSINESS_1, add_user
from google.api_core.exceptions import ServiceUnavailable
from httpx import AsyncClient

from app.core.exceptions import ForbiddenException, UnauthorizedException
from app.services.auth_service import AuthService, extract_bearer_token


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("Bearer abc.def", "abc.def"),
        ("Bearer   ", None),
        ("Basic abc", None),
        ("bearer abc", None),
        (None, None),
    ],
)
def test_extract_bearer_token(header, expected):
    assert extract_bearer_token(header) == expected


@pytest.mark.asyncio
class TestAdminGuard:
    @pytest.fixture
    def service(self, identity, users, businesses, audit) -> AuthService:
        return AuthService(identity, users, businesses, audit)

    async def test_admin_context(self, service, tenants):
        admin = await service.require_admin(f"Bearer {tenants[ADMIN_A]}")

        assert admin.uid == ADMIN_A
        assert admin.business_id == BUSINESS_1
        assert admin.is_owner

    async def test_invalid_token(self, service, tenants):
        with pytest.raises(UnauthorizedException):
            await service.require_admin("Bearer forged")

    async def test_non_admin_rejected(self, service, tenants, identity):
        token = identity.issue_token("u1")

        with pytest.raises(ForbiddenException, match="Only administrators"):
            await service.require_admin(f"Bearer {token}")

    async def test_admin_claims_without_profile_rejected(self, service, identity, users):
        add_user(
            identity, users, "claims-only", role="admin", business_id=BUSINESS_1, with_profile=False
        )
        token = identity.issue_token("claims-only")

        with pytest.raises(ForbiddenException, match="Only administrators"):
            await service.require_admin(f"Bearer {token}")

    async def test_admin_without_business_rejected(self, service, identity, users):
        add_user(identity, users, "lonely", role="admin")
        token = identity.issue_token("lonely")

        with pytest.raises(ForbiddenException, match="Missing business context"):
            await service.require_admin(f"Bearer {token}")

    async def test_business_from_claims(self, service, identity, users):
        add_user(
            identity,
            users,
            "claims-admin",
            role="admin",
            claims={"role": "admin", "admin": True, "businessId": BUSINESS_1},
        )
        token = identity.issue_token("claims-admin")

        admin = await service.require_admin(f"Bearer {token}")

        assert admin.business_id == BUSINESS_1

    async def test_stale_claims_synced(self, service, identity, users):
        add_user(
            identity,
            users,
            "stale",
            role="admin",
            business_id=BUSINESS_1,
            claims={"role": "viewer", "theme": "dark"},
        )
        token = identity.issue_token("stale")

        await service.require_admin(f"Bearer {token}")

        assert identity.records["stale"].custom_claims == {
            "role": "admin",
            "admin": True,
            "businessId": BUSINESS_1,
            "theme": "dark",
        }

    async def test_current_claims_not_rewritten(self, service, tenants, identity):
        await service.require_admin(f"Bearer {tenants[ADMIN_A]}")

        assert identity.called("set_custom_claims") == []


@pytest.mark.asyncio
class TestSession:
    async def test_first_login_synthesises_profile_from_claims(
        self, client: AsyncClient, identity, users, audit
    ):
        identity.add_account(
            "fresh",
            "fresh@example.com",
            {"role": "accountant", "businessId": BUSINESS_1, "createdBy": ADMIN_A},
        )
        token = identity.issue_token("fresh")

        response = await client.post(
            "/api/auth/session", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["created"] is True
        assert data["profile"]["businessId"] == BUSINESS_1
        assert data["profile"]["role"] == "accountant"
        assert data["profile"]["isOwner"] is False
        assert users.profiles["fresh"]["createdBy"] == ADMIN_A
        assert audit.actions(success=True) == ["LOGIN_SUCCESS"]

    async def test_self_registered_user_founds_business(
        self, client: AsyncClient, identity, users, businesses
    ):
        identity.add_account("founder", "founder@example.com", {})
        token = identity.issue_token("founder")

        response = await client.post(
            "/api/auth/session", headers={"Authorization": f"Bearer {token}"}
        )

        profile = response.json()["profile"]
        assert profile["businessId"] == "founder"
        assert profile["isOwner"] is True
        assert profile["role"] == "admin"
        assert businesses.businesses["founder"]["ownerId"] == "founder"

    @pytest.mark.parametrize("role_claim", ["sales", None])
    async def test_admin_created_account_never_defaults_to_admin(
        self, identity, users, businesses, audit, role_claim
    ):
        claims = {"businessId": BUSINESS_1, "createdBy": ADMIN_A}
        if role_claim:
            claims["role"] = role_claim
        identity.add_account("emp", "emp@example.com", claims)
        service = AuthService(identity, users, businesses, audit)

        session = await service.establish_session(identity.tokens[identity.issue_token("emp")])

        assert session.profile.role == "delivery_challan"
        assert session.profile.business_id == BUSINESS_1
        assert session.profile.is_owner is False
        assert BUSINESS_1 not in businesses.businesses

    async def test_legacy_profile_signs_in(self, identity, users, businesses, audit):
        identity.add_account("legacy", "legacy@example.com", {})
        users.profiles["legacy"] = {
            "email": "legacy@example.com",
            "role": "viewer",
            "businessId": "B9",
            "metadata": None,
            "isOwner": None,
        }
        service = AuthService(identity, users, businesses, audit)

        session = await service.establish_session(
            identity.tokens[identity.issue_token("legacy")]
        )

        assert session.created is False
        assert session.profile.uid == "legacy"
        assert session.profile.business_id == "B9"
        assert session.profile.is_owner is False
        assert session.profile.metadata == {}

    async def test_returning_user_refreshes_last_login(
        self, client: AsyncClient, tenants, identity, users
    ):
        token = identity.issue_token("u1")

        response = await client.post(
            "/api/auth/session", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200
        assert response.json()["created"] is False
        assert "lastLogin" in users.profiles["u1"]

    async def test_last_login_failure_does_not_block(
        self, tenants, identity, users, businesses, audit
    ):
        users.failures["touch_last_login"] = ServiceUnavailable("firestore down")
        service = AuthService(identity, users, businesses, audit)

        session = await service.establish_session(identity.tokens[tenants[ADMIN_A]])

        assert session.created is False
        assert session.profile.business_id == BUSINESS_1

    async def test_session_requires_token(self, client: AsyncClient):
        response = await client.post("/api/auth/session")

        assert response.status_code == 401
        assert response.json()["message"] == "Missing or invalid authorization header"
