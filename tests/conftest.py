from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fakes import (
    ADMIN_A,
    ADMIN_B,
    BUSINESS_1,
    BUSINESS_2,
    FakeAuditService,
    FakeBusinessService,
    FakeIdentityService,
    FakeUserService,
    add_user,
)
from httpx import ASGITransport, AsyncClient

from app.config import settings
from app.core.rate_limiter import MemoryRateLimitStore, RateLimiter
from app.dependencies import (
    get_audit_service,
    get_business_service,
    get_identity_service,
    get_rate_limiter,
    get_user_service,
)
from app.main import app
from app.schemas.auth import AdminContext


@pytest.fixture
def identity() -> FakeIdentityService:
    return FakeIdentityService()


@pytest.fixture
def users() -> FakeUserService:
    return FakeUserService()


@pytest.fixture
def businesses() -> FakeBusinessService:
    return FakeBusinessService()


@pytest.fixture
def audit() -> FakeAuditService:
    return FakeAuditService()


@pytest.fixture
def limiter() -> RateLimiter:
    """Rate limiter over a fresh memory store, disabled unless a test enables it."""
    rate_limiter = RateLimiter.from_settings(settings, MemoryRateLimitStore())
    rate_limiter.enabled = False
    return rate_limiter


@pytest.fixture
def tenants(identity: FakeIdentityService, users: FakeUserService) -> dict[str, str]:
    """
    Two businesses: admin A owns B1 with user u1, admin B owns B2 with user u2.

    Returns the bearer tokens of both admins.
    """
    add_user(identity, users, ADMIN_A, role="admin", business_id=BUSINESS_1, is_owner=True)
    add_user(identity, users, ADMIN_B, role="admin", business_id=BUSINESS_2, is_owner=True)
    add_user(identity, users, "u1", role="viewer", business_id=BUSINESS_1, created_by=ADMIN_A)
    add_user(identity, users, "u2", role="viewer", business_id=BUSINESS_2, created_by=ADMIN_B)
    return {ADMIN_A: identity.issue_token(ADMIN_A), ADMIN_B: identity.issue_token(ADMIN_B)}


@pytest.fixture
def admin_a(tenants, users: FakeUserService, identity: FakeIdentityService) -> AdminContext:
    """Admin context of admin A as the guard would produce it."""
    return AdminContext(
        identity=identity.tokens[tenants[ADMIN_A]],
        business_id=BUSINESS_1,
        profile=dict(users.profiles[ADMIN_A]),
    )


@pytest.fixture
def auth_headers(tenants) -> dict[str, str]:
    return {"Authorization": f"Bearer {tenants[ADMIN_A]}"}


@pytest_asyncio.fixture
async def client(
    identity: FakeIdentityService,
    users: FakeUserService,
    businesses: FakeBusinessService,
    audit: FakeAuditService,
    limiter: RateLimiter,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client wired to the in-memory fakes."""
    app.dependency_overrides[get_identity_service] = lambda: identity
    app.dependency_overrides[get_user_service] = lambda: users
    app.dependency_overrides[get_business_service] = lambda: businesses
    app.dependency_overrides[get_audit_service] = lambda: audit
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
