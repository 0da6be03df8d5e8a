"""FastAPI dependencies."""

from collections.abc import Awaitable, Callable
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, Request
from google.cloud.firestore import AsyncClient

from app.config import settings
from app.core.firebase import get_firestore_client
from app.core.rate_limiter import MemoryRateLimitStore, RateLimiter, RedisRateLimitStore
from app.core.redis_client import get_redis_client
from app.schemas.audit import RequestOrigin
from app.schemas.auth import AdminContext, DecodedIdentity
from app.services.audit_service import AuditService, request_origin
from app.services.auth_service import AuthService
from app.services.business_service import BusinessService
from app.services.identity_service import IdentityService
from app.services.user_admin_service import UserAdminService
from app.services.user_service import UserService


def get_firestore() -> AsyncClient:
    """Firestore client bound to the initialized Firebase app."""
    return get_firestore_client()


FirestoreClient = Annotated[AsyncClient, Depends(get_firestore)]


def get_identity_service() -> IdentityService:
    """Identity provider gateway on the default Firebase app."""
    return IdentityService()


def get_user_service(client: FirestoreClient) -> UserService:
    return UserService(client)


def get_business_service(client: FirestoreClient) -> BusinessService:
    return BusinessService(client)


def get_audit_service(client: FirestoreClient) -> AuditService:
    return AuditService(client)


IdentityServiceDep = Annotated[IdentityService, Depends(get_identity_service)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
BusinessServiceDep = Annotated[BusinessService, Depends(get_business_service)]
AuditServiceDep = Annotated[AuditService, Depends(get_audit_service)]


def get_auth_service(
    identity: IdentityServiceDep,
    users: UserServiceDep,
    businesses: BusinessServiceDep,
    audit: AuditServiceDep,
) -> AuthService:
    return AuthService(identity, users, businesses, audit)


def get_user_admin_service(
    identity: IdentityServiceDep,
    users: UserServiceDep,
    businesses: BusinessServiceDep,
    audit: AuditServiceDep,
) -> UserAdminService:
    return UserAdminService(identity, users, audit, businesses)


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
UserAdminServiceDep = Annotated[UserAdminService, Depends(get_user_admin_service)]


@lru_cache
def get_rate_limiter() -> RateLimiter:
    """
    Process-wide rate limiter.

    Counters are shared through Redis when ``RATE_LIMIT_BACKEND=redis``,
    otherwise they live in this process only.
    """
    if settings.rate_limit_backend == "redis":
        store = RedisRateLimitStore(get_redis_client())
    else:
        store = MemoryRateLimitStore()
    return RateLimiter.from_settings(settings, store)


def rate_limit(operation: str) -> Callable[..., Awaitable[None]]:
    """
    Build a dependency charging the request against ``operation``'s budget.

    Attach it through the route's ``dependencies`` so it runs before the
    caller is authenticated.
    """

    async def check_rate_limit(
        request: Request,
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    ) -> None:
        await limiter.check(request, operation)

    return check_rate_limit


async def get_current_identity(
    auth_service: AuthServiceDep,
    authorization: Annotated[str | None, Header()] = None,
) -> DecodedIdentity:
    """
    Verify the bearer token of the request.

    Raises:
        UnauthorizedException: If the credential is missing or invalid
    """
    return await auth_service.verify_bearer(authorization)


async def require_admin(
    auth_service: AuthServiceDep,
    authorization: Annotated[str | None, Header()] = None,
) -> AdminContext:
    """
    Verify that the caller is an admin with a tenant.

    Raises:
        UnauthorizedException: If the credential is missing or invalid
        ForbiddenException: If the caller is not an admin or lacks a tenant
    """
    return await auth_service.require_admin(authorization)


def get_request_origin(request: Request) -> RequestOrigin:
    return request_origin(request)


# Type aliases for dependency injection
CurrentIdentity = Annotated[DecodedIdentity, Depends(get_current_identity)]
AdminContextDep = Annotated[AdminContext, Depends(require_admin)]
RequestOriginDep = Annotated[RequestOrigin, Depends(get_request_origin)]
