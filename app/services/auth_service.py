"""Authentication service: token verification, admin guard and session bootstrap."""

from datetime import UTC, datetime

from google.api_core.exceptions import GoogleAPIError
from structlog import get_logger

from app.core.exceptions import AppException, ForbiddenException, UnauthorizedException
from app.core.roles import DEFAULT_ROLE, FALLBACK_ROLE, UserRole, can_manage_users, parse_role
from app.core.tenant import resolve_tenant
from app.schemas.audit import AuditAction, RequestOrigin
from app.schemas.auth import AdminContext, DecodedIdentity, SessionResult
from app.schemas.users import UserProfile
from app.services.audit_service import AuditService
from app.services.business_service import BusinessService
from app.services.identity_service import IdentityService
from app.services.user_service import UserService

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str | None:
    """Pull the credential out of an ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX) :].strip()
    return token or None


class AuthService:
    """Authentication service for verifying callers and bootstrapping profiles."""

    def __init__(
        self,
        identity: IdentityService,
        users: UserService,
        businesses: BusinessService | None = None,
        audit: AuditService | None = None,
    ):
        """Initialize auth service with its collaborators."""
        self.identity = identity
        self.users = users
        self.businesses = businesses
        self.audit = audit

    async def verify_bearer(self, authorization: str | None) -> DecodedIdentity:
        """
        Verify the bearer credential of a request.

        Args:
            authorization: Raw Authorization header value

        Returns:
            Decoded identity with the token's claims snapshot

        Raises:
            UnauthorizedException: If the header is missing/malformed or the token is invalid
        """
        token = extract_bearer_token(authorization)
        if token is None:
            raise UnauthorizedException("Missing or invalid authorization header")
        return await self.identity.verify_id_token(token)

    async def require_admin(self, authorization: str | None) -> AdminContext:
        """
        Verify that the caller is an admin with a tenant.

        The tenant comes from the caller's profile, then their token claims.
        No default is substituted: an admin without a tenant is rejected.

        Raises:
            UnauthorizedException: If the credential is missing or invalid
            ForbiddenException: If the caller is not an admin or has no tenant
        """
        identity = await self.verify_bearer(authorization)

        profile = await self.users.get_profile(identity.uid)
        if profile is None or not can_manage_users(profile.get("role")):
            logger.warning("admin_check_failed", uid=identity.uid, has_profile=profile is not None)
            raise ForbiddenException("Only administrators can perform this action")

        tenant = resolve_tenant(profile, identity.claims)
        if tenant.business_id is None:
            logger.warning("admin_without_business", uid=identity.uid)
            raise ForbiddenException("Missing business context")

        await self._sync_admin_claims(identity, tenant.business_id)

        logger.info(
            "admin_verified",
            uid=identity.uid,
            business_id=tenant.business_id,
            source=tenant.source.value,
        )
        return AdminContext(identity=identity, business_id=tenant.business_id, profile=profile)

    async def _sync_admin_claims(self, identity: DecodedIdentity, business_id: str) -> None:
        """Bring stale admin claims in line with the profile, best-effort."""
        claims = identity.claims
        if (
            claims.get("admin") is True
            and claims.get("role") == UserRole.ADMIN
            and claims.get("businessId") == business_id
        ):
            return
        try:
            await self.identity.merge_custom_claims(
                identity.uid,
                {"role": UserRole.ADMIN.value, "admin": True, "businessId": business_id},
            )
            logger.info("admin_claims_synced", uid=identity.uid, business_id=business_id)
        except AppException as e:
            logger.warning("admin_claims_sync_failed", uid=identity.uid, error=e.message)

    async def establish_session(
        self, identity: DecodedIdentity, origin: RequestOrigin | None = None
    ) -> SessionResult:
        """
        Ensure a signed-in user has a profile document.

        On first sign-in the profile is synthesised from the token claims
        set when an admin created the account. Accounts without claims found
        their own business.
        """
        profile = await self.users.get_profile(identity.uid)

        if profile is not None:
            try:
                await self.users.touch_last_login(identity.uid)
            except GoogleAPIError as e:
                # Never block sign-in on the timestamp
                logger.warning("last_login_update_failed", uid=identity.uid, error=str(e))
            await self._audit_login(identity, profile.get("businessId"), origin, first_login=False)
            return SessionResult(
                profile=UserProfile.model_validate({**profile, "uid": identity.uid}), created=False
            )

        claims = identity.claims
        tenant = resolve_tenant(None, claims, bootstrap_uid=identity.uid)
        is_owner = tenant.created_by == identity.uid
        # Only founders of their own business may default to admin
        role = parse_role(claims.get("role")) or (DEFAULT_ROLE if is_owner else FALLBACK_ROLE)
        email = identity.email or claims.get("email")
        display_name = claims.get("name") or (email.split("@")[0] if email else "User")

        profile = UserService.new_profile(
            uid=identity.uid,
            email=email,
            display_name=display_name,
            role=role.value,
            business_id=tenant.business_id,
            created_by=tenant.created_by,
            is_owner=is_owner,
            last_login=datetime.now(UTC),
        )
        await self.users.create_profile(profile)
        logger.info(
            "profile_bootstrapped",
            uid=identity.uid,
            business_id=tenant.business_id,
            source=tenant.source.value,
            is_owner=is_owner,
        )

        if is_owner and self.businesses is not None:
            await self.businesses.ensure_business(
                tenant.business_id, owner_id=identity.uid, name=display_name, email=email
            )

        await self._audit_login(identity, tenant.business_id, origin, first_login=True)
        return SessionResult(profile=UserProfile.model_validate(profile), created=True)

    async def _audit_login(
        self,
        identity: DecodedIdentity,
        business_id: str | None,
        origin: RequestOrigin | None,
        first_login: bool,
    ) -> None:
        if self.audit is None:
            return
        await self.audit.log_event(
            AuditAction.LOGIN_SUCCESS,
            identity.uid,
            success=True,
            actor_email=identity.email,
            target_uid=identity.uid,
            business_id=business_id,
            details={"firstLogin": first_login},
            origin=origin,
        )
