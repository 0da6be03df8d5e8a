"""
Privileged user management for tenant admins.

Every operation runs after the rate limiter and the admin guard, re-derives
the target's tenant, checks it against the admin's tenant before touching
anything, and leaves an audit entry whatever the outcome.

The identity provider and the profile store are written one after the other
without a transaction. Create and delete therefore report a ``WriteOutcome``
per phase; a half-finished write is surfaced, never rolled back.
"""

import secrets
import string
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from google.api_core.exceptions import GoogleAPIError
from structlog import get_logger

from app.config import settings
from app.core.exceptions import (
    AppException,
    BadRequestException,
    ForbiddenException,
    InternalException,
    PartialWriteException,
)
from app.core.roles import FALLBACK_ROLE, UserRole, parse_role
from app.core.tenant import TenantInfo, TenantSource, is_same_tenant, resolve_tenant
from app.core.validation import (
    validate_display_name,
    validate_email,
    validate_password,
    validate_role,
)
from app.schemas.audit import AuditAction, RequestOrigin
from app.schemas.auth import AdminContext
from app.schemas.users import (
    AuthUserItem,
    CreatedUser,
    CreateUserRequest,
    DeletedUser,
    PasswordReset,
    RepairChanges,
    RepairResult,
    RoleUpdate,
    TenantUserList,
    UserStatus,
    WriteOutcome,
)
from app.services.audit_service import AuditService
from app.services.business_service import BusinessService
from app.services.identity_service import IdentityRecord, IdentityService
from app.services.user_service import UserService

logger = get_logger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=UTC)


def generate_temp_password(length: int = 14) -> str:
    """Random password with at least one upper, lower and digit."""
    alphabet = string.ascii_letters + string.digits
    required = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
    ]
    rest = [secrets.choice(alphabet) for _ in range(length - len(required))]
    chars = required + rest
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


@dataclass
class _AuditTarget:
    """What an in-flight operation has learned about its target so far."""

    uid: str | None = None
    email: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


class UserAdminService:
    """Create, delete, reset, re-role, list and repair users of one tenant."""

    def __init__(
        self,
        identity: IdentityService,
        users: UserService,
        audit: AuditService,
        businesses: BusinessService | None = None,
        page_size: int | None = None,
    ):
        """Initialize with the identity gateway, profile store and audit log."""
        self.identity = identity
        self.users = users
        self.audit = audit
        self.businesses = businesses
        self.page_size = page_size or settings.list_users_page_size

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _record(
        self,
        action: AuditAction,
        admin: AdminContext,
        origin: RequestOrigin | None,
        target: _AuditTarget,
        success: bool,
        error_message: str | None = None,
    ) -> None:
        await self.audit.log_event(
            action,
            admin.uid,
            success=success,
            actor_email=admin.email,
            target_uid=target.uid,
            target_email=target.email,
            business_id=admin.business_id,
            details=target.details,
            origin=origin,
            error_message=error_message,
        )

    @asynccontextmanager
    async def _audited(
        self,
        action: AuditAction,
        admin: AdminContext,
        origin: RequestOrigin | None,
        target: _AuditTarget,
    ) -> AsyncIterator[None]:
        """Record failures of the wrapped block before re-raising them."""
        try:
            yield
        except GoogleAPIError as e:
            logger.error("profile_store_error", action=action.value, error=str(e))
            await self._record(action, admin, origin, target, False, "Profile store unavailable")
            raise InternalException("Profile store request failed. Please try again.") from e
        except AppException as e:
            await self._record(action, admin, origin, target, False, e.message)
            raise

    async def _target_tenant(
        self, uid: str, default_business_id: str | None = None
    ) -> tuple[IdentityRecord, dict[str, Any] | None, TenantInfo]:
        """Load a target account and resolve its tenant."""
        record = await self.identity.get_user(uid)
        profile = await self.users.get_profile(uid)
        tenant = resolve_tenant(
            profile, record.custom_claims, default_business_id=default_business_id
        )
        return record, profile, tenant

    @staticmethod
    def _require_same_tenant(admin: AdminContext, tenant: TenantInfo, message: str) -> None:
        if not is_same_tenant(admin.business_id, admin.uid, tenant.business_id, tenant.created_by):
            logger.warning(
                "cross_tenant_access_denied",
                admin_uid=admin.uid,
                admin_business_id=admin.business_id,
                target_business_id=tenant.business_id,
            )
            raise ForbiddenException(message)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_user(
        self,
        admin: AdminContext,
        request: CreateUserRequest,
        origin: RequestOrigin | None = None,
    ) -> CreatedUser:
        """
        Create an account in the admin's business.

        Phase one creates the identity account with its custom claims, phase
        two writes the profile document. A failed phase two leaves the
        account in place and raises ``PartialWriteException``.

        Raises:
            BadRequestException: If a field is missing or invalid
            PartialWriteException: If only part of the user could be written
        """
        target = _AuditTarget(
            email=request.email,
            details={"role": request.role, "displayName": request.display_name},
        )
        outcome = WriteOutcome()

        async with self._audited(AuditAction.USER_CREATED, admin, origin, target):
            email = validate_email(request.email)
            display_name = validate_display_name(request.display_name)
            role = validate_role(request.role)
            if request.password:
                validate_password(request.password)
            password = request.password or generate_temp_password()

            target.email = email
            target.details = {
                "role": role.value,
                "displayName": display_name,
                "businessId": admin.business_id,
            }

            record = await self.identity.create_user(email, display_name, password)
            target.uid = record.uid
            outcome.created_uid = record.uid
            logger.info("identity_account_created", uid=record.uid, created_by=admin.uid)

            claims: dict[str, Any] = {
                "role": role.value,
                "createdBy": admin.uid,
                "businessId": admin.business_id,
            }
            if role is UserRole.ADMIN:
                claims["admin"] = True
            try:
                await self.identity.set_custom_claims(record.uid, claims)
            except AppException as e:
                logger.error("created_user_claims_failed", uid=record.uid, error=e.message)
                raise PartialWriteException(
                    f"User account {record.uid} was created but its role could not be assigned.",
                    outcome,
                ) from e
            outcome.identity_write_ok = True

            profile = UserService.new_profile(
                uid=record.uid,
                email=email,
                display_name=display_name,
                role=role.value,
                business_id=admin.business_id,
                created_by=admin.uid,
            )
            try:
                await self.users.create_profile(profile)
            except GoogleAPIError as e:
                logger.error("profile_create_failed", uid=record.uid, error=str(e))
                raise PartialWriteException(
                    "User account was created but the profile could not be saved.", outcome
                ) from e
            outcome.profile_write_ok = True

            await self._record(AuditAction.USER_CREATED, admin, origin, target, True)

        return CreatedUser(
            uid=record.uid,
            email=email,
            display_name=display_name,
            role=role.value,
            business_id=admin.business_id,
            used_temp_password=not request.password,
            outcome=outcome,
        )

    async def delete_user(
        self,
        admin: AdminContext,
        uid: str | None,
        origin: RequestOrigin | None = None,
    ) -> DeletedUser:
        """
        Delete a user of the admin's business.

        The profile goes first and its failure is only logged; the identity
        account deletion must succeed.

        Raises:
            BadRequestException: If uid is missing or names the caller
            NotFoundException: If the account does not exist
            ForbiddenException: If the user belongs to another business
            PartialWriteException: If the identity account could not be deleted
        """
        target = _AuditTarget(uid=uid)
        outcome = WriteOutcome()

        async with self._audited(AuditAction.USER_DELETED, admin, origin, target):
            if not uid:
                raise BadRequestException("User ID is required")
            if uid == admin.uid:
                raise BadRequestException("You cannot delete your own account")

            record, _, tenant = await self._target_tenant(uid)
            target.email = record.email
            self._require_same_tenant(
                admin, tenant, "You can only delete users from your own business"
            )

            try:
                await self.users.delete_profile(uid)
                outcome.profile_write_ok = True
            except GoogleAPIError as e:
                logger.error("profile_delete_failed", uid=uid, error=str(e))

            try:
                await self.identity.delete_user(uid)
            except AppException as e:
                raise PartialWriteException(
                    "User account could not be deleted. Please try again.", outcome
                ) from e
            outcome.identity_write_ok = True
            logger.info("user_deleted", uid=uid, profile_deleted=outcome.profile_write_ok)

            target.details = {"profileDeleted": outcome.profile_write_ok}
            await self._record(AuditAction.USER_DELETED, admin, origin, target, True)

        return DeletedUser(uid=uid, email=record.email, outcome=outcome)

    async def reset_password(
        self,
        admin: AdminContext,
        uid: str | None,
        origin: RequestOrigin | None = None,
    ) -> PasswordReset:
        """
        Generate a password reset link for a user of the admin's business.

        The link is returned to the calling admin only; sending it is not
        handled here.
        """
        target = _AuditTarget(uid=uid)

        async with self._audited(AuditAction.PASSWORD_RESET, admin, origin, target):
            if not uid:
                raise BadRequestException("User ID is required")

            record = await self.identity.get_user(uid)
            if not record.email:
                raise BadRequestException("User has no email address")
            target.email = record.email

            profile = await self.users.get_profile(uid)
            tenant = resolve_tenant(profile, record.custom_claims)
            self._require_same_tenant(
                admin, tenant, "You can only reset passwords for users from your own business"
            )

            reset_link = await self.identity.generate_password_reset_link(record.email)
            logger.info("password_reset_link_generated", uid=uid)

            await self._record(AuditAction.PASSWORD_RESET, admin, origin, target, True)

        return PasswordReset(uid=uid, email=record.email, reset_link=reset_link)

    async def update_role(
        self,
        admin: AdminContext,
        uid: str | None,
        role: str | None,
        origin: RequestOrigin | None = None,
    ) -> RoleUpdate:
        """
        Change a user's role in their custom claims and profile.

        A target with no resolvable tenant is backfilled with the admin's
        tenant; this is the only place a tenant is assigned rather than read.
        Claims are merged so unrelated keys survive.
        """
        target = _AuditTarget(uid=uid, details={"newRole": role})

        async with self._audited(AuditAction.ROLE_CHANGED, admin, origin, target):
            if not uid or not role:
                raise BadRequestException("User ID and role are required")
            if uid == admin.uid:
                raise BadRequestException("You cannot change your own role")
            new_role = validate_role(role)

            record, profile, tenant = await self._target_tenant(
                uid, default_business_id=admin.business_id
            )
            target.email = record.email
            self._require_same_tenant(admin, tenant, "You can only update users in your business")

            backfilled = tenant.source is TenantSource.BACKFILL
            if backfilled:
                logger.info("business_id_backfilled", uid=uid, business_id=tenant.business_id)

            claims = await self.identity.merge_custom_claims(
                uid,
                {
                    "role": new_role.value,
                    "admin": new_role is UserRole.ADMIN,
                    "businessId": tenant.business_id,
                    "createdBy": tenant.created_by,
                },
            )

            if profile is not None:
                updates: dict[str, Any] = {"role": new_role.value}
                if not profile.get("businessId") and tenant.business_id:
                    updates["businessId"] = tenant.business_id
                await self.users.update_profile(uid, updates)

            target.details = {
                "newRole": new_role.value,
                "previousRole": (profile or {}).get("role") or record.custom_claims.get("role"),
                "businessIdBackfilled": backfilled,
            }
            await self._record(AuditAction.ROLE_CHANGED, admin, origin, target, True)

        return RoleUpdate(
            uid=uid,
            role=new_role.value,
            business_id=tenant.business_id,
            business_id_backfilled=backfilled,
            claims=claims,
        )

    async def list_tenant_users(self, admin: AdminContext) -> TenantUserList:
        """
        List identity accounts of the admin's business, including accounts
        that have not signed in yet and so have no profile.

        If the identity provider cannot be enumerated the result is an empty,
        degraded list rather than an error.
        """
        if not admin.business_id:
            raise ForbiddenException("Missing business context")

        try:
            business_profiles = await self.users.list_business_profiles(admin.business_id)
        except GoogleAPIError as e:
            logger.warning("business_users_unavailable", error=str(e))
            business_profiles = {}

        users: list[AuthUserItem] = []
        page_token: str | None = None
        try:
            while True:
                records, page_token = await self.identity.list_users_page(
                    page_token, self.page_size
                )
                for record in records:
                    visible, profile = await self._visibility(admin, record, business_profiles)
                    if visible:
                        users.append(self._to_item(record, profile))
                if not page_token:
                    break
        except AppException as e:
            logger.warning("auth_user_listing_failed", error=e.message)
            return TenantUserList(users=[], degraded=True)

        logger.info("auth_users_listed", count=len(users), business_id=admin.business_id)
        return TenantUserList(users=users)

    async def _visibility(
        self,
        admin: AdminContext,
        record: IdentityRecord,
        business_profiles: dict[str, dict[str, Any]],
    ) -> tuple[bool, dict[str, Any] | None]:
        """Decide whether an account belongs to the admin's business, with its profile if loaded."""
        if record.uid in business_profiles:
            return True, business_profiles[record.uid]

        tenant = resolve_tenant(None, record.custom_claims)
        if not is_same_tenant(admin.business_id, admin.uid, tenant.business_id, tenant.created_by):
            return False, None

        # Claims can be stale; a profile document, when present, decides.
        try:
            profile = await self.users.get_profile(record.uid)
        except GoogleAPIError as e:
            logger.warning("auth_user_profile_unconfirmed", uid=record.uid, error=str(e))
            return True, None
        if profile and profile.get("businessId") and profile["businessId"] != admin.business_id:
            return False, None
        return True, profile

    @staticmethod
    def _to_item(record: IdentityRecord, profile: dict[str, Any] | None = None) -> AuthUserItem:
        claims = record.custom_claims
        profile = profile or {}
        return AuthUserItem(
            uid=record.uid,
            email=record.email or "no-email",
            display_name=record.display_name,
            role=profile.get("role") or claims.get("role") or None,
            created_by=profile.get("createdBy") or claims.get("createdBy") or None,
            business_id=profile.get("businessId") or claims.get("businessId") or None,
            created_at=(record.created_at or _EPOCH).isoformat(),
        )

    async def repair_business(
        self,
        admin: AdminContext,
        uid: str | None = None,
        origin: RequestOrigin | None = None,
    ) -> RepairResult:
        """
        Backfill a missing tenant on a user (the caller by default).

        Fills ``businessId`` in claims and profile, restores a missing
        status or role, and creates the business document if absent.
        Existing values are never overwritten.
        """
        target_uid = uid or admin.uid
        target = _AuditTarget(uid=target_uid, details={"repair": True})

        async with self._audited(AuditAction.USER_UPDATED, admin, origin, target):
            record, profile, tenant = await self._target_tenant(
                target_uid, default_business_id=admin.business_id
            )
            target.email = record.email
            if target_uid != admin.uid:
                self._require_same_tenant(
                    admin, tenant, "You can only repair users in your business"
                )
            business_id = tenant.business_id or admin.business_id

            existing_claims = record.custom_claims
            role = (
                parse_role((profile or {}).get("role"))
                or parse_role(existing_claims.get("role"))
                or FALLBACK_ROLE
            )
            await self.identity.merge_custom_claims(
                target_uid,
                {
                    "role": role.value,
                    "admin": role is UserRole.ADMIN,
                    "businessId": business_id,
                    "createdBy": existing_claims.get("createdBy")
                    or tenant.created_by
                    or target_uid,
                },
            )

            changes = RepairChanges(custom_claims_updated=True, business_id_set=business_id)
            if profile is not None:
                updates: dict[str, Any] = {}
                if not profile.get("businessId"):
                    updates["businessId"] = business_id
                if not profile.get("status") or profile.get("status") == "undefined":
                    updates["status"] = UserStatus.ACTIVE.value
                    changes.status_fixed = True
                if not profile.get("role"):
                    updates["role"] = role.value
                await self.users.update_profile(target_uid, updates)
                changes.firestore_updated = True

            if self.businesses is not None:
                changes.business_created = await self.businesses.ensure_business(
                    business_id,
                    owner_id=admin.uid,
                    name=self._business_name(admin),
                    email=admin.email,
                )

            target.details = {"repair": True, **changes.model_dump(by_alias=True)}
            await self._record(AuditAction.USER_UPDATED, admin, origin, target, True)

        return RepairResult(uid=target_uid, business_id=business_id, changes=changes)

    @staticmethod
    def _business_name(admin: AdminContext) -> str:
        profile = admin.profile
        email = admin.email
        return (
            profile.get("companyName")
            or profile.get("displayName")
            or (email.split("@")[0] if email else None)
            or "Business"
        )

    async def list_audit_logs(self, admin: AdminContext, limit: int = 50) -> list[dict[str, Any]]:
        """
        Recent audit entries of the admin's business.

        Raises:
            ForbiddenException: If the caller does not own the business
        """
        if not admin.is_owner:
            raise ForbiddenException("Only the business owner can view audit logs")
        try:
            return await self.audit.list_for_business(admin.business_id, limit)
        except GoogleAPIError as e:
            logger.error("audit_log_read_failed", error=str(e))
            raise InternalException("Could not load audit logs. Please try again.") from e
