"""Identity provider gateway over the Firebase Auth Admin API."""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import firebase_admin
from firebase_admin import auth, exceptions
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool
from structlog import get_logger

from app.core.exceptions import (
    AppException,
    BadRequestException,
    InternalException,
    NotFoundException,
    UnauthorizedException,
)
from app.core.firebase import verify_firebase_token
from app.schemas.auth import DecodedIdentity

logger = get_logger(__name__)

# Claim keys owned by the access-control core; everything else is preserved.
MANAGED_CLAIMS = ("role", "admin", "businessId", "createdBy")


class IdentityRecord(BaseModel):
    """The parts of an identity provider account the core relies on."""

    uid: str
    email: str | None = None
    display_name: str | None = None
    disabled: bool = False
    custom_claims: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    @classmethod
    def from_user_record(cls, record: auth.UserRecord) -> "IdentityRecord":
        """Convert a Firebase ``UserRecord``."""
        created_ms = record.user_metadata.creation_timestamp if record.user_metadata else None
        return cls(
            uid=record.uid,
            email=record.email,
            display_name=record.display_name,
            disabled=record.disabled,
            custom_claims=dict(record.custom_claims or {}),
            created_at=datetime.fromtimestamp(created_ms / 1000, tz=UTC) if created_ms else None,
        )


def merge_claims(existing: Mapping[str, Any] | None, updates: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge claim updates into an existing claim map.

    Keys in ``updates`` overwrite, keys with a None value are left untouched,
    and every other existing key is carried over.
    """
    merged = dict(existing or {})
    for key, value in updates.items():
        if value is not None:
            merged[key] = value
    return merged


def _translate(error: Exception, action: str) -> AppException:
    """Map Firebase SDK errors onto the application taxonomy."""
    if isinstance(error, auth.UserNotFoundError):
        return NotFoundException("User not found.")
    if isinstance(error, auth.EmailAlreadyExistsError):
        return BadRequestException("A user with this email already exists.")
    if isinstance(error, (exceptions.InvalidArgumentError, ValueError)):
        return BadRequestException(f"Invalid request: {error!s}")
    logger.error("identity_provider_error", action=action, error=str(error))
    return InternalException(f"Identity provider failed to {action}.")


class IdentityService:
    """Async facade over ``firebase_admin.auth``."""

    def __init__(self, app: firebase_admin.App | None = None):
        """Initialize with an optional Firebase app (default app otherwise)."""
        self.app = app

    async def verify_id_token(self, id_token: str) -> DecodedIdentity:
        """
        Verify an ID token.

        Raises:
            UnauthorizedException: If the token is invalid, expired or revoked
        """
        try:
            decoded_token = await verify_firebase_token(id_token)
        except ValueError:
            raise UnauthorizedException("Invalid or expired token")
        return DecodedIdentity.from_token(decoded_token)

    async def get_user(self, uid: str) -> IdentityRecord:
        """Fetch an account by uid."""
        try:
            record = await run_in_threadpool(auth.get_user, uid, self.app)
        except (exceptions.FirebaseError, ValueError) as e:
            raise _translate(e, "load user") from e
        return IdentityRecord.from_user_record(record)

    async def create_user(self, email: str, display_name: str, password: str) -> IdentityRecord:
        """Create an enabled, unverified email/password account."""
        try:
            record = await run_in_threadpool(
                lambda: auth.create_user(
                    email=email,
                    display_name=display_name,
                    password=password,
                    disabled=False,
                    email_verified=False,
                    app=self.app,
                )
            )
        except (exceptions.FirebaseError, ValueError) as e:
            raise _translate(e, "create user") from e
        return IdentityRecord.from_user_record(record)

    async def delete_user(self, uid: str) -> None:
        """Delete an account."""
        try:
            await run_in_threadpool(auth.delete_user, uid, self.app)
        except (exceptions.FirebaseError, ValueError) as e:
            raise _translate(e, "delete user") from e

    async def set_custom_claims(self, uid: str, claims: dict[str, Any]) -> None:
        """Replace an account's custom claims wholesale."""
        try:
            await run_in_threadpool(auth.set_custom_user_claims, uid, claims, self.app)
        except (exceptions.FirebaseError, ValueError) as e:
            raise _translate(e, "update custom claims") from e

    async def merge_custom_claims(self, uid: str, updates: Mapping[str, Any]) -> dict[str, Any]:
        """
        Read-merge-write an account's custom claims.

        Returns:
            The claims as written
        """
        current = await self.get_user(uid)
        merged = merge_claims(current.custom_claims, updates)
        await self.set_custom_claims(uid, merged)
        return merged

    async def generate_password_reset_link(self, email: str) -> str:
        """Mint a password reset link; delivering it is someone else's job."""
        try:
            return await run_in_threadpool(
                lambda: auth.generate_password_reset_link(email, app=self.app)
            )
        except (exceptions.FirebaseError, ValueError) as e:
            raise _translate(e, "generate password reset link") from e

    async def list_users_page(
        self, page_token: str | None = None, max_results: int = 1000
    ) -> tuple[list[IdentityRecord], str | None]:
        """
        Fetch one page of accounts.

        Returns:
            Records on this page and the token for the next page (None when done)
        """
        try:
            page = await run_in_threadpool(
                lambda: auth.list_users(page_token=page_token, max_results=max_results, app=self.app)
            )
        except (exceptions.FirebaseError, ValueError) as e:
            raise _translate(e, "list users") from e
        records = [IdentityRecord.from_user_record(user) for user in page.users]
        return records, page.next_page_token or None
