"""User management schemas for request/response validation."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model speaking the camelCase wire format."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserStatus(StrEnum):
    """Account state of a user profile."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    DEACTIVATED = "deactivated"


class UserProfile(CamelModel):
    """Profile document stored at ``users/{uid}``."""

    uid: str
    email: str | None = None
    display_name: str | None = None
    role: str | None = None
    status: str | None = None
    business_id: str | None = None
    is_owner: bool = False
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")

    @field_validator("is_owner", mode="before")
    @classmethod
    def _missing_owner_flag(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("metadata", mode="before")
    @classmethod
    def _missing_metadata(cls, value: Any) -> Any:
        return {} if value is None else value


# ============================================================================
# Requests
# ============================================================================
# Fields are optional so missing input surfaces as a 400 from the service
# layer instead of a schema validation error.


class CreateUserRequest(CamelModel):
    """Body of POST /users/create."""

    email: str | None = None
    display_name: str | None = None
    role: str | None = None
    password: str | None = None


class TargetUserRequest(CamelModel):
    """Body naming a single target user."""

    uid: str | None = None


class UpdateRoleRequest(CamelModel):
    """Body of POST /users/update-role."""

    uid: str | None = None
    role: str | None = None


class RepairBusinessRequest(CamelModel):
    """Body of POST /users/repair-business; defaults to the caller."""

    uid: str | None = None


# ============================================================================
# Results
# ============================================================================


class WriteOutcome(BaseModel):
    """Per-phase result of a write spanning the identity provider and the profile store."""

    identity_write_ok: bool = False
    profile_write_ok: bool = False
    # Set once a new identity account exists, even if its claims are missing
    created_uid: str | None = None

    @property
    def completed(self) -> bool:
        """True when both phases landed."""
        return self.identity_write_ok and self.profile_write_ok


class CreatedUser(CamelModel):
    """Result of creating a user."""

    uid: str
    email: str
    display_name: str
    role: str
    business_id: str
    used_temp_password: bool = False
    outcome: WriteOutcome = Field(default_factory=WriteOutcome, exclude=True)


class DeletedUser(CamelModel):
    """Result of deleting a user."""

    uid: str
    email: str | None = None
    outcome: WriteOutcome = Field(default_factory=WriteOutcome, exclude=True)


class PasswordReset(CamelModel):
    """Result of generating a password reset link."""

    uid: str
    email: str
    reset_link: str


class RoleUpdate(CamelModel):
    """Result of changing a user's role."""

    uid: str
    role: str
    business_id: str | None = None
    business_id_backfilled: bool = False
    claims: dict[str, Any] = Field(default_factory=dict, exclude=True)


class AuthUserItem(CamelModel):
    """An identity provider account visible to the tenant admin."""

    uid: str
    email: str
    display_name: str | None = None
    role: str | None = None
    created_by: str | None = None
    business_id: str | None = None
    created_at: str


class TenantUserList(CamelModel):
    """Result of listing a tenant's accounts."""

    users: list[AuthUserItem] = Field(default_factory=list)
    degraded: bool = False


class RepairChanges(CamelModel):
    """What a repair actually changed."""

    custom_claims_updated: bool = False
    firestore_updated: bool = False
    business_id_set: str | None = None
    status_fixed: bool = False
    business_created: bool = False


class RepairResult(CamelModel):
    """Result of repairing a user's tenant assignment."""

    uid: str
    business_id: str
    changes: RepairChanges
