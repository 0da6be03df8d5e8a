"""
Tenant resolution for multi-tenant access control.

A user's tenant (``businessId``) can live in three places that do not always
agree: the profile document, the custom claims minted into their ID token,
or nowhere at all for accounts that predate tenants. The functions here are
pure so every privileged operation resolves tenants the same way.
"""

from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel


class TenantSource(StrEnum):
    """Which rule produced a tenant id."""

    PROFILE = "profile"
    CLAIMS = "claims"
    BACKFILL = "backfill"
    BOOTSTRAP = "bootstrap"
    NONE = "none"


class TenantInfo(BaseModel):
    """Resolved tenant identity of a user."""

    business_id: str | None = None
    created_by: str | None = None
    source: TenantSource = TenantSource.NONE

    model_config = {"frozen": True}

    @property
    def has_tenant(self) -> bool:
        """True when a tenant id was resolved."""
        return self.business_id is not None


class _Inputs(NamedTuple):
    profile_business_id: str | None
    claims_business_id: str | None
    default_business_id: str | None
    bootstrap_uid: str | None
    created_by: str | None


class _Rule(NamedTuple):
    source: TenantSource
    applies: Callable[[_Inputs], bool]
    business_id: Callable[[_Inputs], str | None]


def _text(mapping: Mapping[str, Any] | None, key: str) -> str | None:
    """Read a non-empty string field, treating blanks as absent."""
    if not mapping:
        return None
    value = mapping.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


# Evaluated top to bottom; the first rule that applies wins.
TENANT_RULES: tuple[_Rule, ...] = (
    _Rule(
        TenantSource.PROFILE,
        lambda i: i.profile_business_id is not None,
        lambda i: i.profile_business_id,
    ),
    _Rule(
        TenantSource.CLAIMS,
        lambda i: i.claims_business_id is not None,
        lambda i: i.claims_business_id,
    ),
    # Only role updates and repairs pass a default: the admin's own tenant.
    _Rule(
        TenantSource.BACKFILL,
        lambda i: i.default_business_id is not None,
        lambda i: i.default_business_id,
    ),
    # First-login profile synthesis: every profile must end up with a tenant.
    _Rule(
        TenantSource.BOOTSTRAP,
        lambda i: i.bootstrap_uid is not None,
        lambda i: i.created_by or i.bootstrap_uid,
    ),
)


def resolve_tenant(
    profile: Mapping[str, Any] | None = None,
    claims: Mapping[str, Any] | None = None,
    *,
    default_business_id: str | None = None,
    bootstrap_uid: str | None = None,
) -> TenantInfo:
    """
    Resolve a user's tenant from their profile document and token claims.

    Args:
        profile: Profile document data, if one exists
        claims: Custom claims from the identity provider, if known
        default_business_id: Tenant to backfill when nothing else resolves
        bootstrap_uid: The user's own uid, for first-login profile creation only

    Returns:
        The resolved tenant. ``business_id`` is None when no rule applied,
        which callers must treat as "no tenant".
    """
    created_by = _text(profile, "createdBy") or _text(claims, "createdBy")
    inputs = _Inputs(
        profile_business_id=_text(profile, "businessId"),
        claims_business_id=_text(claims, "businessId"),
        default_business_id=default_business_id or None,
        bootstrap_uid=bootstrap_uid or None,
        created_by=created_by,
    )

    for rule in TENANT_RULES:
        if rule.applies(inputs):
            if rule.source is TenantSource.BOOTSTRAP:
                created_by = created_by or inputs.bootstrap_uid
            return TenantInfo(
                business_id=rule.business_id(inputs),
                created_by=created_by,
                source=rule.source,
            )

    return TenantInfo(business_id=None, created_by=created_by, source=TenantSource.NONE)


def is_same_tenant(
    admin_business_id: str | None,
    admin_uid: str,
    target_business_id: str | None,
    target_created_by: str | None,
) -> bool:
    """
    Decide whether a target user belongs to the admin's tenant.

    A target without a tenant counts as the admin's only when that admin
    created it. Anything ambiguous is rejected.
    """
    if not admin_business_id:
        return False
    if target_business_id:
        return target_business_id == admin_business_id
    return bool(target_created_by) and target_created_by == admin_uid
