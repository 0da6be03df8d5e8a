"""Audit log schemas."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import Field

from app.schemas.users import CamelModel


class AuditAction(StrEnum):
    """Actions recorded in the audit log."""

    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    ROLE_CHANGED = "ROLE_CHANGED"
    PASSWORD_RESET = "PASSWORD_RESET"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"


class RequestOrigin(CamelModel):
    """Network details of the request that triggered an action."""

    ip_address: str | None = None
    user_agent: str | None = None


class AuditLogEntry(CamelModel):
    """An immutable audit record."""

    action: AuditAction
    actor_uid: str
    actor_email: str | None = None
    target_uid: str | None = None
    target_email: str | None = None
    business_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    timestamp: datetime
    success: bool
    error_message: str | None = None
