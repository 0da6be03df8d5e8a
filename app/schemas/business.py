"""Business (tenant) schemas."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import ConfigDict, Field

from app.schemas.users import CamelModel


class BusinessStatus(StrEnum):
    """Lifecycle state of a business."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class BusinessSettings(CamelModel):
    """Per-business defaults used by the bookkeeping screens."""

    currency: str = "PKR"
    timezone: str = "Asia/Karachi"
    fiscal_year_start: str | None = None
    invoice_prefix: str = "INV-"
    challan_prefix: str = "DC-"
    purchase_prefix: str = "PUR-"

    model_config = ConfigDict(extra="allow")


class Business(CamelModel):
    """Business document stored at ``businesses/{id}``."""

    id: str
    name: str
    email: str | None = None
    owner_id: str
    status: BusinessStatus = BusinessStatus.ACTIVE
    trade_name: str | None = None
    phone: str | None = None
    address: str | None = None
    logo_url: str | None = None
    tagline: str | None = None
    settings: BusinessSettings = Field(default_factory=BusinessSettings)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
