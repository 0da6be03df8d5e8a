"""
Append-only audit trail for privileged actions.

Entries are only ever added. A failed write is logged and swallowed: the
outcome reported to the caller never depends on the audit log.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import Request
from google.cloud import firestore
from google.cloud.firestore import AsyncClient
from google.cloud.firestore_v1 import FieldFilter
from structlog import get_logger

from app.config import settings
from app.core.rate_limiter import get_client_ip
from app.schemas.audit import AuditAction, AuditLogEntry, RequestOrigin

logger = get_logger(__name__)

REDACT_KEYS = frozenset({"password", "token", "resetlink", "link", "secret"})


def request_origin(request: Request) -> RequestOrigin:
    """Capture the caller's address and user agent for the audit trail."""
    ip_address = get_client_ip(request)
    return RequestOrigin(
        ip_address=None if ip_address == "unknown" else ip_address,
        user_agent=request.headers.get("user-agent"),
    )


def _sanitize(details: dict[str, Any] | None) -> dict[str, Any]:
    return {
        key: "***" if key.lower() in REDACT_KEYS else value
        for key, value in (details or {}).items()
    }


class AuditService:
    """Writes and reads audit entries in Firestore."""

    def __init__(self, client: AsyncClient, collection: str | None = None):
        """Initialize service with a Firestore client."""
        self.client = client
        self.collection = collection or settings.audit_logs_collection

    async def log_event(
        self,
        action: AuditAction,
        actor_uid: str,
        *,
        success: bool,
        actor_email: str | None = None,
        target_uid: str | None = None,
        target_email: str | None = None,
        business_id: str | None = None,
        details: dict[str, Any] | None = None,
        origin: RequestOrigin | None = None,
        error_message: str | None = None,
    ) -> bool:
        """
        Append an audit entry.

        Returns:
            True if the entry was stored, False if the write failed
        """
        origin = origin or RequestOrigin()
        entry = AuditLogEntry(
            action=action,
            actor_uid=actor_uid,
            actor_email=actor_email,
            target_uid=target_uid,
            target_email=target_email,
            business_id=business_id,
            details=_sanitize(details),
            ip_address=origin.ip_address,
            user_agent=origin.user_agent,
            timestamp=datetime.now(UTC),
            success=success,
            error_message=error_message,
        )

        try:
            await self.client.collection(self.collection).add(
                entry.model_dump(by_alias=True, mode="python")
            )
        except Exception as e:
            logger.error(
                "audit_log_write_failed",
                action=action.value,
                actor_uid=actor_uid,
                error=str(e),
            )
            return False

        logger.info(
            "audit_log_written",
            action=action.value,
            actor_uid=actor_uid,
            target_uid=target_uid,
            success=success,
        )
        return True

    async def list_for_business(self, business_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent entries recorded for a business."""
        query = (
            self.client.collection(self.collection)
            .where(filter=FieldFilter("businessId", "==", business_id))
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        return [snapshot.to_dict() or {} async for snapshot in query.stream()]
