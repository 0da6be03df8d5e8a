"""Business (tenant) documents backed by Firestore ``businesses/{id}``."""

from datetime import UTC, datetime
from typing import Any

from google.cloud.firestore import AsyncClient
from structlog import get_logger

from app.config import settings
from app.schemas.business import Business

logger = get_logger(__name__)


class BusinessService:
    """Service for business documents."""

    def __init__(self, client: AsyncClient, collection: str | None = None):
        """Initialize service with a Firestore client."""
        self.client = client
        self.collection = collection or settings.businesses_collection

    async def get_business(self, business_id: str) -> dict[str, Any] | None:
        """Get a business document, or None if it does not exist."""
        snapshot = await self.client.collection(self.collection).document(business_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    async def ensure_business(
        self,
        business_id: str,
        owner_id: str,
        name: str,
        email: str | None = None,
    ) -> bool:
        """
        Create the business document if it is missing.

        Returns:
            True if a document was created
        """
        doc_ref = self.client.collection(self.collection).document(business_id)
        snapshot = await doc_ref.get()
        if snapshot.exists:
            return False

        now = datetime.now(UTC)
        business = Business(
            id=business_id,
            name=name,
            email=email,
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
        )
        await doc_ref.set(business.model_dump(by_alias=True, mode="python"))
        logger.info("business_created", business_id=business_id, owner_id=owner_id)
        return True
