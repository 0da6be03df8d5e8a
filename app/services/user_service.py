"""User profile store backed by Firestore ``users/{uid}`` documents."""

from datetime import UTC, datetime
from typing import Any

from google.cloud.firestore import AsyncClient
from google.cloud.firestore_v1 import FieldFilter

from app.config import settings
from app.schemas.users import UserStatus


class UserService:
    """Service for user profile documents."""

    def __init__(self, client: AsyncClient, collection: str | None = None):
        """Initialize service with a Firestore client."""
        self.client = client
        self.collection = collection or settings.users_collection

    def _doc(self, uid: str):
        return self.client.collection(self.collection).document(uid)

    @staticmethod
    def new_profile(
        uid: str,
        email: str | None,
        display_name: str,
        role: str,
        business_id: str,
        created_by: str,
        is_owner: bool = False,
        last_login: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build a profile document; every profile carries a tenant."""
        now = datetime.now(UTC)
        profile = {
            "uid": uid,
            "email": email,
            "displayName": display_name,
            "role": role,
            "status": UserStatus.ACTIVE.value,
            "businessId": business_id,
            "isOwner": is_owner,
            "createdBy": created_by,
            "createdAt": now,
            "updatedAt": now,
            "metadata": metadata or {},
        }
        if last_login is not None:
            profile["lastLogin"] = last_login
        return profile

    async def get_profile(self, uid: str) -> dict[str, Any] | None:
        """Get a profile document, or None if it does not exist."""
        snapshot = await self._doc(uid).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    async def create_profile(self, profile: dict[str, Any]) -> dict[str, Any]:
        """Write a new profile document keyed by its uid."""
        await self._doc(profile["uid"]).set(profile)
        return profile

    async def update_profile(self, uid: str, updates: dict[str, Any]) -> None:
        """Update selected fields of an existing profile."""
        payload = {**updates, "updatedAt": datetime.now(UTC)}
        await self._doc(uid).update(payload)

    async def touch_last_login(self, uid: str) -> None:
        """Record a sign-in."""
        await self._doc(uid).update({"lastLogin": datetime.now(UTC)})

    async def delete_profile(self, uid: str) -> None:
        """Delete a profile document."""
        await self._doc(uid).delete()

    async def list_business_profiles(self, business_id: str) -> dict[str, dict[str, Any]]:
        """Get every profile scoped to a business, keyed by uid."""
        query = self.client.collection(self.collection).where(
            filter=FieldFilter("businessId", "==", business_id)
        )
        return {snapshot.id: snapshot.to_dict() or {} async for snapshot in query.stream()}
