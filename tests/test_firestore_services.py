"""Tests for the Firestore-backed profile, business and audit services."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from app.schemas.audit import AuditAction, RequestOrigin
from app.services.audit_service import AuditService
from app.services.business_service import BusinessService
from app.services.user_service import UserService


def snapshot(doc_id: str, data: dict | None):
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = data is not None
    snap.to_dict.return_value = data
    return snap


def stream_of(*snapshots):
    async def stream():
        for snap in snapshots:
            yield snap

    return stream


@pytest.mark.asyncio
class TestUserService:
    async def test_missing_profile_is_none(self):
        client = MagicMock()
        client.collection.return_value.document.return_value.get = AsyncMock(
            return_value=snapshot("u1", None)
        )

        assert await UserService(client).get_profile("u1") is None
        client.collection.assert_called_with("users")

    async def test_update_stamps_updated_at(self):
        client = MagicMock()
        update = AsyncMock()
        client.collection.return_value.document.return_value.update = update

        await UserService(client).update_profile("u1", {"role": "viewer"})

        payload = update.call_args.args[0]
        assert payload["role"] == "viewer"
        assert "updatedAt" in payload

    async def test_list_business_profiles(self):
        client = MagicMock()
        query = client.collection.return_value.where.return_value
        query.stream = stream_of(snapshot("u1", {"role": "viewer"}), snapshot("u2", {}))

        profiles = await UserService(client).list_business_profiles("B1")

        assert profiles == {"u1": {"role": "viewer"}, "u2": {}}

    def test_new_profile_shape(self):
        profile = UserService.new_profile(
            uid="u1",
            email="u1@example.com",
            display_name="User One",
            role="viewer",
            business_id="B1",
            created_by="admin-a",
        )

        assert profile["businessId"] == "B1"
        assert profile["createdBy"] == "admin-a"
        assert profile["status"] == "active"
        assert profile["isOwner"] is False
        assert "lastLogin" not in profile


@pytest.mark.asyncio
class TestBusinessService:
    async def test_existing_business_left_alone(self):
        client = MagicMock()
        doc = client.collection.return_value.document.return_value
        doc.get = AsyncMock(return_value=snapshot("B1", {"name": "Acme"}))
        doc.set = AsyncMock()

        created = await BusinessService(client).ensure_business("B1", "admin-a", "Acme")

        assert created is False
        doc.set.assert_not_called()

    async def test_missing_business_created_with_defaults(self):
        client = MagicMock()
        doc = client.collection.return_value.document.return_value
        doc.get = AsyncMock(return_value=snapshot("B1", None))
        doc.set = AsyncMock()

        created = await BusinessService(client).ensure_business(
            "B1", "admin-a", "Acme", "owner@example.com"
        )

        assert created is True
        data = doc.set.call_args.args[0]
        assert data["ownerId"] == "admin-a"
        assert data["status"] == "active"
        assert data["settings"]["currency"] == "PKR"


@pytest.mark.asyncio
class TestAuditService:
    async def test_entry_written_with_redacted_details(self):
        client = MagicMock()
        add = AsyncMock()
        client.collection.return_value.add = add

        stored = await AuditService(client).log_event(
            AuditAction.PASSWORD_RESET,
            "admin-a",
            success=True,
            target_uid="u1",
            business_id="B1",
            details={"resetLink": "https://secret", "reason": "forgot"},
            origin=RequestOrigin(ip_address="203.0.113.5", user_agent="pytest"),
        )

        assert stored is True
        client.collection.assert_called_with("auditLogs")
        entry = add.call_args.args[0]
        assert entry["action"] == "PASSWORD_RESET"
        assert entry["actorUid"] == "admin-a"
        assert entry["details"] == {"resetLink": "***", "reason": "forgot"}
        assert entry["ipAddress"] == "203.0.113.5"

    async def test_write_failure_is_swallowed(self):
        client = MagicMock()
        client.collection.return_value.add = AsyncMock(side_effect=RuntimeError("down"))

        stored = await AuditService(client).log_event(
            AuditAction.USER_DELETED, "admin-a", success=True
        )

        assert stored is False

    async def test_list_for_business(self):
        client = MagicMock()
        query = (
            client.collection.return_value.where.return_value.order_by.return_value.limit.return_value
        )
        query.stream = stream_of(snapshot("e1", {"action": "USER_CREATED"}))

        entries = await AuditService(client).list_for_business("B1", limit=10)

        assert entries == [{"action": "USER_CREATED"}]
        client.collection.return_value.where.return_value.order_by.return_value.limit.assert_called_with(
            10
        )
