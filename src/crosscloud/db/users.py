"""Stores for organizations, users, and device key exchange rows."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from crosscloud.models.keys import ApprovalRequest, EncryptedUserKeyData
from crosscloud.models.organizations import Organization, User

from .dialect import supports_upsert, upsert
from .store import KeyedLoader, RecordStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class OrganizationStore(RecordStore[Organization]):
    model = Organization


class UserStore(RecordStore[User]):
    """Users; soft-deleted rows are invisible to ``get`` and ``for_organization``."""

    model = User

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.for_organization: KeyedLoader[str, list[User]] = self.related_loader(
            "organization_id", "email"
        )

    def validate_item(self, item: User) -> bool:
        return item.deleted_at is None


class ApprovalRequestStore(RecordStore[ApprovalRequest]):
    """Pending device approvals, one per (user, device)."""

    model = ApprovalRequest

    def __init__(self, session: AsyncSession, dialect: str = "sqlite") -> None:
        super().__init__(session)
        self.dialect = dialect
        self.for_user: KeyedLoader[str, list[ApprovalRequest]] = self.related_loader(
            "user_id", "device_id"
        )

    async def request(
        self, user_id: str, device_id: str, public_device_key: str
    ) -> ApprovalRequest:
        """Stage an approval request, replacing the key of an existing one."""
        if not supports_upsert(self.dialect):
            return await self.update_or_create(
                {"user_id": user_id, "device_id": device_id},
                {"public_device_key": public_device_key},
            )

        now = datetime.now(UTC)
        await upsert(
            self._session,
            self.dialect,
            ApprovalRequest,
            {
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "device_id": device_id,
                "public_device_key": public_device_key,
                "created_at": now,
                "updated_at": now,
            },
            conflict_keys=["user_id", "device_id"],
            update_keys=["public_device_key", "updated_at"],
        )
        self.invalidate_all()
        staged = await self.first(fresh=True, user_id=user_id, device_id=device_id)
        assert staged is not None
        return staged


class EncryptedUserKeyDataStore(RecordStore[EncryptedUserKeyData]):
    """The user key encrypted per device, one row per (user, device)."""

    model = EncryptedUserKeyData

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.for_user: KeyedLoader[str, list[EncryptedUserKeyData]] = self.related_loader(
            "user_id", "device_id"
        )
