"""ShareStore and ShareKeyStore: shares, their account ids, and per-user keys."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, delete, or_
from sqlmodel import select

from crosscloud.exceptions import ValidationError
from crosscloud.models.shares import Share, ShareKey, ShareStorageId
from crosscloud.storage_types import StorageType

from .store import KeyedLoader, RecordStore

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

TypeAndUniqueId = tuple[str, str]


class ShareStore(RecordStore[Share]):
    """Data access for ``shares`` and ``share_storage_ids``.

    Loaders:

    - ``for_organization``: every share of an organization, ordered by name.
    - ``for_csp``: every share listing an external account, keyed by
      ``(storage_type, storage_unique_id)``.  Results are not filtered by
      organization; callers do that.

    Shares are keyed by ``(storage_type, unique_id, organization_id)``
    rather than by id for every caller-facing write.
    """

    model = Share

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.for_organization: KeyedLoader[str, list[Share]] = self.related_loader(
            "organization_id", "name"
        )
        self.for_csp: KeyedLoader[TypeAndUniqueId, list[Share]] = self.loader(
            self._load_for_csp, name="shares.for_csp"
        )

    async def _load_for_csp(self, keys: list[TypeAndUniqueId]) -> list[list[Share]]:
        clauses = [
            and_(Share.storage_type == storage_type, ShareStorageId.storage_unique_id == unique_id)
            for storage_type, unique_id in keys
        ]
        result = await self._session.execute(
            select(Share)
            .join(ShareStorageId, ShareStorageId.share_id == Share.id)  # type: ignore[arg-type]
            .where(or_(*clauses))
            .order_by(Share.name, Share.id)  # type: ignore[arg-type]
        )
        shares = result.scalars().unique().all()
        return [
            [
                share
                for share in shares
                if share.storage_type == storage_type and unique_id in share.storage_unique_ids
            ]
            for storage_type, unique_id in keys
        ]

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    @staticmethod
    def _replace_members(share: Share, storage_unique_ids: Iterable[str]) -> None:
        # Retained ids keep their rows: the unit of work inserts before it deletes
        # orphans, so re-inserting an id would hit the (share_id, storage_unique_id) key.
        existing = {member.storage_unique_id: member for member in share.members}
        members: list[ShareStorageId] = []
        for position, unique_id in enumerate(dict.fromkeys(storage_unique_ids)):
            member = existing.get(unique_id)
            if member is None:
                member = ShareStorageId(share_id=share.id, storage_unique_id=unique_id)
            member.position = position
            members.append(member)
        share.members = members

    async def set_storage_unique_ids(self, share: Share, storage_unique_ids: Iterable[str]) -> Share:
        """Replace the set of account ids taking part in *share*."""
        self._replace_members(share, storage_unique_ids)
        share.updated_at = datetime.now(UTC)
        await self._session.flush()
        self.invalidate_all()
        return share

    # ------------------------------------------------------------------
    # Natural-key operations
    # ------------------------------------------------------------------

    async def create_share(self, data: dict[str, Any], organization_id: str) -> Share:
        """Create a share in *organization_id*.

        *data* holds ``name``, ``storage_type``, ``unique_id`` and
        ``storage_unique_ids``.
        """
        share = Share(
            organization_id=organization_id,
            name=data["name"],
            storage_type=StorageType.validate(data["storage_type"]),
            unique_id=data["unique_id"],
        )
        self._replace_members(share, data.get("storage_unique_ids", []))
        self._session.add(share)
        await self._session.flush()
        self.invalidate_all()
        self.by_id.prime(share.id, share)
        return share

    async def get_by_key(
        self,
        storage_type: str,
        unique_id: str,
        organization_id: str,
        *,
        for_update: bool = False,
    ) -> Share | None:
        return await self.first(
            for_update=for_update,
            storage_type=storage_type,
            unique_id=unique_id,
            organization_id=organization_id,
        )

    async def update_by_key(
        self,
        storage_type: str,
        unique_id: str,
        organization_id: str,
        *,
        name: str | None = None,
        storage_unique_ids: list[str] | None = None,
    ) -> Share | None:
        """Rename a share and/or replace its account ids. ``None`` if not found."""
        if storage_unique_ids is None and not name:
            raise ValidationError("storage_unique_ids or name is required")
        share = await self.get_by_key(storage_type, unique_id, organization_id)
        if share is None:
            return None
        if name:
            share.name = name
        if storage_unique_ids is not None:
            self._replace_members(share, storage_unique_ids)
        share.updated_at = datetime.now(UTC)
        await self._session.flush()
        self.invalidate_all()
        return share

    async def delete_by_key(self, storage_type: str, unique_id: str, organization_id: str) -> bool:
        deleted = await self.delete_where(
            {
                "storage_type": storage_type,
                "unique_id": unique_id,
                "organization_id": organization_id,
            }
        )
        return deleted > 0

    async def delete_where(self, conditions: dict[str, Any]) -> int:
        """Delete matching shares together with their account ids and share keys."""
        shares = await self.find(**conditions)
        if shares:
            await self._session.execute(
                delete(ShareKey).where(ShareKey.share_id.in_([s.id for s in shares]))  # type: ignore[attr-defined]
            )
            for share in shares:
                await self._session.delete(share)
            await self._session.flush()
            logger.info("Deleted %d share(s) matching %s", len(shares), sorted(conditions))
        self.invalidate_all()
        return len(shares)


class ShareKeyStore(RecordStore[ShareKey]):
    """Data access for ``share_keys``: at most one row per (share, user)."""

    model = ShareKey

    async def get_by_share_and_user(self, share_id: str, user_id: str) -> ShareKey | None:
        return await self.first(share_id=share_id, user_id=user_id)

    async def user_ids_for_share(self, share_id: str) -> list[str]:
        result = await self._session.execute(
            select(ShareKey.user_id).where(ShareKey.share_id == share_id)
        )
        return list(result.scalars().all())
