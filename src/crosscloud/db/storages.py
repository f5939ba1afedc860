"""CloudStorageProviderStore: which users are linked to which external accounts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, or_
from sqlmodel import select

from crosscloud.exceptions import ConflictError, NotFoundError
from crosscloud.models.storages import CloudStorageProvider
from crosscloud.storage_types import StorageType

from .store import KeyedLoader, RecordStore

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

TypeAndUniqueId = tuple[str, str]


class CloudStorageProviderStore(RecordStore[CloudStorageProvider]):
    """Data access for ``cloud_storages``.

    Loaders:

    - ``for_user``: every CSP of a user, ordered by ``unique_id``.
    - ``by_type_and_unique_id``: every CSP pointing at an external account,
      keyed by ``(type, unique_id)``.  A key may map to several rows when
      more than one local user linked the same account.
    """

    model = CloudStorageProvider

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.for_user: KeyedLoader[str, list[CloudStorageProvider]] = self.related_loader(
            "user_id", "unique_id"
        )
        self.by_type_and_unique_id: KeyedLoader[TypeAndUniqueId, list[CloudStorageProvider]] = (
            self.loader(self._load_by_type_and_unique_id, name="cloud_storages.by_type_and_unique_id")
        )

    async def _load_by_type_and_unique_id(
        self, keys: list[TypeAndUniqueId]
    ) -> list[list[CloudStorageProvider]]:
        model = CloudStorageProvider
        clauses = [and_(model.type == t, model.unique_id == u) for t, u in keys]
        result = await self._session.execute(
            select(model).where(or_(*clauses)).order_by(model.created_at, model.id)  # type: ignore[arg-type]
        )
        grouped: dict[TypeAndUniqueId, list[CloudStorageProvider]] = {key: [] for key in keys}
        for csp in result.scalars().all():
            bucket = grouped.get((csp.type, csp.unique_id))
            if bucket is not None:
                bucket.append(csp)
        return [grouped[key] for key in keys]

    async def create_for_user(self, user_id: str, data: dict[str, Any]) -> CloudStorageProvider:
        """Link an external account to *user_id*.

        Linking the same ``(type, unique_id)`` twice for one user fails on
        the unique constraint.
        """
        values = {**data, "user_id": user_id}
        values["type"] = StorageType.validate(values["type"])
        csp = await self.create(values)
        self.for_user.clear(user_id)
        self.by_type_and_unique_id.clear((csp.type, csp.unique_id))
        return csp

    async def delete_by_user_and_csp_id(self, user_id: str, csp_id: str) -> int:
        return await self.delete_where({"user_id": user_id, "csp_id": csp_id})

    async def update_auth_data(
        self,
        user_id: str,
        csp_id: str,
        old_authentication_data: str | None,
        new_authentication_data: str | None,
    ) -> CloudStorageProvider:
        """Compare-and-swap ``authentication_data``.

        The stored value must equal *old_authentication_data* byte for
        byte, otherwise nothing is written and ``ConflictError`` is raised.
        The comparison is repeated inside the ``UPDATE`` itself, so a
        concurrent swap that committed after the read also loses.
        """
        csp = await self.first(for_update=True, user_id=user_id, csp_id=csp_id)
        if csp is None:
            raise NotFoundError("Cannot find cloud storage provider")
        if csp.authentication_data != old_authentication_data:
            raise ConflictError(
                "old_authentication_data is different than authentication_data in the database"
            )
        updated = await self.update_if(
            csp.id,
            {"authentication_data": old_authentication_data},
            {"authentication_data": new_authentication_data},
        )
        if updated is None:
            raise ConflictError(
                "old_authentication_data is different than authentication_data in the database"
            )
        return updated

    async def find_member_csp(
        self, user_id: str, unique_ids: Iterable[str]
    ) -> CloudStorageProvider | None:
        """Return one CSP of *user_id* whose ``unique_id`` is in *unique_ids*."""
        model = CloudStorageProvider
        result = await self._session.execute(
            select(model)
            .where(model.user_id == user_id, model.unique_id.in_(list(unique_ids)))  # type: ignore[attr-defined]
            .limit(1)
        )
        return result.scalars().first()

    async def member_user_ids(
        self, user_ids: Iterable[str], unique_ids: Iterable[str]
    ) -> set[str]:
        """Subset of *user_ids* owning at least one CSP with a ``unique_id`` in *unique_ids*."""
        user_ids = list(user_ids)
        if not user_ids:
            return set()
        model = CloudStorageProvider
        result = await self._session.execute(
            select(model.user_id)
            .where(
                model.user_id.in_(user_ids),  # type: ignore[attr-defined]
                model.unique_id.in_(list(unique_ids)),  # type: ignore[attr-defined]
            )
            .distinct()
        )
        return set(result.scalars().all())
