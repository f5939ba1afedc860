"""CrossCloudAsync: primary async entry point, one unit of work per call."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crosscloud.db import UnitOfWork, create_engine, get_dialect
from crosscloud.events import EventBus, EventType, ShareEvent
from crosscloud.exceptions import GENERIC_ERROR_MESSAGE, NotFoundError, StorageError
from crosscloud.models import create_tables
from crosscloud.services import AdminService, KeyExchangeService, SharesService
from crosscloud.views import CspView, UserView

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from crosscloud.models import (
        ApprovalRequest,
        CloudStorageProvider,
        EncryptedUserKeyData,
        Share,
        ShareKey,
        User,
    )
    from crosscloud.types import (
        AddShareKeyInput,
        CspInput,
        DeviceKeyData,
        InitShareKeysInput,
        InitUserKeyInput,
        ShareInput,
    )

logger = logging.getLogger(__name__)


class CrossCloudAsync:
    """Async facade over the stores and services.

    Every public method runs in its own unit of work: a fresh session and
    fresh caches, committed on success and rolled back on any error.  The
    acting user is passed by id and resolved inside that unit of work, so
    all scoping (organization, membership) happens in the same
    transaction as the change itself.

    Engine-based::

        engine = create_async_engine("postgresql+asyncpg://...")
        cc = CrossCloudAsync(engine=engine)
        await cc.open()
        share = await cc.add_share(user_id, ShareInput(...))

    Events are emitted on ``event_bus`` after the commit.
    """

    def __init__(
        self,
        *,
        engine: AsyncEngine | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        dialect: str | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        if engine is not None and session_factory is not None:
            raise ValueError("Provide engine or session_factory, not both")
        if engine is None and session_factory is None:
            raise ValueError("Provide engine or session_factory")

        if engine is not None:
            session_factory = async_sessionmaker(
                engine, class_=AsyncSession, expire_on_commit=False
            )
            dialect = dialect or get_dialect(engine)
        assert session_factory is not None

        self._engine = engine
        self._owns_engine = False
        self._session_factory = session_factory
        self._dialect = dialect or "sqlite"
        self._event_bus = event_bus or EventBus()

        self.shares = SharesService()
        self.keys = KeyExchangeService()

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False, **kwargs: object) -> CrossCloudAsync:
        """Build an instance owning its engine; ``close()`` disposes it."""
        instance = cls(engine=create_engine(url, echo=echo), **kwargs)  # type: ignore[arg-type]
        instance._owns_engine = True
        return instance

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def dialect(self) -> str:
        return self._dialect

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create missing tables. Needs an engine, not just a session factory."""
        if self._engine is None:
            raise ValueError("open() needs an engine; create tables yourself otherwise")
        async with self._engine.begin() as conn:
            await conn.run_sync(create_tables)

    async def close(self) -> None:
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncGenerator[UnitOfWork]:
        """Yield a ``UnitOfWork`` on a new session.

        Database errors are logged and re-raised as ``StorageError`` with
        a generic message once the transaction has been rolled back.
        Sessions never expire their rows on commit, whatever the factory
        was configured with, so returned rows stay readable.
        """
        session = self._session_factory(expire_on_commit=False)
        try:
            yield UnitOfWork(session, self._dialect)
            await session.commit()
        except DBAPIError as exc:
            await session.rollback()
            logger.exception("Unit of work rolled back on a database error")
            raise StorageError(GENERIC_ERROR_MESSAGE) from exc
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def _emit(self, event_type: EventType, user: User, **fields: str | None) -> None:
        await self._event_bus.emit(
            ShareEvent(
                event_type=event_type,
                user_id=user.id,
                organization_id=user.organization_id,
                **fields,
            )
        )

    @staticmethod
    async def _current_user(uow: UnitOfWork, user_id: str) -> User:
        user = await uow.users.get(user_id)
        if user is None:
            raise NotFoundError("Cannot find the user")
        return user

    @staticmethod
    async def _share(uow: UnitOfWork, user: User, storage_type: str, unique_id: str) -> Share:
        share = await uow.shares.get_by_key(storage_type, unique_id, user.organization_id)
        if share is None:
            raise NotFoundError("Cannot find the share")
        return share

    # ------------------------------------------------------------------
    # Cloud storage providers
    # ------------------------------------------------------------------

    async def add_csp(self, user_id: str, data: CspInput) -> CloudStorageProvider:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            return await uow.cloud_storage_providers.create_for_user(user.id, data.to_dict())

    async def delete_csp(self, user_id: str, csp_id: str) -> bool:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            deleted = await uow.cloud_storage_providers.delete_by_user_and_csp_id(user.id, csp_id)
            return deleted > 0

    async def update_csp_auth_data(
        self,
        user_id: str,
        csp_id: str,
        old_authentication_data: str | None,
        authentication_data: str | None,
    ) -> CloudStorageProvider:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            return await uow.cloud_storage_providers.update_auth_data(
                user.id, csp_id, old_authentication_data, authentication_data
            )

    async def csps_for_user(self, user_id: str) -> list[CloudStorageProvider]:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            return await uow.cloud_storage_providers.for_user.load(user.id)

    # ------------------------------------------------------------------
    # Shares
    # ------------------------------------------------------------------

    async def add_share(self, user_id: str, data: ShareInput) -> Share:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            share = await self.shares.add_share(uow, data, user.organization_id)
        await self._emit(
            EventType.SHARE_CREATED,
            user,
            share_id=share.id,
            storage_type=share.storage_type,
            unique_id=share.unique_id,
        )
        return share

    async def update_share(
        self,
        user_id: str,
        storage_type: str,
        unique_id: str,
        *,
        name: str | None = None,
        storage_unique_ids: list[str] | None = None,
    ) -> Share | None:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            share = await self.shares.update_share(
                uow,
                storage_type,
                unique_id,
                user.organization_id,
                name=name,
                storage_unique_ids=storage_unique_ids,
            )
        if share is not None:
            await self._emit(
                EventType.SHARE_UPDATED,
                user,
                share_id=share.id,
                storage_type=storage_type,
                unique_id=unique_id,
            )
        return share

    async def delete_share(self, user_id: str, storage_type: str, unique_id: str) -> bool:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            deleted = await self.shares.delete_share(
                uow, storage_type, unique_id, user.organization_id
            )
        if deleted:
            await self._emit(
                EventType.SHARE_DELETED, user, storage_type=storage_type, unique_id=unique_id
            )
        return deleted

    async def get_share(self, user_id: str, storage_type: str, unique_id: str) -> Share | None:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            return await uow.shares.get_by_key(storage_type, unique_id, user.organization_id)

    async def shares_for_organization(self, user_id: str) -> list[Share]:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            return await uow.shares.for_organization.load(user.organization_id)

    async def shares_for_csp(self, user_id: str, csp_id: str) -> list[Share]:
        """Shares of the user's organization that list the account behind *csp_id*."""
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            csp = await uow.cloud_storage_providers.first(user_id=user.id, csp_id=csp_id)
            if csp is None:
                raise NotFoundError("Cannot find cloud storage provider")
            return await self.shares.find_for_csp(uow, csp, user.organization_id)

    async def csps_with_share(
        self, user_id: str, storage_type: str, unique_id: str
    ) -> list[CspView]:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            share = await self._share(uow, user, storage_type, unique_id)
            return await self.shares.find_csps_with_share_safe(uow, share)

    async def users_with_share(
        self, user_id: str, storage_type: str, unique_id: str
    ) -> list[UserView]:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            share = await self._share(uow, user, storage_type, unique_id)
            users = await self.shares.users_with_share(uow, share)
            return [UserView.from_record(u) for u in users]

    async def users_without_share_keys(
        self, user_id: str, storage_type: str, unique_id: str
    ) -> list[UserView]:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            share = await self._share(uow, user, storage_type, unique_id)
            users = await self.shares.users_without_share_keys(uow, share)
            return [UserView.from_record(u) for u in users]

    async def has_external_users(self, user_id: str, storage_type: str, unique_id: str) -> bool:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            share = await self._share(uow, user, storage_type, unique_id)
            return await self.shares.has_external_users(uow, share)

    async def is_share_encrypted(self, user_id: str, storage_type: str, unique_id: str) -> bool:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            share = await self._share(uow, user, storage_type, unique_id)
            return await self.shares.is_encrypted(uow, share)

    async def share_key(self, user_id: str, storage_type: str, unique_id: str) -> ShareKey | None:
        """The acting user's own key for a share, if they have one."""
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            share = await self._share(uow, user, storage_type, unique_id)
            return await self.shares.share_key_for_user(uow, share, user)

    # ------------------------------------------------------------------
    # Share keys
    # ------------------------------------------------------------------

    async def init_share_keys(self, user_id: str, data: InitShareKeysInput) -> Share:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            share = await self.shares.init_share_keys(uow, data, user)
        await self._emit(
            EventType.SHARE_KEYS_INITIALIZED,
            user,
            share_id=share.id,
            storage_type=share.storage_type,
            unique_id=share.unique_id,
        )
        return share

    async def add_share_key(self, user_id: str, data: AddShareKeyInput) -> ShareKey:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            share_key = await self.shares.add_share_key(uow, data, user)
        await self._emit(
            EventType.SHARE_KEY_ADDED,
            user,
            subject_id=share_key.user_id,
            share_id=share_key.share_id,
            storage_type=data.storage_type,
            unique_id=data.share_unique_id,
        )
        return share_key

    async def remove_user_from_share(
        self,
        user_id: str,
        storage_type: str,
        storage_unique_id: str,
        share_unique_id: str,
    ) -> bool:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            removed = await self.shares.remove_user_from_share(
                uow, user, storage_type, storage_unique_id, share_unique_id
            )
        if removed:
            await self._emit(
                EventType.USER_REMOVED_FROM_SHARE,
                user,
                storage_type=storage_type,
                unique_id=share_unique_id,
            )
        return removed

    # ------------------------------------------------------------------
    # Key exchange
    # ------------------------------------------------------------------

    async def init_user_key(self, user_id: str, data: InitUserKeyInput) -> EncryptedUserKeyData:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            key_data = await self.keys.init_user_key(uow, user, data)
        await self._emit(EventType.USER_KEY_INITIALIZED, user, device_id=data.device_id)
        return key_data

    async def request_device_approval(
        self, user_id: str, device_id: str, public_device_key: str
    ) -> ApprovalRequest:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            request = await self.keys.request_device_approval(
                uow, user, device_id, public_device_key
            )
        await self._emit(EventType.DEVICE_APPROVAL_REQUESTED, user, device_id=device_id)
        return request

    async def approve_device(self, user_id: str, data: DeviceKeyData) -> EncryptedUserKeyData:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            key_data = await self.keys.approve_device(uow, user, data)
        await self._emit(EventType.DEVICE_APPROVED, user, device_id=data.device_id)
        return key_data

    async def decline_device(self, user_id: str, device_id: str, public_device_key: str) -> bool:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            declined = await self.keys.decline_device(uow, user, device_id, public_device_key)
        if declined:
            await self._emit(EventType.DEVICE_DECLINED, user, device_id=device_id)
        return declined

    async def approval_requests(self, user_id: str) -> list[ApprovalRequest]:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            return await self.keys.approval_requests_for(uow, user)

    async def encrypted_user_keys(self, user_id: str) -> list[EncryptedUserKeyData]:
        async with self.unit_of_work() as uow:
            user = await self._current_user(uow, user_id)
            return await self.keys.encrypted_keys_for(uow, user)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def _admin(self, user: User) -> AdminService:
        return AdminService(user, self.keys)

    async def reset_user_keys(self, admin_id: str, user_id: str) -> UserView:
        async with self.unit_of_work() as uow:
            admin = await self._current_user(uow, admin_id)
            user = await self._admin(admin).reset_user_keys(uow, user_id)
            view = UserView.from_record(user)
        await self._emit(EventType.USER_KEYS_RESET, admin, subject_id=user.id)
        return view

    async def load_shares(self, admin_id: str, user_id: str | None = None) -> list[Share]:
        async with self.unit_of_work() as uow:
            admin = await self._current_user(uow, admin_id)
            return await self._admin(admin).load_shares(uow, user_id)

    async def load_users(self, admin_id: str) -> list[UserView]:
        async with self.unit_of_work() as uow:
            admin = await self._current_user(uow, admin_id)
            users = await self._admin(admin).load_users(uow)
            return [UserView.from_record(u) for u in users]
