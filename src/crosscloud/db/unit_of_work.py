"""UnitOfWork: a fresh set of stores bound to one session."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .shares import ShareKeyStore, ShareStore
from .storages import CloudStorageProviderStore
from .users import ApprovalRequestStore, EncryptedUserKeyDataStore, OrganizationStore, UserStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from .store import RecordStore


class UnitOfWork:
    """Every store, bound to a single ``AsyncSession``.

    Create one per request or operation and throw it away afterwards;
    the caches inside the stores must not outlive the session.  Writes
    made through any store are visible to the others because they share
    the session (and therefore the transaction).
    """

    def __init__(self, session: AsyncSession, dialect: str = "sqlite") -> None:
        self.session = session
        self.dialect = dialect
        self.organizations = OrganizationStore(session)
        self.users = UserStore(session)
        self.cloud_storage_providers = CloudStorageProviderStore(session)
        self.shares = ShareStore(session)
        self.share_keys = ShareKeyStore(session)
        self.approval_requests = ApprovalRequestStore(session, dialect)
        self.encrypted_user_key_data = EncryptedUserKeyDataStore(session)

    @property
    def stores(self) -> list[RecordStore]:
        return [
            self.organizations,
            self.users,
            self.cloud_storage_providers,
            self.shares,
            self.share_keys,
            self.approval_requests,
            self.encrypted_user_key_data,
        ]

    def invalidate_all(self) -> None:
        """Drop every cached row in every store."""
        for store in self.stores:
            store.invalidate_all()
