"""Data access layer: record stores and the unit of work."""

from crosscloud.db.dialect import get_dialect, supports_upsert, upsert
from crosscloud.db.engine import create_engine
from crosscloud.db.shares import ShareKeyStore, ShareStore
from crosscloud.db.storages import CloudStorageProviderStore
from crosscloud.db.store import KeyedLoader, RecordStore
from crosscloud.db.unit_of_work import UnitOfWork
from crosscloud.db.users import (
    ApprovalRequestStore,
    EncryptedUserKeyDataStore,
    OrganizationStore,
    UserStore,
)

__all__ = [
    "ApprovalRequestStore",
    "CloudStorageProviderStore",
    "EncryptedUserKeyDataStore",
    "KeyedLoader",
    "OrganizationStore",
    "RecordStore",
    "ShareKeyStore",
    "ShareStore",
    "UnitOfWork",
    "UserStore",
    "create_engine",
    "get_dialect",
    "supports_upsert",
    "upsert",
]
