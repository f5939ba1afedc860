"""CrossCloud: encrypted sharing across linked cloud storage accounts.

Share membership, per-member share keys, and device key exchange on top of
SQLModel and SQLAlchemy asyncio.
"""

__version__ = "0.0.1"

from crosscloud._crosscloud_async import CrossCloudAsync
from crosscloud.db import UnitOfWork, create_engine
from crosscloud.events import EventBus, EventType, ShareEvent
from crosscloud.exceptions import (
    ConflictError,
    CrossCloudError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    UserError,
    ValidationError,
    public_message,
)
from crosscloud.services import AdminService, KeyExchangeService, SharesService
from crosscloud.storage_types import StorageType
from crosscloud.types import (
    AddShareKeyInput,
    CspInput,
    DeviceKeyData,
    EncryptedShareKey,
    InitShareKeysInput,
    InitUserKeyInput,
    ShareInput,
)
from crosscloud.views import CspView, UserView

__all__ = [
    "AddShareKeyInput",
    "AdminService",
    "ConflictError",
    "CrossCloudAsync",
    "CrossCloudError",
    "CspInput",
    "CspView",
    "DeviceKeyData",
    "EncryptedShareKey",
    "EventBus",
    "EventType",
    "InitShareKeysInput",
    "InitUserKeyInput",
    "KeyExchangeService",
    "NotFoundError",
    "PermissionDeniedError",
    "ShareEvent",
    "ShareInput",
    "SharesService",
    "StorageError",
    "StorageType",
    "UnitOfWork",
    "UserError",
    "UserView",
    "ValidationError",
    "__version__",
    "create_engine",
    "public_message",
]
