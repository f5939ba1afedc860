"""SQLModel database models for CrossCloud."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlmodel import SQLModel

from crosscloud.models.keys import ApprovalRequest, EncryptedUserKeyData
from crosscloud.models.organizations import ADMINISTRATOR_ROLE, Organization, User
from crosscloud.models.shares import Share, ShareKey, ShareStorageId
from crosscloud.models.storages import CloudStorageProvider

if TYPE_CHECKING:
    from sqlalchemy import Connection

TABLE_MODELS: tuple[type[SQLModel], ...] = (
    Organization,
    User,
    CloudStorageProvider,
    Share,
    ShareStorageId,
    ShareKey,
    ApprovalRequest,
    EncryptedUserKeyData,
)


def create_tables(connection: Connection) -> None:
    """Create every CrossCloud table that does not exist yet.

    Meant for ``AsyncConnection.run_sync``.
    """
    SQLModel.metadata.create_all(
        connection,
        tables=[model.__table__ for model in TABLE_MODELS],  # type: ignore[attr-defined]
        checkfirst=True,
    )


__all__ = [
    "ADMINISTRATOR_ROLE",
    "TABLE_MODELS",
    "ApprovalRequest",
    "CloudStorageProvider",
    "EncryptedUserKeyData",
    "Organization",
    "Share",
    "ShareKey",
    "ShareStorageId",
    "User",
    "create_tables",
]
