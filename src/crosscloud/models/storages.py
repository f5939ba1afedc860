"""CloudStorageProvider model: a user's link to an external storage account."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, UniqueConstraint
from sqlmodel import Field, SQLModel


class CloudStorageProvider(SQLModel, table=True):
    """A connected external storage account belonging to exactly one user.

    ``unique_id`` is assigned by the provider and identifies the external
    account, not the local link.  Several users may hold a row with the
    same ``(type, unique_id)``; that is how a common account is detected.
    ``csp_id`` is generated by the client.
    """

    __tablename__ = "cloud_storages"
    __table_args__ = (
        UniqueConstraint("user_id", "type", "unique_id"),
        UniqueConstraint("user_id", "csp_id"),
        Index("ix_cloud_storages_type_unique_id", "type", "unique_id"),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    csp_id: str
    type: str
    unique_id: str
    display_name: str = Field(default="")
    authentication_data: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
