"""Share, ShareStorageId and ShareKey models.

``ShareStorageId`` rows hold the set of provider account ids that take
part in a share.  There is deliberately no foreign key from
``storage_unique_id`` to ``cloud_storages``: a share may list accounts
that nobody has linked to this system yet.

This module does not use postponed annotations; SQLModel resolves
``Relationship`` targets from the evaluated annotation.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


class ShareStorageId(SQLModel, table=True):
    """One external account id listed by a share."""

    __tablename__ = "share_storage_ids"
    __table_args__ = (UniqueConstraint("share_id", "storage_unique_id"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    share_id: str = Field(foreign_key="shares.id", ondelete="CASCADE", index=True)
    storage_unique_id: str = Field(index=True)
    position: int = Field(default=0)


class Share(SQLModel, table=True):
    """A named collaboration scope on an external shared object (e.g. a folder).

    Setting ``public_share_key`` marks the share as key-initialised; it is
    written once by ``SharesService.init_share_keys``.
    """

    __tablename__ = "shares"
    __table_args__ = (UniqueConstraint("organization_id", "storage_type", "unique_id"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    name: str = Field(default="")
    storage_type: str = Field(index=True)
    unique_id: str
    public_share_key: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )

    members: list[ShareStorageId] = Relationship(
        sa_relationship_kwargs={
            "lazy": "selectin",
            "cascade": "all, delete-orphan",
            "order_by": "ShareStorageId.position",
        }
    )

    @property
    def storage_unique_ids(self) -> list[str]:
        """Provider account ids taking part in the share, in insertion order."""
        return [member.storage_unique_id for member in self.members]


class ShareKey(SQLModel, table=True):
    """Opaque encrypted share key for one (share, user) pair."""

    __tablename__ = "share_keys"
    __table_args__ = (UniqueConstraint("user_id", "share_id"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    share_id: str = Field(foreign_key="shares.id", ondelete="CASCADE", index=True)
    encrypted_share_key: str
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
