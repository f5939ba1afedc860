"""Organization and User models.

Both are owned by the surrounding admin console; this package reads
them for scoping and writes only ``User.public_key``.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime
from sqlmodel import Field, SQLModel

ADMINISTRATOR_ROLE = "administrator"


class Organization(SQLModel, table=True):
    """A tenant.  Shares and users are always scoped to one organization."""

    __tablename__ = "organizations"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(default="")
    encryption_enabled: bool = Field(default=False)
    encryption_csps_settings: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_type=JSON,  # type: ignore[invalid-argument-type]
    )
    """Per storage type switches: ``[{"type": "dropbox", "enabled": True}, ...]``."""

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class User(SQLModel, table=True):
    """An account in an organization.

    ``public_key`` is ``None`` until the user initialises encryption on
    their first device (see ``KeyExchangeService.init_user_key``).
    """

    __tablename__ = "users"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", index=True)
    email: str = Field(index=True, unique=True)
    name: str = Field(default="")
    public_key: str | None = Field(default=None)
    roles: list[str] = Field(
        default_factory=list,
        sa_type=JSON,  # type: ignore[invalid-argument-type]
    )
    is_enabled: bool = Field(default=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    deleted_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )

    @property
    def is_administrator(self) -> bool:
        return ADMINISTRATOR_ROLE in (self.roles or [])
