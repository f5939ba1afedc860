"""Restricted read-only views of records.

Other members of a share may see a few fields of each other's users and
storage links, never authentication data or roles.  Resolvers return
these views instead of the ORM rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from crosscloud.models import CloudStorageProvider, User


@dataclass(frozen=True, slots=True)
class CspView:
    """Publicly visible fields of a ``CloudStorageProvider``."""

    id: str
    csp_id: str
    display_name: str
    type: str
    unique_id: str
    user_id: str

    @classmethod
    def from_record(cls, csp: CloudStorageProvider) -> CspView:
        return cls(
            id=csp.id,
            csp_id=csp.csp_id,
            display_name=csp.display_name,
            type=csp.type,
            unique_id=csp.unique_id,
            user_id=csp.user_id,
        )


@dataclass(frozen=True, slots=True)
class UserView:
    """Publicly visible fields of a ``User``."""

    id: str
    email: str
    name: str
    public_key: str | None = None

    @classmethod
    def from_record(cls, user: User) -> UserView:
        return cls(id=user.id, email=user.email, name=user.name, public_key=user.public_key)
