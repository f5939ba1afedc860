"""Role checks for administrative operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .exceptions import PermissionDeniedError

if TYPE_CHECKING:
    from crosscloud.models import User

ADMIN_RIGHTS_REQUIRED = "Administrator rights required to perform this action"


def is_administrator(user: User) -> bool:
    return user.is_administrator


def require_administrator(user: User) -> None:
    """Raise ``PermissionDeniedError`` unless *user* is an administrator."""
    if not is_administrator(user):
        raise PermissionDeniedError(ADMIN_RIGHTS_REQUIRED)
