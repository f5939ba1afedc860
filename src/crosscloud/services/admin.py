"""AdminService: organization-wide operations for administrators."""

from __future__ import annotations

from typing import TYPE_CHECKING

from crosscloud.authorization import require_administrator
from crosscloud.exceptions import NotFoundError

from .keys import KeyExchangeService

if TYPE_CHECKING:
    from crosscloud.db import UnitOfWork
    from crosscloud.models import Share, User


class AdminService:
    """Operations an administrator runs on behalf of their organization.

    Bound to the acting user.  Every method checks the role first, so a
    non-administrator gets ``PermissionDeniedError`` before anything is
    read.  Users of other organizations are reported as missing.
    """

    def __init__(self, user: User, keys: KeyExchangeService | None = None) -> None:
        self.user = user
        self.keys = keys or KeyExchangeService()

    async def get_user(self, uow: UnitOfWork, user_id: str) -> User:
        require_administrator(self.user)
        user = await uow.users.get(user_id)
        if user is None or user.organization_id != self.user.organization_id:
            raise NotFoundError("Cannot find user")
        return user

    async def reset_user_keys(self, uow: UnitOfWork, user_id: str) -> User:
        user = await self.get_user(uow, user_id)
        await self.keys.reset_user_keys(uow, user.id)
        return user

    async def load_shares(self, uow: UnitOfWork, user_id: str | None = None) -> list[Share]:
        """Shares of the organization, or only those reachable from *user_id*'s CSPs."""
        require_administrator(self.user)
        organization_id = self.user.organization_id
        if user_id is None:
            return await uow.shares.for_organization.load(organization_id)

        user = await self.get_user(uow, user_id)
        csps = await uow.cloud_storage_providers.for_user.load(user.id)
        found = await uow.shares.for_csp.load_many((csp.type, csp.unique_id) for csp in csps)
        shares: dict[str, Share] = {}
        for share in (s for group in found for s in group):
            if share.organization_id == organization_id:
                shares.setdefault(share.id, share)
        return sorted(shares.values(), key=lambda s: s.name)

    async def load_users(self, uow: UnitOfWork) -> list[User]:
        require_administrator(self.user)
        return list(await uow.users.for_organization.load(self.user.organization_id))
