"""SharesService: share membership, share keys and removal from shares.

Stateless service: every method receives the ``UnitOfWork`` of the
current operation.  Membership is never stored directly.  It is derived
by matching a share's ``(storage_type, storage_unique_ids)`` against
``cloud_storages`` rows, so a user becomes a member the moment they link
an account the share lists.

Methods that write do not commit.  A domain error raised half way
through leaves earlier writes in the session; the owner of the unit of
work must roll back (``CrossCloudAsync.unit_of_work`` does).
"""

from __future__ import annotations

import logging
from itertools import chain
from typing import TYPE_CHECKING

from crosscloud.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from crosscloud.views import CspView

if TYPE_CHECKING:
    from crosscloud.db import UnitOfWork
    from crosscloud.models import CloudStorageProvider, Share, ShareKey, User
    from crosscloud.types import AddShareKeyInput, InitShareKeysInput, ShareInput

logger = logging.getLogger(__name__)


def _distinct_user_ids(csps: list[CloudStorageProvider]) -> list[str]:
    return list(dict.fromkeys(csp.user_id for csp in csps if csp.user_id))


class SharesService:
    """Orchestrates the CSP, share, and share key stores."""

    # ------------------------------------------------------------------
    # Share CRUD
    # ------------------------------------------------------------------

    async def add_share(self, uow: UnitOfWork, data: ShareInput, organization_id: str) -> Share:
        return await uow.shares.create_share(data.to_dict(), organization_id)

    async def update_share(
        self,
        uow: UnitOfWork,
        storage_type: str,
        unique_id: str,
        organization_id: str,
        *,
        name: str | None = None,
        storage_unique_ids: list[str] | None = None,
    ) -> Share | None:
        return await uow.shares.update_by_key(
            storage_type,
            unique_id,
            organization_id,
            name=name,
            storage_unique_ids=storage_unique_ids,
        )

    async def delete_share(
        self, uow: UnitOfWork, storage_type: str, unique_id: str, organization_id: str
    ) -> bool:
        return await uow.shares.delete_by_key(storage_type, unique_id, organization_id)

    # ------------------------------------------------------------------
    # Membership resolution
    # ------------------------------------------------------------------

    async def find_for_csp(
        self, uow: UnitOfWork, csp: CloudStorageProvider, organization_id: str
    ) -> list[Share]:
        """Shares of *organization_id* that list the external account of *csp*."""
        shares = await uow.shares.for_csp.load((csp.type, csp.unique_id))
        return [share for share in shares if share.organization_id == organization_id]

    async def find_csps_with_share(
        self, uow: UnitOfWork, share: Share
    ) -> list[CloudStorageProvider]:
        """Every local CSP pointing at an account listed by *share*.

        One account id can resolve to several CSPs when more than one
        user linked the same external account.
        """
        keys = [(share.storage_type, unique_id) for unique_id in share.storage_unique_ids]
        csps = await uow.cloud_storage_providers.by_type_and_unique_id.load_many(keys)
        return list(chain.from_iterable(csps))

    async def find_csps_with_share_safe(self, uow: UnitOfWork, share: Share) -> list[CspView]:
        return [CspView.from_record(csp) for csp in await self.find_csps_with_share(uow, share)]

    async def users_with_share(self, uow: UnitOfWork, share: Share) -> list[User]:
        """Distinct owners of the CSPs linked to *share*, in first-seen order."""
        user_ids = _distinct_user_ids(await self.find_csps_with_share(uow, share))
        users = await uow.users.get_many(user_ids)
        return [user for user in users if user is not None]

    async def has_external_users(self, uow: UnitOfWork, share: Share) -> bool:
        """True if *share* lists accounts nobody has linked to this system.

        Several CSPs may carry the same ``unique_id`` (one account, many
        users), so distinct ids are compared, not rows.
        """
        csps = await self.find_csps_with_share(uow, share)
        linked = {csp.unique_id for csp in csps}
        return len(share.storage_unique_ids) > len(linked)

    async def users_without_share_keys(self, uow: UnitOfWork, share: Share) -> list[User]:
        """Members of *share* who hold no share key yet."""
        user_ids = _distinct_user_ids(await self.find_csps_with_share(uow, share))
        keyed = set(await uow.share_keys.user_ids_for_share(share.id))
        users = await uow.users.get_many([uid for uid in user_ids if uid not in keyed])
        return [user for user in users if user is not None]

    async def share_key_for_user(
        self, uow: UnitOfWork, share: Share, user: User
    ) -> ShareKey | None:
        return await uow.share_keys.get_by_share_and_user(share.id, user.id)

    async def is_encrypted(self, uow: UnitOfWork, share: Share) -> bool:
        """True when the share has keys and its organization encrypts its storage type."""
        if not share.public_share_key:
            return False
        organization = await uow.organizations.get(share.organization_id)
        if organization is None or not organization.encryption_enabled:
            return False
        settings = next(
            (
                s
                for s in organization.encryption_csps_settings or []
                if s.get("type") == share.storage_type
            ),
            None,
        )
        return bool(settings and settings.get("enabled"))

    async def _require_member(self, uow: UnitOfWork, share: Share, user: User) -> None:
        csp = await uow.cloud_storage_providers.find_member_csp(user.id, share.storage_unique_ids)
        if csp is None:
            raise PermissionDeniedError("You don't belong to the share")

    # ------------------------------------------------------------------
    # Share keys
    # ------------------------------------------------------------------

    async def init_share_keys(
        self, uow: UnitOfWork, data: InitShareKeysInput, current_user: User
    ) -> Share:
        """Set the share's public key and the first batch of member keys.

        Runs at most once per share.  The public key is written with a
        conditional update that only matches while no key is set, so a
        concurrent call that read the share before this one committed still
        fails with ``ConflictError``.  Every key recipient must be a member;
        one bad recipient aborts the lot.
        """
        share = await uow.shares.get_by_key(
            data.storage_type,
            data.share_unique_id,
            current_user.organization_id,
            for_update=True,
        )
        if share is None:
            raise NotFoundError("Cannot find the share")
        if share.public_share_key:
            raise ConflictError("The share has the public key already set up")

        await self._require_member(uow, share, current_user)

        updated = await uow.shares.update_if(
            share.id, {"public_share_key": None}, {"public_share_key": data.public_share_key}
        )
        if updated is None:
            raise ConflictError("The share has the public key already set up")

        storage_unique_ids = share.storage_unique_ids
        members = await uow.cloud_storage_providers.member_user_ids(
            (key.user_id for key in data.encrypted_share_keys), storage_unique_ids
        )
        for key in data.encrypted_share_keys:
            if key.user_id not in members:
                raise PermissionDeniedError(f"User with id {key.user_id} doesn't belong to the share")
            await uow.share_keys.create(
                {
                    "share_id": share.id,
                    "user_id": key.user_id,
                    "encrypted_share_key": key.encrypted_share_key,
                }
            )

        logger.info(
            "Initialized share %s with %d key(s)", share.id, len(data.encrypted_share_keys)
        )
        return updated

    async def add_share_key(
        self, uow: UnitOfWork, data: AddShareKeyInput, current_user: User
    ) -> ShareKey:
        """Add one more member key; only an existing member may vouch for others.

        A second key for the same (share, user) fails on the unique
        constraint and surfaces as a storage error.
        """
        share = await uow.shares.get_by_key(
            data.storage_type, data.share_unique_id, current_user.organization_id
        )
        if share is None:
            raise NotFoundError("Cannot find the share")

        target_user = await uow.users.get(data.user_id)
        if target_user is None:
            raise NotFoundError("Cannot find the user")

        await self._require_member(uow, share, current_user)

        return await uow.share_keys.create(
            {
                "share_id": share.id,
                "user_id": target_user.id,
                "encrypted_share_key": data.encrypted_share_key,
            }
        )

    # ------------------------------------------------------------------
    # Leaving a share
    # ------------------------------------------------------------------

    async def remove_user_from_share(
        self,
        uow: UnitOfWork,
        user: User,
        storage_type: str,
        storage_unique_id: str,
        share_unique_id: str,
    ) -> bool:
        """Drop *user*'s account from a share, deleting the share if nobody is left.

        Returns False when *user* has no CSP for ``(storage_type,
        storage_unique_id)`` or no matching share in their organization.
        The user's share key is left in place.
        """
        csps_dao = uow.cloud_storage_providers
        csps = await csps_dao.by_type_and_unique_id.load((storage_type, storage_unique_id))
        own_csp = next((csp for csp in csps if csp.user_id == user.id), None)
        if own_csp is None:
            return False

        shares = [
            share
            for share in await self.find_for_csp(uow, own_csp, user.organization_id)
            if share.unique_id == share_unique_id
        ]
        if not shares:
            return False

        for share in shares:
            if len(share.storage_unique_ids) <= 1:
                await uow.shares.delete_where({"id": share.id})
            elif len(await self.find_csps_with_share(uow, share)) <= 1:
                # The remaining ids belong to accounts nobody linked locally
                await uow.shares.delete_where({"id": share.id})
            else:
                remaining = [uid for uid in share.storage_unique_ids if uid != storage_unique_id]
                await uow.shares.set_storage_unique_ids(share, remaining)
            csps_dao.by_type_and_unique_id.clear_all()

        return True
