"""KeyExchangeService: user keys and the device approval workflow.

A user's key goes through two states: no key, then initialised.  The
first device sets the public user key together with its own encrypted
copy of the private key.  Later devices stage an approval request; an
already approved device answers it with the private key encrypted for
the new device.  Approving consumes the request, so the same approval
cannot be replayed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crosscloud.exceptions import ConflictError, NotFoundError

if TYPE_CHECKING:
    from crosscloud.db import UnitOfWork
    from crosscloud.models import ApprovalRequest, EncryptedUserKeyData, User
    from crosscloud.types import DeviceKeyData, InitUserKeyInput

logger = logging.getLogger(__name__)


class KeyExchangeService:
    """Stateless; every method receives the unit of work to run in."""

    async def init_user_key(
        self, uow: UnitOfWork, user: User, data: InitUserKeyInput
    ) -> EncryptedUserKeyData:
        if user.public_key:
            raise ConflictError("The public key is already set")

        await uow.users.update(user.id, {"public_key": data.public_user_key})
        key_data = await self._store_device_key(uow, user, data.device_key)
        logger.info("Initialized user key for %s on device %s", user.id, data.device_id)
        return key_data

    async def request_device_approval(
        self, uow: UnitOfWork, user: User, device_id: str, public_device_key: str
    ) -> ApprovalRequest:
        """Stage (or re-stage with a new key) an approval for *device_id*."""
        return await uow.approval_requests.request(user.id, device_id, public_device_key)

    async def approve_device(
        self, uow: UnitOfWork, user: User, data: DeviceKeyData
    ) -> EncryptedUserKeyData:
        """Hand the user key to a device that asked for it.

        The staged request must match both the device id and the public
        device key.  A request for the same device with another key is
        reported exactly like a missing one.
        """
        deleted = await uow.approval_requests.delete_where(
            {
                "user_id": user.id,
                "device_id": data.device_id,
                "public_device_key": data.public_device_key,
            }
        )
        if not deleted:
            raise NotFoundError("Cannot find the approval request")

        key_data = await self._store_device_key(uow, user, data)
        logger.info("Approved device %s for %s", data.device_id, user.id)
        return key_data

    async def decline_device(
        self, uow: UnitOfWork, user: User, device_id: str, public_device_key: str
    ) -> bool:
        deleted = await uow.approval_requests.delete_where(
            {"user_id": user.id, "device_id": device_id, "public_device_key": public_device_key}
        )
        return deleted > 0

    async def reset_user_keys(self, uow: UnitOfWork, user_id: str) -> None:
        """Forget every key of *user_id*: user key, devices, pending requests, share keys.

        Members of the user's shares have to hand out new share keys
        afterwards; ``SharesService.users_without_share_keys`` lists them
        again once this commits.
        """
        await uow.users.update(user_id, {"public_key": None})
        requests = await uow.approval_requests.delete_where({"user_id": user_id})
        devices = await uow.encrypted_user_key_data.delete_where({"user_id": user_id})
        share_keys = await uow.share_keys.delete_where({"user_id": user_id})
        logger.info(
            "Reset keys for %s: %d request(s), %d device key(s), %d share key(s)",
            user_id,
            requests,
            devices,
            share_keys,
        )

    async def approval_requests_for(self, uow: UnitOfWork, user: User) -> list[ApprovalRequest]:
        return await uow.approval_requests.for_user.load(user.id)

    async def encrypted_keys_for(self, uow: UnitOfWork, user: User) -> list[EncryptedUserKeyData]:
        return await uow.encrypted_user_key_data.for_user.load(user.id)

    @staticmethod
    async def _store_device_key(
        uow: UnitOfWork, user: User, data: DeviceKeyData
    ) -> EncryptedUserKeyData:
        key_data = await uow.encrypted_user_key_data.create(
            {
                "user_id": user.id,
                "device_id": data.device_id,
                "public_device_key": data.public_device_key,
                "encrypted_user_key": data.encrypted_user_key,
            }
        )
        uow.encrypted_user_key_data.for_user.clear(user.id)
        return key_data
