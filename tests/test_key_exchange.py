"""Tests for KeyExchangeService: user keys and device approval."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlmodel import select

from crosscloud.exceptions import ConflictError, NotFoundError
from crosscloud.models import ShareKey
from crosscloud.services import KeyExchangeService
from crosscloud.types import DeviceKeyData, InitUserKeyInput

if TYPE_CHECKING:
    from crosscloud.db import UnitOfWork


@pytest.fixture
def keys() -> KeyExchangeService:
    return KeyExchangeService()


@pytest.fixture
async def user(uow: UnitOfWork, seed):
    org = await seed.organization(uow)
    return await seed.user(uow, org)


def _init_input(device_id: str = "laptop") -> InitUserKeyInput:
    return InitUserKeyInput(
        public_user_key="PUB",
        device_id=device_id,
        public_device_key=f"DEV-{device_id}",
        encrypted_user_key=f"ENC-{device_id}",
    )


class TestInitUserKey:
    async def test_init(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        key_data = await keys.init_user_key(uow, user, _init_input())
        assert user.public_key == "PUB"
        assert key_data.device_id == "laptop"
        assert key_data.public_device_key == "DEV-laptop"
        assert key_data.encrypted_user_key == "ENC-laptop"
        assert [k.id for k in await keys.encrypted_keys_for(uow, user)] == [key_data.id]

    async def test_only_once(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        await keys.init_user_key(uow, user, _init_input())
        with pytest.raises(ConflictError, match="The public key is already set"):
            await keys.init_user_key(uow, user, _init_input("phone"))
        assert len(await keys.encrypted_keys_for(uow, user)) == 1


class TestRequestDeviceApproval:
    async def test_request(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        request = await keys.request_device_approval(uow, user, "phone", "K1")
        assert request.user_id == user.id
        assert request.device_id == "phone"
        assert request.public_device_key == "K1"

    async def test_rerequest_replaces_key(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        first = await keys.request_device_approval(uow, user, "phone", "K1")
        second = await keys.request_device_approval(uow, user, "phone", "K2")
        assert second.id == first.id
        requests = await keys.approval_requests_for(uow, user)
        assert [(r.device_id, r.public_device_key) for r in requests] == [("phone", "K2")]

    async def test_devices_are_separate(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        await keys.request_device_approval(uow, user, "phone", "K1")
        await keys.request_device_approval(uow, user, "tablet", "K2")
        requests = await keys.approval_requests_for(uow, user)
        assert [r.device_id for r in requests] == ["phone", "tablet"]

    async def test_generic_dialect_falls_back(self, uow: UnitOfWork, user):
        uow.approval_requests.dialect = "mssql"
        first = await uow.approval_requests.request(user.id, "phone", "K1")
        second = await uow.approval_requests.request(user.id, "phone", "K2")
        assert second.id == first.id
        assert second.public_device_key == "K2"


class TestApproveDevice:
    async def test_approve(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        await keys.request_device_approval(uow, user, "phone", "K1")
        key_data = await keys.approve_device(
            uow, user, DeviceKeyData(device_id="phone", public_device_key="K1", encrypted_user_key="E")
        )
        assert key_data.device_id == "phone"
        assert key_data.encrypted_user_key == "E"
        assert await keys.approval_requests_for(uow, user) == []

    async def test_never_requested(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        with pytest.raises(NotFoundError, match="Cannot find the approval request"):
            await keys.approve_device(
                uow,
                user,
                DeviceKeyData(device_id="phone", public_device_key="K1", encrypted_user_key="E"),
            )

    async def test_substituted_key(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        await keys.request_device_approval(uow, user, "phone", "K1")
        with pytest.raises(NotFoundError, match="Cannot find the approval request"):
            await keys.approve_device(
                uow,
                user,
                DeviceKeyData(device_id="phone", public_device_key="EVIL", encrypted_user_key="E"),
            )
        assert len(await keys.approval_requests_for(uow, user)) == 1

    async def test_approve_twice(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        await keys.request_device_approval(uow, user, "phone", "K1")
        data = DeviceKeyData(device_id="phone", public_device_key="K1", encrypted_user_key="E")
        await keys.approve_device(uow, user, data)
        with pytest.raises(NotFoundError):
            await keys.approve_device(uow, user, data)

    async def test_other_users_request(
        self, keys: KeyExchangeService, uow: UnitOfWork, seed, user
    ):
        org = await uow.organizations.get(user.organization_id)
        other = await seed.user(uow, org)
        await keys.request_device_approval(uow, other, "phone", "K1")
        with pytest.raises(NotFoundError):
            await keys.approve_device(
                uow,
                user,
                DeviceKeyData(device_id="phone", public_device_key="K1", encrypted_user_key="E"),
            )


class TestDeclineDevice:
    async def test_decline(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        await keys.request_device_approval(uow, user, "phone", "K1")
        assert await keys.decline_device(uow, user, "phone", "K1")
        assert await keys.approval_requests_for(uow, user) == []

    async def test_nothing_to_decline(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        assert not await keys.decline_device(uow, user, "phone", "K1")

    async def test_key_must_match(self, keys: KeyExchangeService, uow: UnitOfWork, user):
        await keys.request_device_approval(uow, user, "phone", "K1")
        assert not await keys.decline_device(uow, user, "phone", "K2")


class TestResetUserKeys:
    async def test_reset(self, keys: KeyExchangeService, uow: UnitOfWork, seed, user):
        org = await uow.organizations.get(user.organization_id)
        other = await seed.user(uow, org)
        share = await seed.share(uow, org, ["acct1"])
        await keys.init_user_key(uow, user, _init_input())
        await keys.request_device_approval(uow, user, "phone", "K1")
        for owner in (user, other):
            await uow.share_keys.create(
                {"share_id": share.id, "user_id": owner.id, "encrypted_share_key": "E"}
            )

        await keys.reset_user_keys(uow, user.id)

        assert user.public_key is None
        assert await keys.approval_requests_for(uow, user) == []
        assert await keys.encrypted_keys_for(uow, user) == []
        owners = (await uow.session.execute(select(ShareKey.user_id))).scalars().all()
        assert list(owners) == [other.id]

    async def test_key_can_be_initialized_again(
        self, keys: KeyExchangeService, uow: UnitOfWork, user
    ):
        await keys.init_user_key(uow, user, _init_input())
        await keys.reset_user_keys(uow, user.id)
        await keys.init_user_key(uow, user, _init_input("phone"))
        assert [k.device_id for k in await keys.encrypted_keys_for(uow, user)] == ["phone"]
