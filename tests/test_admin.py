"""Tests for AdminService and the administrator role check."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from crosscloud.authorization import ADMIN_RIGHTS_REQUIRED, is_administrator, require_administrator
from crosscloud.exceptions import NotFoundError, PermissionDeniedError
from crosscloud.services import AdminService

if TYPE_CHECKING:
    from crosscloud.db import UnitOfWork


@pytest.fixture
async def org(uow: UnitOfWork, seed):
    return await seed.organization(uow)


@pytest.fixture
async def admin(uow: UnitOfWork, seed, org):
    return await seed.user(uow, org, admin=True, email="admin@example.com")


class TestRoleCheck:
    async def test_administrator(self, admin):
        assert is_administrator(admin)
        require_administrator(admin)

    async def test_regular_user(self, uow: UnitOfWork, seed, org):
        user = await seed.user(uow, org)
        assert not is_administrator(user)
        with pytest.raises(PermissionDeniedError, match=ADMIN_RIGHTS_REQUIRED):
            require_administrator(user)

    async def test_every_method_checks(self, uow: UnitOfWork, seed, org):
        user = await seed.user(uow, org)
        service = AdminService(user)
        with pytest.raises(PermissionDeniedError):
            await service.load_users(uow)
        with pytest.raises(PermissionDeniedError):
            await service.load_shares(uow)
        with pytest.raises(PermissionDeniedError):
            await service.reset_user_keys(uow, user.id)
        with pytest.raises(PermissionDeniedError):
            await service.get_user(uow, user.id)


class TestResetUserKeys:
    async def test_reset(self, uow: UnitOfWork, seed, org, admin):
        user = await seed.user(uow, org, public_key="PUB")
        share = await seed.share(uow, org, ["acct1"])
        await uow.share_keys.create(
            {"share_id": share.id, "user_id": user.id, "encrypted_share_key": "E"}
        )
        reset = await AdminService(admin).reset_user_keys(uow, user.id)
        assert reset.id == user.id
        assert reset.public_key is None
        assert await uow.share_keys.user_ids_for_share(share.id) == []

    async def test_user_of_other_organization(self, uow: UnitOfWork, seed, admin):
        other = await seed.organization(uow, name="Other")
        stranger = await seed.user(uow, other, public_key="PUB")
        with pytest.raises(NotFoundError, match="Cannot find user"):
            await AdminService(admin).reset_user_keys(uow, stranger.id)
        assert stranger.public_key == "PUB"

    async def test_missing_user(self, uow: UnitOfWork, admin):
        with pytest.raises(NotFoundError):
            await AdminService(admin).reset_user_keys(uow, "ghost")


class TestLoad:
    async def test_load_users(self, uow: UnitOfWork, seed, org, admin):
        user = await seed.user(uow, org, email="b@example.com")
        other = await seed.organization(uow, name="Other")
        await seed.user(uow, other)
        users = await AdminService(admin).load_users(uow)
        assert [u.id for u in users] == [admin.id, user.id]

    async def test_load_shares(self, uow: UnitOfWork, seed, org, admin):
        await seed.share(uow, org, ["acct1"], unique_id="f1", name="B")
        await seed.share(uow, org, ["acct2"], unique_id="f2", name="A")
        other = await seed.organization(uow, name="Other")
        await seed.share(uow, other, ["acct1"])
        shares = await AdminService(admin).load_shares(uow)
        assert [s.name for s in shares] == ["A", "B"]

    async def test_load_shares_for_user(self, uow: UnitOfWork, seed, org, admin):
        user = await seed.user(uow, org)
        await seed.csp(uow, user, "acct1")
        await seed.csp(uow, user, "acct3", type="box")
        await seed.share(uow, org, ["acct1", "acct2"], unique_id="f1", name="Mine")
        await seed.share(uow, org, ["acct2"], unique_id="f2", name="Theirs")
        await seed.share(uow, org, ["acct3"], unique_id="f3", storage_type="box", name="Box")
        other = await seed.organization(uow, name="Other")
        await seed.share(uow, other, ["acct1"])
        shares = await AdminService(admin).load_shares(uow, user.id)
        assert [s.name for s in shares] == ["Box", "Mine"]
