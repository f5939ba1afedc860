"""Shared fixtures for CrossCloud tests."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crosscloud import CrossCloudAsync
from crosscloud.db import UnitOfWork, create_engine
from crosscloud.models import (
    ADMINISTRATOR_ROLE,
    CloudStorageProvider,
    Organization,
    Share,
    User,
    create_tables,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(create_tables)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Async session, rolled back after each test."""
    async with session_factory() as s:
        yield s
        await s.rollback()


@pytest.fixture
def uow(session: AsyncSession) -> UnitOfWork:
    return UnitOfWork(session)


@pytest.fixture
async def client(engine: AsyncEngine) -> AsyncIterator[CrossCloudAsync]:
    """Facade on the test engine.

    Do not combine with the ``session`` fixture: the in-memory database
    has a single connection shared by every session.
    """
    cc = CrossCloudAsync(engine=engine)
    yield cc
    await cc.close()


class Seed:
    """Row builders. Each takes the unit of work to write to."""

    @staticmethod
    async def organization(uow: UnitOfWork, **fields: Any) -> Organization:
        return await uow.organizations.create({"name": "Acme", **fields})

    @staticmethod
    async def user(
        uow: UnitOfWork,
        organization: Organization,
        *,
        admin: bool = False,
        **fields: Any,
    ) -> User:
        data: dict[str, Any] = {
            "organization_id": organization.id,
            "email": f"{uuid.uuid4().hex[:8]}@example.com",
            "name": "User",
            "roles": [ADMINISTRATOR_ROLE] if admin else [],
        }
        data.update(fields)
        return await uow.users.create(data)

    @staticmethod
    async def csp(
        uow: UnitOfWork,
        user: User,
        unique_id: str,
        *,
        type: str = "dropbox",
        **fields: Any,
    ) -> CloudStorageProvider:
        data: dict[str, Any] = {
            "csp_id": f"csp-{uuid.uuid4().hex[:8]}",
            "type": type,
            "unique_id": unique_id,
            "display_name": f"{type}:{unique_id}",
        }
        data.update(fields)
        return await uow.cloud_storage_providers.create_for_user(user.id, data)

    @staticmethod
    async def share(
        uow: UnitOfWork,
        organization: Organization,
        storage_unique_ids: list[str],
        *,
        unique_id: str = "folder-1",
        storage_type: str = "dropbox",
        name: str = "Projects",
    ) -> Share:
        return await uow.shares.create_share(
            {
                "name": name,
                "storage_type": storage_type,
                "unique_id": unique_id,
                "storage_unique_ids": storage_unique_ids,
            },
            organization.id,
        )


@pytest.fixture
def seed() -> type[Seed]:
    return Seed
