"""RecordStore: per-entity data access with a request-scoped cache.

A store is bound to one ``AsyncSession`` and lives exactly as long as
that unit of work, so cached rows never leak between requests.  Point
and grouped lookups go through ``KeyedLoader`` instances which collect
every uncached key into a single query.

Stores do not commit.  The caller owning the session decides when the
unit of work ends (see ``CrossCloudAsync.unit_of_work``).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from sqlalchemy import delete, update
from sqlmodel import SQLModel, select

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Hashable, Iterable, Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")
ModelT = TypeVar("ModelT", bound=SQLModel)


class KeyedLoader(Generic[K, V]):
    """Memoizing batch loader.

    ``batch_load`` receives a list of distinct keys and must return one
    value per key, in the same order.  Misses are cached too (as whatever
    the batch function returned for them, usually ``None`` or ``[]``).
    """

    def __init__(
        self,
        batch_load: Callable[[list[K]], Awaitable[Sequence[V]]],
        *,
        name: str = "",
    ) -> None:
        self._batch_load = batch_load
        self._cache: dict[Hashable, V] = {}
        self.name = name or "loader"

    def __contains__(self, key: object) -> bool:
        return key in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    async def load(self, key: K) -> V:
        values = await self.load_many([key])
        return values[0]

    async def load_many(self, keys: Iterable[K]) -> list[V]:
        """Load *keys*, querying only the ones not cached yet."""
        keys = list(keys)
        missing = list(dict.fromkeys(k for k in keys if k not in self._cache))
        if missing:
            values = await self._batch_load(missing)
            if len(values) != len(missing):
                raise ValueError(
                    f"{self.name} returned {len(values)} values for {len(missing)} keys"
                )
            self._cache.update(zip(missing, values, strict=True))
        return [self._cache[k] for k in keys]

    def prime(self, key: K, value: V) -> None:
        self._cache[key] = value

    def clear(self, key: K) -> None:
        self._cache.pop(key, None)

    def clear_all(self) -> None:
        self._cache.clear()


class RecordStore(Generic[ModelT]):
    """Generic CRUD over one table, with a ``by_id`` cache.

    Subclasses set ``model`` and may add loaders with ``loader()`` or
    ``related_loader()``; every registered loader is dropped by
    ``invalidate_all()``.

    ``update()`` refreshes a single cache entry.  ``update_where()`` and
    ``delete_where()`` clear every loader because the affected keys are
    not known up front.  None of the writes do optimistic locking;
    callers that need read-modify-write atomicity lock the row with
    ``first(for_update=True)``.
    """

    model: ClassVar[type[Any]]

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._loaders: list[KeyedLoader[Any, Any]] = []
        self.by_id: KeyedLoader[str, ModelT | None] = self.loader(
            self._load_by_ids, name=f"{self.table_name}.by_id"
        )

    @property
    def session(self) -> AsyncSession:
        return self._session

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    def loader(
        self,
        batch_load: Callable[[list[K]], Awaitable[Sequence[V]]],
        *,
        name: str = "",
    ) -> KeyedLoader[K, V]:
        """Create a loader whose cache is owned (and invalidated) by this store."""
        loader: KeyedLoader[K, V] = KeyedLoader(batch_load, name=name)
        self._loaders.append(loader)
        return loader

    def related_loader(self, field: str, order_by: str) -> KeyedLoader[Any, list[ModelT]]:
        """Loader returning every row whose *field* equals the key, sorted by *order_by*."""
        model = self.model
        column = getattr(model, field)
        order_column = getattr(model, order_by)

        async def batch_load(values: list[Any]) -> list[list[ModelT]]:
            result = await self._session.execute(
                select(model).where(column.in_(values)).order_by(column, order_column)
            )
            grouped: dict[Any, list[ModelT]] = {value: [] for value in values}
            for item in result.scalars().all():
                if self.validate_item(item):
                    grouped[getattr(item, field)].append(item)
            return [grouped[value] for value in values]

        return self.loader(batch_load, name=f"{self.table_name}.{field}")

    async def _load_by_ids(self, ids: list[str]) -> list[ModelT | None]:
        model = self.model
        result = await self._session.execute(select(model).where(model.id.in_(ids)))
        items = {item.id: item for item in result.scalars().all()}
        return [items.get(item_id) for item_id in ids]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def validate_item(self, item: ModelT) -> bool:
        """Return False for rows that exist but must be treated as absent."""
        return True

    def _where(self, conditions: dict[str, Any]) -> list[Any]:
        model = self.model
        return [getattr(model, key) == value for key, value in conditions.items()]

    async def get(self, item_id: str, *, use_cache: bool = True) -> ModelT | None:
        """Point lookup by primary key through the ``by_id`` cache."""
        if not use_cache:
            self.by_id.clear(item_id)
        item = await self.by_id.load(item_id)
        if item is not None and not self.validate_item(item):
            return None
        return item

    async def get_many(self, item_ids: Iterable[str]) -> list[ModelT | None]:
        items = await self.by_id.load_many(item_ids)
        return [item if item is not None and self.validate_item(item) else None for item in items]

    async def first(
        self, *, for_update: bool = False, fresh: bool = False, **conditions: Any
    ) -> ModelT | None:
        """Return the first row matching *conditions*, bypassing the cache.

        With ``for_update`` the row is locked (``SELECT ... FOR UPDATE``)
        until the transaction ends.  Locked or ``fresh`` reads overwrite
        the attributes of an instance already in the identity map.
        """
        query = select(self.model).where(*self._where(conditions)).limit(1)
        if for_update:
            query = query.with_for_update()
        if for_update or fresh:
            query = query.execution_options(populate_existing=True)
        result = await self._session.execute(query)
        return result.scalars().first()

    async def find(self, **conditions: Any) -> list[ModelT]:
        result = await self._session.execute(select(self.model).where(*self._where(conditions)))
        return list(result.scalars().all())

    async def exists(self, **conditions: Any) -> bool:
        return await self.first(**conditions) is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, data: dict[str, Any]) -> ModelT:
        """Insert a row and return it with defaults (id, timestamps) filled in."""
        item = self.model(**data)
        self._session.add(item)
        await self._session.flush()
        self.by_id.prime(item.id, item)
        return item

    @staticmethod
    def _apply(item: ModelT, data: dict[str, Any]) -> None:
        for key, value in data.items():
            setattr(item, key, value)
        if hasattr(item, "updated_at"):
            item.updated_at = datetime.now(UTC)  # type: ignore[attr-defined]

    async def update(self, item_id: str, data: dict[str, Any]) -> ModelT | None:
        """Update the row with *item_id* and refresh its cache entry."""
        item = await self._session.get(self.model, item_id)
        if item is None:
            return None
        self._apply(item, data)
        await self._session.flush()
        self.by_id.prime(item_id, item)
        return item

    async def update_where(
        self, conditions: dict[str, Any], data: dict[str, Any]
    ) -> ModelT | None:
        """Update every row matching *conditions*; return the first one.

        This is how an ownership condition (e.g. ``organization_id``) is
        combined with a write.
        """
        items = await self.find(**conditions)
        for item in items:
            self._apply(item, data)
        if items:
            await self._session.flush()
        self.invalidate_all()
        return items[0] if items else None

    async def update_if(
        self, item_id: str, expected: dict[str, Any], data: dict[str, Any]
    ) -> ModelT | None:
        """Write *data* only while the row still holds the *expected* values.

        The check and the write are one conditional ``UPDATE``, so of two
        concurrent callers expecting the same value at most one succeeds.
        Returns the refreshed row, or None when nothing matched.
        """
        model = self.model
        conditions = [model.id == item_id]
        for key, value in expected.items():
            column = getattr(model, key)
            conditions.append(column.is_(None) if value is None else column == value)
        values = dict(data)
        if hasattr(model, "updated_at"):
            values["updated_at"] = datetime.now(UTC)
        result = await self._session.execute(
            update(model)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.invalidate(item_id)
        if result.rowcount == 0:  # type: ignore[attr-defined]
            return None
        item = await self.first(fresh=True, id=item_id)
        if item is not None:
            self.by_id.prime(item_id, item)
        return item

    async def delete_where(self, conditions: dict[str, Any]) -> int:
        """Delete every row matching *conditions*. Returns the number deleted."""
        result = await self._session.execute(
            delete(self.model).where(*self._where(conditions))
        )
        self.invalidate_all()
        return result.rowcount  # type: ignore[attr-defined]

    async def update_or_create(
        self, defaults: dict[str, Any], rest: dict[str, Any]
    ) -> ModelT:
        """Find a row by *defaults* and update it with *rest*, or create it.

        Not safe against a concurrent insert of the same row unless the
        caller serialises access; the loser fails on the unique constraint.
        """
        if await self.exists(**defaults):
            updated = await self.update_where(defaults, rest)
            assert updated is not None
            return updated
        return await self.create({**defaults, **rest})

    # ------------------------------------------------------------------
    # Cache control
    # ------------------------------------------------------------------

    def invalidate(self, item_id: str) -> None:
        self.by_id.clear(item_id)

    def invalidate_all(self) -> None:
        logger.debug("Clearing %d loader caches for %s", len(self._loaders), self.table_name)
        for loader in self._loaders:
            loader.clear_all()
