"""
Later Sync - SQL Store
======================

SQLAlchemy implementations of the repository interfaces.

Every call opens its own session from the shared sessionmaker and runs
under the store's lock, so concurrent callers (the reorder fan-out, the
parallel content load) never share a session or interleave transactions.
"""

import asyncio
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from later_sync.core.database import AsyncSessionLocal, Base, get_db_session
from later_sync.core.errors import NotFoundError
from later_sync.core.models import (
    ListItemRecord,
    NoteRecord,
    PreferenceRecord,
    ReferenceListRecord,
    SpaceRecord,
    TodoItemRecord,
    TodoListRecord,
)
from later_sync.core.repositories.base import (
    ContentRepository,
    PreferencesStore,
    SpaceRepository,
)
from later_sync.core.schemas import (
    ListItem,
    Note,
    ReferenceList,
    Space,
    TodoItem,
    TodoList,
)

logger = structlog.get_logger()

LAST_SELECTED_SPACE_KEY = "last_selected_space_id"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==========================================================================
# Store
# ==========================================================================

class SqlStore:
    """Shared session factory and lock for all SQL repositories."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self.session_factory = session_factory or AsyncSessionLocal
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """One locked unit of work: commit on success, rollback on error."""
        async with self._lock:
            async with get_db_session(self.session_factory) as session:
                yield session


async def _next_sort_order(session: AsyncSession, column: Any, scope_column: Any, scope_id: str) -> int:
    result = await session.execute(
        select(func.coalesce(func.max(column), -1)).where(scope_column == scope_id)
    )
    return int(result.scalar_one()) + 1


# ==========================================================================
# Content Repositories
# ==========================================================================

class SqlContentRepository(ContentRepository):
    """
    Shared SQL behaviour for the three content kinds.

    Subclasses name their record/schema pair and, for kinds with children,
    the child record/schema pair plus the columns the store keeps in sync.
    """

    model: type[Base]
    schema: type

    # Columns owned by the store, never written from an incoming entity
    counter_fields: tuple[str, ...] = ()

    child_model: Optional[type[Base]] = None
    child_schema: Optional[type] = None
    child_parent_field: str = ""
    child_done_field: str = ""
    parent_done_count_field: str = ""

    def __init__(self, store: SqlStore):
        self.store = store

    # ----------------------------------------------------------------------
    # Conversion
    # ----------------------------------------------------------------------

    def _to_entity(self, record: Base):
        return self.schema.model_validate(record)

    def _values(self, entity) -> dict[str, Any]:
        return entity.model_dump(exclude={"kind", *self.counter_fields})

    def _editable(self, entity) -> dict[str, Any]:
        values = self._values(entity)
        for key in ("id", "space_id", "created_at"):
            values.pop(key, None)
        values["updated_at"] = _utcnow()
        return values

    # ----------------------------------------------------------------------
    # Parents
    # ----------------------------------------------------------------------

    async def get_by_space(self, space_id: str) -> list:
        async with self.store.session() as session:
            result = await session.execute(
                select(self.model)
                .where(self.model.space_id == space_id)
                .order_by(self.model.sort_order, self.model.created_at)
            )
            return [self._to_entity(record) for record in result.scalars().all()]

    async def get_by_id(self, entity_id: str):
        async with self.store.session() as session:
            record = await session.get(self.model, entity_id)
            return self._to_entity(record) if record is not None else None

    async def create(self, entity):
        async with self.store.session() as session:
            values = self._values(entity)
            values["sort_order"] = await _next_sort_order(
                session, self.model.sort_order, self.model.space_id, entity.space_id
            )
            for field in self.counter_fields:
                values[field] = 0
            record = self.model(**values)
            session.add(record)
            await session.flush()
            logger.debug("entity_created", kind=self.schema.__name__, id=record.id)
            return self._to_entity(record)

    async def update(self, entity):
        async with self.store.session() as session:
            record = await session.get(self.model, entity.id)
            if record is None:
                raise NotFoundError(f"{self.schema.__name__} {entity.id} not found")
            for key, value in self._editable(entity).items():
                setattr(record, key, value)
            await session.flush()
            return self._to_entity(record)

    async def delete(self, entity_id: str) -> None:
        async with self.store.session() as session:
            if self.child_model is not None:
                await session.execute(
                    delete(self.child_model).where(
                        getattr(self.child_model, self.child_parent_field) == entity_id
                    )
                )
            await session.execute(delete(self.model).where(self.model.id == entity_id))

    # ----------------------------------------------------------------------
    # Children
    # ----------------------------------------------------------------------

    def _child_parent_column(self):
        return getattr(self.child_model, self.child_parent_field)

    def _child_values(self, item) -> dict[str, Any]:
        return item.model_dump()

    async def _refresh_counts(self, session: AsyncSession, parent_id: str) -> None:
        """Recompute the parent's total and done counts from its children."""
        await session.flush()
        parent_column = self._child_parent_column()
        done_column = getattr(self.child_model, self.child_done_field)
        total = await session.execute(
            select(func.count()).select_from(self.child_model).where(parent_column == parent_id)
        )
        done = await session.execute(
            select(func.count())
            .select_from(self.child_model)
            .where(parent_column == parent_id, done_column.is_(True))
        )
        await session.execute(
            update(self.model)
            .where(self.model.id == parent_id)
            .values(
                total_item_count=int(total.scalar_one()),
                **{self.parent_done_count_field: int(done.scalar_one())},
            )
        )

    async def get_child_items_by_parent_id(self, parent_id: str) -> list:
        async with self.store.session() as session:
            result = await session.execute(
                select(self.child_model)
                .where(self._child_parent_column() == parent_id)
                .order_by(self.child_model.sort_order, self.child_model.created_at)
            )
            return [self.child_schema.model_validate(r) for r in result.scalars().all()]

    async def create_child_item(self, item):
        async with self.store.session() as session:
            parent_id = item.parent_id
            if await session.get(self.model, parent_id) is None:
                raise NotFoundError(f"{self.schema.__name__} {parent_id} not found")
            values = self._child_values(item)
            values["sort_order"] = await _next_sort_order(
                session, self.child_model.sort_order, self._child_parent_column(), parent_id
            )
            record = self.child_model(**values)
            session.add(record)
            await self._refresh_counts(session, parent_id)
            return self.child_schema.model_validate(record)

    async def update_child_item(self, item):
        async with self.store.session() as session:
            record = await session.get(self.child_model, item.id)
            if record is None:
                raise NotFoundError(f"{self.child_schema.__name__} {item.id} not found")
            values = self._child_values(item)
            for key in ("id", "created_at", self.child_parent_field):
                values.pop(key, None)
            values["updated_at"] = _utcnow()
            for key, value in values.items():
                setattr(record, key, value)
            await self._refresh_counts(session, item.parent_id)
            return self.child_schema.model_validate(record)

    async def delete_child_item(self, item_id: str, parent_id: str) -> None:
        async with self.store.session() as session:
            await session.execute(
                delete(self.child_model).where(
                    self.child_model.id == item_id,
                    self._child_parent_column() == parent_id,
                )
            )
            await self._refresh_counts(session, parent_id)

    async def update_child_item_sort_orders(self, items: Sequence) -> None:
        async with self.store.session() as session:
            for item in items:
                await session.execute(
                    update(self.child_model)
                    .where(self.child_model.id == item.id)
                    .values(sort_order=item.sort_order, updated_at=_utcnow())
                )


class SqlTodoListRepository(SqlContentRepository):
    model = TodoListRecord
    schema = TodoList
    counter_fields = ("total_item_count", "completed_item_count")

    supports_children = True
    child_model = TodoItemRecord
    child_schema = TodoItem
    child_parent_field = "todo_list_id"
    child_done_field = "is_completed"
    parent_done_count_field = "completed_item_count"


class SqlReferenceListRepository(SqlContentRepository):
    model = ReferenceListRecord
    schema = ReferenceList
    counter_fields = ("total_item_count", "checked_item_count")

    supports_children = True
    child_model = ListItemRecord
    child_schema = ListItem
    child_parent_field = "list_id"
    child_done_field = "is_checked"
    parent_done_count_field = "checked_item_count"


class SqlNoteRepository(SqlContentRepository):
    model = NoteRecord
    schema = Note


# ==========================================================================
# Spaces
# ==========================================================================

class SqlSpaceRepository(SpaceRepository):
    """Spaces table plus the content tables for live counts."""

    def __init__(self, store: SqlStore):
        self.store = store

    async def get_spaces(self, include_archived: bool = False) -> list[Space]:
        async with self.store.session() as session:
            query = select(SpaceRecord).order_by(SpaceRecord.created_at)
            if not include_archived:
                query = query.where(SpaceRecord.is_archived.is_(False))
            result = await session.execute(query)
            return [Space.model_validate(record) for record in result.scalars().all()]

    async def get_space_by_id(self, space_id: str) -> Optional[Space]:
        async with self.store.session() as session:
            record = await session.get(SpaceRecord, space_id)
            return Space.model_validate(record) if record is not None else None

    async def create_space(self, space: Space) -> Space:
        async with self.store.session() as session:
            values = space.model_dump()
            values["item_count"] = 0
            record = SpaceRecord(**values)
            session.add(record)
            await session.flush()
            logger.debug("space_created", id=record.id)
            return Space.model_validate(record)

    async def update_space(self, space: Space) -> Space:
        async with self.store.session() as session:
            record = await session.get(SpaceRecord, space.id)
            if record is None:
                raise NotFoundError(f"Space {space.id} not found")
            record.name = space.name
            record.icon = space.icon
            record.color = space.color
            record.is_archived = space.is_archived
            record.updated_at = _utcnow()
            await session.flush()
            return Space.model_validate(record)

    async def delete_space(self, space_id: str) -> None:
        async with self.store.session() as session:
            todo_lists = select(TodoListRecord.id).where(TodoListRecord.space_id == space_id)
            lists = select(ReferenceListRecord.id).where(ReferenceListRecord.space_id == space_id)
            await session.execute(delete(TodoItemRecord).where(TodoItemRecord.todo_list_id.in_(todo_lists)))
            await session.execute(delete(ListItemRecord).where(ListItemRecord.list_id.in_(lists)))
            for model in (TodoListRecord, ReferenceListRecord, NoteRecord):
                await session.execute(delete(model).where(model.space_id == space_id))
            await session.execute(delete(SpaceRecord).where(SpaceRecord.id == space_id))

    async def _adjust_item_count(self, space_id: str, delta: int) -> None:
        async with self.store.session() as session:
            record = await session.get(SpaceRecord, space_id)
            if record is None:
                raise NotFoundError(f"Space {space_id} not found")
            record.item_count = max(0, record.item_count + delta)

    async def increment_item_count(self, space_id: str) -> None:
        await self._adjust_item_count(space_id, 1)

    async def decrement_item_count(self, space_id: str) -> None:
        await self._adjust_item_count(space_id, -1)

    async def get_item_count(self, space_id: str) -> int:
        async with self.store.session() as session:
            total = 0
            for model in (TodoListRecord, ReferenceListRecord, NoteRecord):
                result = await session.execute(
                    select(func.count()).select_from(model).where(model.space_id == space_id)
                )
                total += int(result.scalar_one())
            return total


# ==========================================================================
# Preferences
# ==========================================================================

class SqlPreferencesStore(PreferencesStore):
    """Preferences kept as rows of the ``preferences`` table."""

    def __init__(self, store: SqlStore):
        self.store = store

    async def get(self, key: str) -> Optional[str]:
        async with self.store.session() as session:
            record = await session.get(PreferenceRecord, key)
            return record.value if record is not None else None

    async def set(self, key: str, value: str) -> None:
        async with self.store.session() as session:
            record = await session.get(PreferenceRecord, key)
            if record is None:
                session.add(PreferenceRecord(key=key, value=value))
            else:
                record.value = value
                record.updated_at = _utcnow()

    async def remove(self, key: str) -> None:
        async with self.store.session() as session:
            await session.execute(delete(PreferenceRecord).where(PreferenceRecord.key == key))

    async def get_last_selected_space_id(self) -> Optional[str]:
        return await self.get(LAST_SELECTED_SPACE_KEY)

    async def set_last_selected_space_id(self, space_id: str) -> None:
        await self.set(LAST_SELECTED_SPACE_KEY, space_id)

    async def clear_last_selected_space_id(self) -> None:
        await self.remove(LAST_SELECTED_SPACE_KEY)
