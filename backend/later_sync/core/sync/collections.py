"""
Later Sync - Entity Collections
===============================

One collection per content kind: the ordered parent entities of the
current space plus a lazily filled cache of child items keyed by parent id.

State is only ever replaced, never mutated in place: ``entities`` is a
tuple of frozen models and the children cache is rebuilt on each change.
"""

from collections.abc import Awaitable, Callable, Sequence
from typing import Generic, Optional, TypeVar

import structlog

from later_sync.core.errors import (
    AppError,
    ErrorCode,
    log_error,
    require_text,
)
from later_sync.core.observable import StateNotifier
from later_sync.core.repositories.base import ContentRepository
from later_sync.core.retry import RetryExecutor
from later_sync.core.schemas import ContentKind, content_fields

logger = structlog.get_logger()

E = TypeVar("E")
C = TypeVar("C")

# Called with the space id after an entity is created or deleted
ItemCountHook = Callable[[str], Awaitable[None]]

_LABELS = {
    ContentKind.TODO_LIST: ("TodoList name", "TodoItem title"),
    ContentKind.LIST: ("List name", "ListItem title"),
    ContentKind.NOTE: ("Note title", "Item title"),
}


class EntityCollection(StateNotifier, Generic[E, C]):
    """Observable, repository-backed collection of one content kind."""

    def __init__(
        self,
        kind: ContentKind,
        repository: ContentRepository,
        retry: RetryExecutor,
        on_created: Optional[ItemCountHook] = None,
        on_deleted: Optional[ItemCountHook] = None,
    ):
        super().__init__()
        self.kind = kind
        self.repository = repository
        self.retry = retry
        self.on_created = on_created
        self.on_deleted = on_deleted

        self.entities: tuple[E, ...] = ()
        self.space_id: Optional[str] = None
        self.is_loading = False
        self.error: Optional[AppError] = None
        self._children: dict[str, tuple[C, ...]] = {}

        self._name_label, self._child_label = _LABELS[kind]

    def __repr__(self) -> str:
        return f"<EntityCollection {self.kind.value} ({len(self.entities)})>"

    # ======================================================================
    # Helpers
    # ======================================================================

    def _record(self, error: AppError, operation: str, **extra) -> None:
        self.error = error
        log_error(error, context=f"{self.kind.value}.{operation}", **extra)

    def _set_entities(self, entities) -> None:
        self.entities = tuple(sorted(entities, key=lambda e: e.sort_order))

    def _replace(self, entity: E) -> bool:
        if not any(e.id == entity.id for e in self.entities):
            return False
        self._set_entities(entity if e.id == entity.id else e for e in self.entities)
        return True

    def _invalidate(self, parent_id: str) -> None:
        if parent_id in self._children:
            self._children = {k: v for k, v in self._children.items() if k != parent_id}

    def _require_children(self) -> None:
        if not self.repository.supports_children:
            raise AppError(
                ErrorCode.OPERATION_NOT_ALLOWED,
                f"{self.kind.value} entities have no child items",
            )

    def get(self, entity_id: str) -> Optional[E]:
        return next((e for e in self.entities if e.id == entity_id), None)

    def report_error(self, error: AppError) -> None:
        """Expose an error raised on this collection's behalf elsewhere."""
        self.error = error
        self.notify()

    def clear_error(self) -> None:
        self.error = None
        self.notify()

    # ======================================================================
    # Parents
    # ======================================================================

    async def load_for_space(self, space_id: str) -> None:
        """Replace the collection with the entities of ``space_id``."""
        self.space_id = space_id
        self.is_loading = True
        self.error = None
        self._children = {}
        self.notify()

        try:
            entities = await self.retry.execute(
                lambda: self.repository.get_by_space(space_id),
                f"load {self.kind.value} for space",
            )
        except AppError as error:
            self.entities = ()
            self._record(error, "load_for_space", space_id=space_id)
        else:
            self._set_entities(entities)
            logger.debug("collection_loaded", kind=self.kind.value, space_id=space_id, count=len(self.entities))
        finally:
            self.is_loading = False
            self.notify()

    async def create(self, entity: E) -> E:
        """
        Persist a new entity and append the stored copy.

        Raises:
            AppError: on validation or persistence failure; memory is untouched
        """
        try:
            require_text(content_fields(entity).title, self._name_label)
            created = await self.retry.execute(
                lambda: self.repository.create(entity),
                f"create {self.kind.value}",
            )
        except AppError as error:
            self._record(error, "create")
            self.notify()
            raise

        self._set_entities(self.entities + (created,))
        self.notify()

        if self.on_created is not None:
            await self.on_created(created.space_id)
        return created

    async def update(self, entity: E) -> E:
        try:
            require_text(content_fields(entity).title, self._name_label)
            updated = await self.retry.execute(
                lambda: self.repository.update(entity),
                f"update {self.kind.value}",
            )
        except AppError as error:
            self._record(error, "update", id=entity.id)
            self.notify()
            raise

        if self._replace(updated):
            self.notify()
        return updated

    async def delete(self, entity_id: str) -> None:
        existing = self.get(entity_id)
        try:
            await self.retry.execute(
                lambda: self.repository.delete(entity_id),
                f"delete {self.kind.value}",
            )
        except AppError as error:
            self._record(error, "delete", id=entity_id)
            self.notify()
            raise

        self.entities = tuple(e for e in self.entities if e.id != entity_id)
        self._invalidate(entity_id)
        self.notify()

        if existing is not None and self.on_deleted is not None:
            await self.on_deleted(existing.space_id)

    def apply_local(self, entities: Sequence[E]) -> None:
        """Swap in updated copies by id without persisting them."""
        updates = {e.id: e for e in entities}
        self._set_entities(updates.get(e.id, e) for e in self.entities)
        self.notify()

    async def _refresh_parent(self, parent_id: str) -> None:
        """Re-read a parent to pick up store-maintained counts."""
        try:
            parent = await self.retry.execute(
                lambda: self.repository.get_by_id(parent_id),
                f"refresh {self.kind.value}",
            )
        except AppError as error:
            # The child mutation already succeeded
            self._record(error, "refresh_parent", id=parent_id)
            return
        if parent is not None:
            self._replace(parent)

    # ======================================================================
    # Children
    # ======================================================================

    def cached_children(self, parent_id: str) -> Optional[tuple[C, ...]]:
        return self._children.get(parent_id)

    async def load_children(self, parent_id: str) -> tuple[C, ...]:
        """Fetch the children of ``parent_id``, overwriting any cache entry."""
        self._require_children()
        try:
            items = await self.retry.execute(
                lambda: self.repository.get_child_items_by_parent_id(parent_id),
                f"load {self.kind.value} items",
            )
        except AppError as error:
            self._invalidate(parent_id)
            self._record(error, "load_children", parent_id=parent_id)
            self.notify()
            raise

        children = tuple(sorted(items, key=lambda i: i.sort_order))
        self._children = {**self._children, parent_id: children}
        self.notify()
        return children

    async def create_child(self, item: C) -> C:
        self._require_children()
        parent_id = item.parent_id
        try:
            require_text(item.title, self._child_label)
            created = await self.retry.execute(
                lambda: self.repository.create_child_item(item),
                f"create {self.kind.value} item",
            )
        except AppError as error:
            self._record(error, "create_child", parent_id=parent_id)
            self.notify()
            raise

        self._invalidate(parent_id)
        await self._refresh_parent(parent_id)
        self.notify()
        return created

    async def update_child(self, item: C) -> C:
        self._require_children()
        parent_id = item.parent_id
        try:
            require_text(item.title, self._child_label)
            updated = await self.retry.execute(
                lambda: self.repository.update_child_item(item),
                f"update {self.kind.value} item",
            )
        except AppError as error:
            self._record(error, "update_child", id=item.id)
            self.notify()
            raise

        self._invalidate(parent_id)
        await self._refresh_parent(parent_id)
        self.notify()
        return updated

    async def delete_child(self, item_id: str, parent_id: str) -> None:
        self._require_children()
        try:
            await self.retry.execute(
                lambda: self.repository.delete_child_item(item_id, parent_id),
                f"delete {self.kind.value} item",
            )
        except AppError as error:
            self._record(error, "delete_child", id=item_id)
            self.notify()
            raise

        self._invalidate(parent_id)
        await self._refresh_parent(parent_id)
        self.notify()

    async def toggle_child(self, item_id: str, parent_id: str) -> C:
        """Flip the done flag of a child item."""
        self._require_children()
        children = self.cached_children(parent_id)
        if children is None:
            children = await self.load_children(parent_id)
        item = next((i for i in children if i.id == item_id), None)
        if item is None:
            raise AppError(
                ErrorCode.ENTITY_NOT_FOUND,
                f"Item {item_id} not found in {self.kind.value} {parent_id}",
            )
        return await self.update_child(item.toggled())

    async def reorder_children(self, parent_id: str, items: Sequence[C]) -> tuple[C, ...]:
        """Persist ``items`` in the given order, renumbered from zero."""
        self._require_children()
        renumbered = tuple(
            item.model_copy(update={"sort_order": index}) for index, item in enumerate(items)
        )
        try:
            await self.retry.execute(
                lambda: self.repository.update_child_item_sort_orders(renumbered),
                f"reorder {self.kind.value} items",
            )
        except AppError as error:
            self._record(error, "reorder_children", parent_id=parent_id)
            self.notify()
            raise

        self._invalidate(parent_id)
        self.notify()
        return renumbered
