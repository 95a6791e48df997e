"""
Later Sync - In-Memory Fakes
============================

Repository and preferences doubles with call counting and failure
injection. Failures are queued per method name and raised one per call.
"""

from collections import Counter, defaultdict
from collections.abc import Sequence
from typing import Optional

from later_sync.core.errors import NotFoundError
from later_sync.core.repositories.base import (
    ContentRepository,
    PreferencesStore,
    SpaceRepository,
)
from later_sync.core.schemas import ContentKind, Space

_DONE_COUNT_FIELDS = {
    ContentKind.TODO_LIST: "completed_item_count",
    ContentKind.LIST: "checked_item_count",
}


class _FailureQueue:
    def __init__(self) -> None:
        self.calls: Counter = Counter()
        self.failures: dict[str, list[BaseException]] = defaultdict(list)

    def fail(self, method: str, *errors: BaseException) -> None:
        """Queue ``errors`` to be raised by the next calls of ``method``."""
        self.failures[method].extend(errors)

    def _enter(self, method: str) -> None:
        self.calls[method] += 1
        if self.failures[method]:
            raise self.failures[method].pop(0)


class FakeContentRepository(_FailureQueue, ContentRepository):
    """Dict-backed content repository for one kind."""

    def __init__(self, kind: ContentKind):
        super().__init__()
        self.kind = kind
        self.supports_children = kind in _DONE_COUNT_FIELDS
        self.entities: dict[str, object] = {}
        self.children: dict[str, object] = {}
        # Entity ids whose update always fails with the mapped exception
        self.failing_ids: dict[str, BaseException] = {}

    def seed(self, *entities) -> None:
        for entity in entities:
            self.entities[entity.id] = entity

    def seed_children(self, *items) -> None:
        for item in items:
            self.children[item.id] = item
        for parent_id in {item.parent_id for item in items}:
            self._recount(parent_id)

    # Parents

    async def get_by_space(self, space_id: str) -> list:
        self._enter("get_by_space")
        return sorted(
            (e for e in self.entities.values() if e.space_id == space_id),
            key=lambda e: e.sort_order,
        )

    async def get_by_id(self, entity_id: str):
        self._enter("get_by_id")
        return self.entities.get(entity_id)

    async def create(self, entity):
        self._enter("create")
        orders = [e.sort_order for e in self.entities.values() if e.space_id == entity.space_id]
        created = entity.model_copy(update={"sort_order": max(orders, default=-1) + 1})
        self.entities[created.id] = created
        return created

    async def update(self, entity):
        self._enter("update")
        if entity.id in self.failing_ids:
            raise self.failing_ids[entity.id]
        if entity.id not in self.entities:
            raise NotFoundError(f"{entity.id} not found")
        self.entities[entity.id] = entity
        return entity

    async def delete(self, entity_id: str) -> None:
        self._enter("delete")
        self.entities.pop(entity_id, None)
        self.children = {k: v for k, v in self.children.items() if v.parent_id != entity_id}

    # Children

    def _recount(self, parent_id: str) -> None:
        parent = self.entities.get(parent_id)
        if parent is None:
            return
        items = [i for i in self.children.values() if i.parent_id == parent_id]
        self.entities[parent_id] = parent.model_copy(update={
            "total_item_count": len(items),
            _DONE_COUNT_FIELDS[self.kind]: sum(1 for i in items if i.is_done),
        })

    async def get_child_items_by_parent_id(self, parent_id: str) -> list:
        if not self.supports_children:
            return await super().get_child_items_by_parent_id(parent_id)
        self._enter("get_child_items_by_parent_id")
        return sorted(
            (i for i in self.children.values() if i.parent_id == parent_id),
            key=lambda i: i.sort_order,
        )

    async def create_child_item(self, item):
        if not self.supports_children:
            return await super().create_child_item(item)
        self._enter("create_child_item")
        orders = [i.sort_order for i in self.children.values() if i.parent_id == item.parent_id]
        created = item.model_copy(update={"sort_order": max(orders, default=-1) + 1})
        self.children[created.id] = created
        self._recount(created.parent_id)
        return created

    async def update_child_item(self, item):
        if not self.supports_children:
            return await super().update_child_item(item)
        self._enter("update_child_item")
        if item.id not in self.children:
            raise NotFoundError(f"{item.id} not found")
        self.children[item.id] = item
        self._recount(item.parent_id)
        return item

    async def delete_child_item(self, item_id: str, parent_id: str) -> None:
        if not self.supports_children:
            return await super().delete_child_item(item_id, parent_id)
        self._enter("delete_child_item")
        self.children.pop(item_id, None)
        self._recount(parent_id)

    async def update_child_item_sort_orders(self, items: Sequence) -> None:
        if not self.supports_children:
            return await super().update_child_item_sort_orders(items)
        self._enter("update_child_item_sort_orders")
        for item in items:
            self.children[item.id] = item


class FakeSpaceRepository(_FailureQueue, SpaceRepository):
    """Dict-backed space repository; insertion order is creation order."""

    def __init__(self, *spaces: Space):
        super().__init__()
        self.spaces: dict[str, Space] = {s.id: s for s in spaces}
        self.content: list[FakeContentRepository] = []

    async def get_spaces(self, include_archived: bool = False) -> list[Space]:
        self._enter("get_spaces")
        return [s for s in self.spaces.values() if include_archived or not s.is_archived]

    async def get_space_by_id(self, space_id: str) -> Optional[Space]:
        self._enter("get_space_by_id")
        return self.spaces.get(space_id)

    async def create_space(self, space: Space) -> Space:
        self._enter("create_space")
        self.spaces[space.id] = space
        return space

    async def update_space(self, space: Space) -> Space:
        self._enter("update_space")
        if space.id not in self.spaces:
            raise NotFoundError(f"Space {space.id} not found")
        self.spaces[space.id] = space
        return space

    async def delete_space(self, space_id: str) -> None:
        self._enter("delete_space")
        self.spaces.pop(space_id, None)

    async def _adjust(self, space_id: str, delta: int) -> None:
        space = self.spaces.get(space_id)
        if space is None:
            raise NotFoundError(f"Space {space_id} not found")
        self.spaces[space_id] = space.model_copy(update={"item_count": max(0, space.item_count + delta)})

    async def increment_item_count(self, space_id: str) -> None:
        self._enter("increment_item_count")
        await self._adjust(space_id, 1)

    async def decrement_item_count(self, space_id: str) -> None:
        self._enter("decrement_item_count")
        await self._adjust(space_id, -1)

    async def get_item_count(self, space_id: str) -> int:
        self._enter("get_item_count")
        total = 0
        for repository in self.content:
            total += sum(1 for e in repository.entities.values() if e.space_id == space_id)
        return total


class FakePreferences(_FailureQueue, PreferencesStore):
    """Preferences held in a plain attribute."""

    def __init__(self, last_selected: Optional[str] = None):
        super().__init__()
        self.last_selected = last_selected

    async def get_last_selected_space_id(self) -> Optional[str]:
        self._enter("get")
        return self.last_selected

    async def set_last_selected_space_id(self, space_id: str) -> None:
        self._enter("set")
        self.last_selected = space_id

    async def clear_last_selected_space_id(self) -> None:
        self._enter("clear")
        self.last_selected = None
