"""
Later Sync - Organizer
======================

Facade wiring the space registry, the three entity collections, the unified
view and the reorder coordinator around one retry executor.
"""

import asyncio
from typing import Any, Optional

import structlog

from later_sync.core.errors import AppError
from later_sync.core.repositories.base import (
    ContentRepository,
    PreferencesStore,
    SpaceRepository,
)
from later_sync.core.repositories.sql import (
    SqlNoteRepository,
    SqlPreferencesStore,
    SqlReferenceListRepository,
    SqlSpaceRepository,
    SqlStore,
    SqlTodoListRepository,
)
from later_sync.core.retry import RetryExecutor
from later_sync.core.schemas import ContentFilter, ContentKind
from later_sync.core.sync.collections import EntityCollection
from later_sync.core.sync.content import UnifiedContentView
from later_sync.core.sync.reorder import ReorderCoordinator
from later_sync.core.sync.spaces import SpaceRegistry

logger = structlog.get_logger()


class Organizer:
    """
    Entry point of the sync engine.

    Content creation and deletion feed the owning space's stored item count
    through the registry.
    """

    def __init__(
        self,
        spaces: SpaceRepository,
        todo_lists: ContentRepository,
        lists: ContentRepository,
        notes: ContentRepository,
        preferences: PreferencesStore,
        retry: Optional[RetryExecutor] = None,
    ):
        self.retry = retry or RetryExecutor()
        self.spaces = SpaceRegistry(spaces, preferences, self.retry)

        hooks = {
            "on_created": self.spaces.increment_item_count,
            "on_deleted": self.spaces.decrement_item_count,
        }
        self.todo_lists = EntityCollection(ContentKind.TODO_LIST, todo_lists, self.retry, **hooks)
        self.lists = EntityCollection(ContentKind.LIST, lists, self.retry, **hooks)
        self.notes = EntityCollection(ContentKind.NOTE, notes, self.retry, **hooks)

        self.content = UnifiedContentView(self.todo_lists, self.lists, self.notes)
        self.reorderer = ReorderCoordinator(self.content, self.retry)

    @classmethod
    def from_store(cls, store: SqlStore, retry: Optional[RetryExecutor] = None) -> "Organizer":
        """Build an organizer backed by the SQL store."""
        return cls(
            spaces=SqlSpaceRepository(store),
            todo_lists=SqlTodoListRepository(store),
            lists=SqlReferenceListRepository(store),
            notes=SqlNoteRepository(store),
            preferences=SqlPreferencesStore(store),
            retry=retry,
        )

    def collection_for(self, kind: ContentKind | str) -> EntityCollection:
        return self.content.collection_for(kind)

    async def load_space_content(self, space_id: str) -> None:
        """Load the three collections of a space concurrently."""
        await asyncio.gather(
            self.todo_lists.load_for_space(space_id),
            self.lists.load_for_space(space_id),
            self.notes.load_for_space(space_id),
        )
        logger.info(
            "space_content_loaded",
            space_id=space_id,
            total=self.content.total_count(ContentFilter.ALL),
        )

    async def load(self, include_archived: bool = False) -> None:
        """Load spaces, then the content of the current space."""
        await self.spaces.load(include_archived)
        if self.spaces.current_space is not None:
            await self.load_space_content(self.spaces.current_space.id)

    async def switch_space(self, space_id: str) -> None:
        await self.spaces.switch_to(space_id)
        await self.load_space_content(space_id)

    async def reorder(self, content_filter: ContentFilter, old_index: int, new_index: int):
        return await self.reorderer.reorder(content_filter, old_index, new_index)

    @property
    def errors(self) -> dict[str, AppError]:
        components = {
            "spaces": self.spaces.error,
            ContentKind.TODO_LIST.value: self.todo_lists.error,
            ContentKind.LIST.value: self.lists.error,
            ContentKind.NOTE.value: self.notes.error,
        }
        return {name: error for name, error in components.items() if error is not None}

    def snapshot(self) -> dict[str, Any]:
        """Plain view of the observable state."""
        current = self.spaces.current_space
        return {
            "current_space_id": current.id if current is not None else None,
            "space_count": len(self.spaces.spaces),
            "is_loading": self.spaces.is_loading or self.content.is_loading,
            "counts": {
                content_filter.value: self.content.total_count(content_filter)
                for content_filter in ContentFilter
            },
            "errors": {name: error.to_dict() for name, error in self.errors.items()},
        }
