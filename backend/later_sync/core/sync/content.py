"""
Later Sync - Unified Content View
=================================

Merges the three entity collections into one sequence ordered by the
shared ``sort_order`` field.
"""

from datetime import date
from typing import Union

from later_sync.core.observable import StateNotifier
from later_sync.core.schemas import (
    Content,
    ContentFilter,
    ContentKind,
    TodoList,
    content_fields,
)
from later_sync.core.sync.collections import EntityCollection


class UnifiedContentView(StateNotifier):
    """Read model over the todo list, reference list and note collections."""

    def __init__(
        self,
        todo_lists: EntityCollection,
        lists: EntityCollection,
        notes: EntityCollection,
    ):
        super().__init__()
        # Insertion order is the tie-break order for equal sort_order values
        self.collections: dict[ContentKind, EntityCollection] = {
            ContentKind.TODO_LIST: todo_lists,
            ContentKind.LIST: lists,
            ContentKind.NOTE: notes,
        }
        for collection in self.collections.values():
            collection.subscribe(self._on_collection_changed)

    def _on_collection_changed(self, _collection: EntityCollection) -> None:
        self.notify()

    def collection_for(self, kind: Union[ContentKind, str]) -> EntityCollection:
        return self.collections[ContentKind(kind)]

    @property
    def is_loading(self) -> bool:
        return any(c.is_loading for c in self.collections.values())

    def get_filtered(self, content_filter: ContentFilter = ContentFilter.ALL) -> list[Content]:
        """Entities of the selected kinds, ascending by sort_order (stable)."""
        merged: list[Content] = []
        for kind in content_filter.kinds:
            merged.extend(self.collections[kind].entities)
        return sorted(merged, key=lambda e: content_fields(e).sort_order)

    def search(self, query: str) -> list[Content]:
        """Case-insensitive substring search over names, titles and bodies."""
        needle = (query or "").strip().lower()
        everything = self.get_filtered(ContentFilter.ALL)
        if not needle:
            return everything
        return [
            entity
            for entity in everything
            if any(needle in text.lower() for text in content_fields(entity).search_text)
        ]

    def total_count(self, content_filter: ContentFilter = ContentFilter.ALL) -> int:
        return sum(len(self.collections[kind].entities) for kind in content_filter.kinds)

    def todo_lists_due_on(self, day: date) -> list[TodoList]:
        """Todo lists with at least one cached item due on ``day``."""
        collection = self.collections[ContentKind.TODO_LIST]
        due = []
        for todo_list in collection.entities:
            items = collection.cached_children(todo_list.id) or ()
            if any(item.is_due_on(day) for item in items):
                due.append(todo_list)
        return due
