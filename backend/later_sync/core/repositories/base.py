"""
Later Sync - Repository Interfaces
==================================

Abstract persistence contracts used by the sync engine. The engine only
ever talks to these; concrete stores live beside them.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Generic, Optional, TypeVar

from later_sync.core.errors import AppError, ErrorCode
from later_sync.core.schemas import ChildItem, Space

E = TypeVar("E")
C = TypeVar("C", bound=ChildItem)


# ==========================================================================
# Content
# ==========================================================================

class ContentRepository(ABC, Generic[E, C]):
    """
    Persistence for one content kind.

    Kinds without children leave ``supports_children`` False and inherit
    the child operations, which refuse with ``operation_not_allowed``.
    """

    supports_children: bool = False

    @abstractmethod
    async def get_by_space(self, space_id: str) -> list[E]:
        """Entities of a space ordered by sort_order."""
        pass

    @abstractmethod
    async def get_by_id(self, entity_id: str) -> Optional[E]:
        pass

    @abstractmethod
    async def create(self, entity: E) -> E:
        """Persist a new entity, assigning the next sort_order in its space."""
        pass

    @abstractmethod
    async def update(self, entity: E) -> E:
        """
        Persist changes to an existing entity.

        Raises:
            NotFoundError: If the entity does not exist
        """
        pass

    @abstractmethod
    async def delete(self, entity_id: str) -> None:
        pass

    # ----------------------------------------------------------------------
    # Children
    # ----------------------------------------------------------------------

    async def get_child_items_by_parent_id(self, parent_id: str) -> list[C]:
        raise self._no_children()

    async def create_child_item(self, item: C) -> C:
        raise self._no_children()

    async def update_child_item(self, item: C) -> C:
        raise self._no_children()

    async def delete_child_item(self, item_id: str, parent_id: str) -> None:
        raise self._no_children()

    async def update_child_item_sort_orders(self, items: Sequence[C]) -> None:
        raise self._no_children()

    def _no_children(self) -> AppError:
        return AppError(
            ErrorCode.OPERATION_NOT_ALLOWED,
            f"{type(self).__name__} has no child items",
        )


# ==========================================================================
# Spaces
# ==========================================================================

class SpaceRepository(ABC):
    """Persistence for spaces and their stored item counts."""

    @abstractmethod
    async def get_spaces(self, include_archived: bool = False) -> list[Space]:
        """Spaces ordered by creation time."""
        pass

    @abstractmethod
    async def get_space_by_id(self, space_id: str) -> Optional[Space]:
        pass

    @abstractmethod
    async def create_space(self, space: Space) -> Space:
        pass

    @abstractmethod
    async def update_space(self, space: Space) -> Space:
        pass

    @abstractmethod
    async def delete_space(self, space_id: str) -> None:
        pass

    @abstractmethod
    async def increment_item_count(self, space_id: str) -> None:
        pass

    @abstractmethod
    async def decrement_item_count(self, space_id: str) -> None:
        pass

    @abstractmethod
    async def get_item_count(self, space_id: str) -> int:
        """Live count of content entities in the space."""
        pass


# ==========================================================================
# Preferences
# ==========================================================================

class PreferencesStore(ABC):
    """Durable key/value preferences."""

    @abstractmethod
    async def get_last_selected_space_id(self) -> Optional[str]:
        pass

    @abstractmethod
    async def set_last_selected_space_id(self, space_id: str) -> None:
        pass

    @abstractmethod
    async def clear_last_selected_space_id(self) -> None:
        pass
