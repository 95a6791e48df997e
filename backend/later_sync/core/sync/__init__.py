"""
Later Sync - Sync Engine
========================

Components:
- EntityCollection: per-kind entities plus the child item cache
- UnifiedContentView: merged, filterable view ordered by sort_order
- ReorderCoordinator: optimistic cross-type reordering
- SpaceRegistry: spaces, current space and persisted selection
- Organizer: facade wiring all of the above
"""

from later_sync.core.sync.collections import EntityCollection
from later_sync.core.sync.content import UnifiedContentView
from later_sync.core.sync.organizer import Organizer
from later_sync.core.sync.reorder import ReorderCoordinator, move_item, renumber
from later_sync.core.sync.spaces import SpaceRegistry

__all__ = [
    "EntityCollection",
    "Organizer",
    "ReorderCoordinator",
    "SpaceRegistry",
    "UnifiedContentView",
    "move_item",
    "renumber",
]
