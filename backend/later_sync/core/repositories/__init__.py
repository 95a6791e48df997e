"""
Later Sync - Repositories
=========================

Abstract persistence contracts and their SQLAlchemy implementations.
"""

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

__all__ = [
    "ContentRepository",
    "PreferencesStore",
    "SpaceRepository",
    "SqlNoteRepository",
    "SqlPreferencesStore",
    "SqlReferenceListRepository",
    "SqlSpaceRepository",
    "SqlStore",
    "SqlTodoListRepository",
]
