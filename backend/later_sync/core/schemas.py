"""
Later Sync - Domain Schemas
===========================

Immutable pydantic models for spaces, content entities and child items.
Every change produces a new copy (``model_copy(update=...)``) so that a
reference held by a reader is always a consistent snapshot.
"""

import enum
from datetime import date, datetime, timezone
from typing import Annotated, Literal, NamedTuple, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from later_sync.core.models import ListStyle, TodoPriority


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==========================================================================
# Enums
# ==========================================================================

class ContentKind(str, enum.Enum):
    """Discriminant of the three content kinds."""
    TODO_LIST = "todo_list"
    LIST = "list"
    NOTE = "note"


class ContentFilter(str, enum.Enum):
    """Filter applied to the unified content view."""
    ALL = "all"
    TODO_LISTS = "todo_lists"
    LISTS = "lists"
    NOTES = "notes"

    @property
    def kinds(self) -> tuple[ContentKind, ...]:
        if self is ContentFilter.ALL:
            return (ContentKind.TODO_LIST, ContentKind.LIST, ContentKind.NOTE)
        return (_FILTER_KINDS[self],)


_FILTER_KINDS = {
    ContentFilter.TODO_LISTS: ContentKind.TODO_LIST,
    ContentFilter.LISTS: ContentKind.LIST,
    ContentFilter.NOTES: ContentKind.NOTE,
}


# ==========================================================================
# Base Schemas
# ==========================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )


class TimestampSchema(BaseSchema):
    """Schema with timestamp fields."""

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


# ==========================================================================
# Spaces
# ==========================================================================

class Space(TimestampSchema):
    """User-defined workspace partitioning content."""

    id: str = Field(default_factory=_new_id)
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None
    is_archived: bool = False
    item_count: int = 0


# ==========================================================================
# Content Entities
# ==========================================================================

class ContentEntity(TimestampSchema):
    """Fields shared by every parent-level content entity."""

    id: str = Field(default_factory=_new_id)
    space_id: str
    sort_order: int = Field(0, ge=0)


class TodoList(ContentEntity):
    """Container for actionable tasks with progress tracking."""

    kind: Literal["todo_list"] = "todo_list"
    name: str
    description: Optional[str] = None
    total_item_count: int = 0
    completed_item_count: int = 0

    @property
    def progress(self) -> float:
        if self.total_item_count == 0:
            return 0.0
        return self.completed_item_count / self.total_item_count


class ReferenceList(ContentEntity):
    """Reference collection such as a shopping list."""

    kind: Literal["list"] = "list"
    name: str
    icon: Optional[str] = None
    style: ListStyle = ListStyle.BULLETS
    total_item_count: int = 0
    checked_item_count: int = 0


class Note(ContentEntity):
    """Standalone documentation item."""

    kind: Literal["note"] = "note"
    title: str
    content: Optional[str] = None
    tags: tuple[str, ...] = ()


Content = Annotated[Union[TodoList, ReferenceList, Note], Field(discriminator="kind")]


# ==========================================================================
# Child Items
# ==========================================================================

class TodoItem(TimestampSchema):
    """Task owned by a todo list."""

    id: str = Field(default_factory=_new_id)
    todo_list_id: str
    title: str
    description: Optional[str] = None
    is_completed: bool = False
    due_date: Optional[datetime] = None
    priority: Optional[TodoPriority] = None
    tags: tuple[str, ...] = ()
    sort_order: int = Field(0, ge=0)

    @property
    def parent_id(self) -> str:
        return self.todo_list_id

    @property
    def is_done(self) -> bool:
        return self.is_completed

    def toggled(self) -> "TodoItem":
        return self.model_copy(update={"is_completed": not self.is_completed})

    def is_due_on(self, day: date) -> bool:
        return self.due_date is not None and self.due_date.date() == day


class ListItem(TimestampSchema):
    """Row owned by a reference list."""

    id: str = Field(default_factory=_new_id)
    list_id: str
    title: str
    notes: Optional[str] = None
    is_checked: bool = False
    sort_order: int = Field(0, ge=0)

    @property
    def parent_id(self) -> str:
        return self.list_id

    @property
    def is_done(self) -> bool:
        return self.is_checked

    def toggled(self) -> "ListItem":
        return self.model_copy(update={"is_checked": not self.is_checked})


ChildItem = Union[TodoItem, ListItem]


# ==========================================================================
# Shared field extraction
# ==========================================================================

class ContentFields(NamedTuple):
    """Kind-independent view of a content entity."""
    kind: ContentKind
    id: str
    space_id: str
    title: str
    sort_order: int
    search_text: tuple[str, ...]


def content_fields(entity: Content) -> ContentFields:
    """Extract the shared display/ordering fields by dispatching on ``kind``."""
    kind = ContentKind(entity.kind)
    if kind is ContentKind.TODO_LIST:
        title = entity.name
        searchable = (entity.name, entity.description or "")
    elif kind is ContentKind.LIST:
        title = entity.name
        searchable = (entity.name,)
    elif kind is ContentKind.NOTE:
        title = entity.title
        searchable = (entity.title, entity.content or "")
    else:  # pragma: no cover - ContentKind is closed
        raise ValueError(f"Unhandled content kind: {kind}")
    return ContentFields(
        kind=kind,
        id=entity.id,
        space_id=entity.space_id,
        title=title,
        sort_order=entity.sort_order,
        search_text=searchable,
    )


# ==========================================================================
# Response Schemas
# ==========================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: Optional[str] = None
    code: Optional[str] = None
    user_message: Optional[str] = None
    retryable: bool = False
    context: dict = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    environment: str
    database: str


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str
    success: bool = True
