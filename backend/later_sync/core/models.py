"""
Later Sync - Database Models
============================

SQLAlchemy models for the local persistent store.
Rows are converted to immutable domain schemas by the repositories;
nothing outside `later_sync.core.repositories` touches these directly.
"""

import enum
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from later_sync.core.database import Base


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==========================================================================
# Enums
# ==========================================================================

class ListStyle(str, enum.Enum):
    """Display style of a reference list."""
    BULLETS = "bullets"
    NUMBERED = "numbered"
    CHECKBOXES = "checkboxes"
    SIMPLE = "simple"


class TodoPriority(str, enum.Enum):
    """Priority of a task item."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ==========================================================================
# Mixins
# ==========================================================================

class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )


# ==========================================================================
# Models
# ==========================================================================

class SpaceRecord(Base, TimestampMixin):
    """User-defined workspace."""

    __tablename__ = "spaces"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    item_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<Space {self.name}>"


class TodoListRecord(Base, TimestampMixin):
    """Container for actionable tasks."""

    __tablename__ = "todo_lists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    space_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("spaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Maintained by the store on every item mutation
    total_item_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_item_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class TodoItemRecord(Base, TimestampMixin):
    """Single task inside a todo list."""

    __tablename__ = "todo_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    todo_list_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("todo_lists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    priority: Mapped[Optional[TodoPriority]] = mapped_column(Enum(TodoPriority), nullable=True)
    tags: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ReferenceListRecord(Base, TimestampMixin):
    """Reference collection (shopping list, reading list...)."""

    __tablename__ = "lists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    space_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("spaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    style: Mapped[ListStyle] = mapped_column(
        Enum(ListStyle),
        default=ListStyle.BULLETS,
        nullable=False,
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_item_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    checked_item_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ListItemRecord(Base, TimestampMixin):
    """Single row inside a reference list."""

    __tablename__ = "list_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    list_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("lists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_checked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class NoteRecord(Base, TimestampMixin):
    """Standalone note."""

    __tablename__ = "notes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    space_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("spaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class PreferenceRecord(Base):
    """Durable key/value preference."""

    __tablename__ = "preferences"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )
