"""
Later Sync - Content API
========================

Unified content view, search, cross-type reorder and per-kind CRUD with
child item endpoints.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from later_sync.api.deps import CurrentSpace, OrganizerDep, patched
from later_sync.core.errors import AppError, ErrorCode, recent_errors
from later_sync.core.models import ListStyle, TodoPriority
from later_sync.core.schemas import (
    Content,
    ContentFilter,
    ContentKind,
    ListItem,
    MessageResponse,
    Note,
    ReferenceList,
    TodoItem,
    TodoList,
)

router = APIRouter(prefix="/content", tags=["content"])


# ==========================================================================
# Schemas
# ==========================================================================

class ReorderRequest(BaseModel):
    """Drag-and-drop move inside the filtered view."""
    filter: ContentFilter = ContentFilter.ALL
    old_index: int = Field(..., ge=0)
    new_index: int = Field(..., ge=0)


class ReorderResponse(BaseModel):
    changed: list[Content]


class TodoListCreate(BaseModel):
    name: str
    description: Optional[str] = None


class TodoListUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ReferenceListCreate(BaseModel):
    name: str
    icon: Optional[str] = None
    style: ListStyle = ListStyle.BULLETS


class ReferenceListUpdate(BaseModel):
    name: Optional[str] = None
    icon: Optional[str] = None
    style: Optional[ListStyle] = None


class NoteCreate(BaseModel):
    title: str
    content: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class NoteUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    tags: Optional[list[str]] = None


class TodoItemCreate(BaseModel):
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: Optional[TodoPriority] = None
    tags: list[str] = Field(default_factory=list)


class TodoItemUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    is_completed: Optional[bool] = None
    due_date: Optional[datetime] = None
    priority: Optional[TodoPriority] = None
    tags: Optional[list[str]] = None


class ListItemCreate(BaseModel):
    title: str
    notes: Optional[str] = None


class ListItemUpdate(BaseModel):
    title: Optional[str] = None
    notes: Optional[str] = None
    is_checked: Optional[bool] = None


class ChildReorderRequest(BaseModel):
    """Child item ids in their new order."""
    item_ids: list[str]


# ==========================================================================
# Unified view
# ==========================================================================

@router.get("", response_model=list[Content])
async def list_content(
    organizer: OrganizerDep,
    filter: ContentFilter = Query(ContentFilter.ALL),
) -> list[Content]:
    """Content of the current space ordered by sort_order."""
    return organizer.content.get_filtered(filter)


@router.get("/search", response_model=list[Content])
async def search_content(
    organizer: OrganizerDep,
    q: str = Query("", description="Case-insensitive substring"),
) -> list[Content]:
    return organizer.content.search(q)


@router.post("/reorder", response_model=ReorderResponse)
async def reorder_content(data: ReorderRequest, organizer: OrganizerDep) -> ReorderResponse:
    """Move one entity; the new order is kept even if some writes fail."""
    changed = await organizer.reorder(data.filter, data.old_index, data.new_index)
    return ReorderResponse(changed=changed)


@router.get("/state")
async def get_state(organizer: OrganizerDep) -> dict:
    """Observable engine state and the most recent logged errors."""
    return {**organizer.snapshot(), "recent_errors": recent_errors(20)}


# ==========================================================================
# Per-kind routers
# ==========================================================================

def _find_entity(organizer, kind: ContentKind, entity_id: str):
    entity = organizer.collection_for(kind).get(entity_id)
    if entity is None:
        raise AppError(ErrorCode.ENTITY_NOT_FOUND, f"{kind.value} not found: {entity_id}")
    return entity


async def _find_child(organizer, kind: ContentKind, parent_id: str, item_id: str):
    collection = organizer.collection_for(kind)
    children = collection.cached_children(parent_id)
    if children is None:
        children = await collection.load_children(parent_id)
    item = next((i for i in children if i.id == item_id), None)
    if item is None:
        raise AppError(ErrorCode.ENTITY_NOT_FOUND, f"Item not found: {item_id}")
    return item


def build_kind_router(
    kind: ContentKind,
    prefix: str,
    entity_schema: type,
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    child_schema: Optional[type] = None,
    child_create_schema: Optional[type[BaseModel]] = None,
    child_update_schema: Optional[type[BaseModel]] = None,
    parent_field: str = "",
) -> APIRouter:
    """CRUD routes for one content kind, plus child routes when it has children."""
    kind_router = APIRouter(prefix=prefix, tags=[kind.value])

    @kind_router.post("", response_model=entity_schema, status_code=status.HTTP_201_CREATED)
    async def create_entity(data: create_schema, organizer: OrganizerDep, space: CurrentSpace):
        entity = entity_schema(space_id=space.id, **data.model_dump())
        return await organizer.collection_for(kind).create(entity)

    @kind_router.put("/{entity_id}", response_model=entity_schema)
    async def update_entity(entity_id: str, data: update_schema, organizer: OrganizerDep):
        entity = _find_entity(organizer, kind, entity_id)
        changes = data.model_dump(exclude_unset=True)
        return await organizer.collection_for(kind).update(patched(entity, changes))

    @kind_router.delete("/{entity_id}", response_model=MessageResponse)
    async def delete_entity(entity_id: str, organizer: OrganizerDep):
        await organizer.collection_for(kind).delete(entity_id)
        return MessageResponse(message=f"{kind.value} deleted")

    @kind_router.get("/{entity_id}/items")
    async def list_items(entity_id: str, organizer: OrganizerDep):
        return list(await organizer.collection_for(kind).load_children(entity_id))

    if child_schema is None:
        return kind_router

    @kind_router.post("/{entity_id}/items", response_model=child_schema, status_code=status.HTTP_201_CREATED)
    async def create_item(entity_id: str, data: child_create_schema, organizer: OrganizerDep):
        item = child_schema(**{parent_field: entity_id}, **data.model_dump())
        return await organizer.collection_for(kind).create_child(item)

    @kind_router.post("/{entity_id}/items/reorder", response_model=list[child_schema])
    async def reorder_items(entity_id: str, data: ChildReorderRequest, organizer: OrganizerDep):
        collection = organizer.collection_for(kind)
        children = {i.id: i for i in await collection.load_children(entity_id)}
        missing = [item_id for item_id in data.item_ids if item_id not in children]
        if missing:
            raise AppError(
                ErrorCode.ENTITY_NOT_FOUND,
                f"Unknown items: {', '.join(missing)}",
                context={"missing_ids": missing},
            )
        ordered = [children[item_id] for item_id in data.item_ids]
        return list(await collection.reorder_children(entity_id, ordered))

    @kind_router.put("/{entity_id}/items/{item_id}", response_model=child_schema)
    async def update_item(entity_id: str, item_id: str, data: child_update_schema, organizer: OrganizerDep):
        item = await _find_child(organizer, kind, entity_id, item_id)
        changes = data.model_dump(exclude_unset=True)
        return await organizer.collection_for(kind).update_child(patched(item, changes))

    @kind_router.delete("/{entity_id}/items/{item_id}", response_model=MessageResponse)
    async def delete_item(entity_id: str, item_id: str, organizer: OrganizerDep):
        await organizer.collection_for(kind).delete_child(item_id, entity_id)
        return MessageResponse(message="Item deleted")

    @kind_router.post("/{entity_id}/items/{item_id}/toggle", response_model=child_schema)
    async def toggle_item(entity_id: str, item_id: str, organizer: OrganizerDep):
        return await organizer.collection_for(kind).toggle_child(item_id, entity_id)

    return kind_router


todo_lists_router = build_kind_router(
    ContentKind.TODO_LIST,
    "/todo-lists",
    TodoList,
    TodoListCreate,
    TodoListUpdate,
    child_schema=TodoItem,
    child_create_schema=TodoItemCreate,
    child_update_schema=TodoItemUpdate,
    parent_field="todo_list_id",
)

lists_router = build_kind_router(
    ContentKind.LIST,
    "/lists",
    ReferenceList,
    ReferenceListCreate,
    ReferenceListUpdate,
    child_schema=ListItem,
    child_create_schema=ListItemCreate,
    child_update_schema=ListItemUpdate,
    parent_field="list_id",
)

notes_router = build_kind_router(ContentKind.NOTE, "/notes", Note, NoteCreate, NoteUpdate)
