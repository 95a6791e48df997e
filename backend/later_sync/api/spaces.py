"""
Later Sync - Spaces API
=======================

Space CRUD, selection and item counts.
"""

from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from later_sync.api.deps import OrganizerDep, patched
from later_sync.core.errors import AppError, ErrorCode
from later_sync.core.schemas import MessageResponse, Space

router = APIRouter(prefix="/spaces", tags=["spaces"])


# ==========================================================================
# Schemas
# ==========================================================================

class SpaceCreate(BaseModel):
    """Request to create a space."""
    name: str = Field(..., description="Display name")
    icon: Optional[str] = None
    color: Optional[str] = None


class SpaceUpdate(BaseModel):
    """Partial space update."""
    name: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    is_archived: Optional[bool] = None


class ItemCountResponse(BaseModel):
    space_id: str
    item_count: int


# ==========================================================================
# Endpoints
# ==========================================================================

@router.get("", response_model=list[Space])
async def list_spaces(
    organizer: OrganizerDep,
    include_archived: bool = Query(False),
) -> list[Space]:
    """Reload and list spaces."""
    await organizer.spaces.load(include_archived)
    if organizer.spaces.error is not None:
        raise organizer.spaces.error
    return list(organizer.spaces.spaces)


@router.post("", response_model=Space, status_code=status.HTTP_201_CREATED)
async def create_space(data: SpaceCreate, organizer: OrganizerDep) -> Space:
    """Create a space; it becomes the current space."""
    space = await organizer.spaces.add(Space(**data.model_dump()))
    await organizer.load_space_content(space.id)
    return space


@router.get("/current", response_model=Optional[Space])
async def get_current_space(organizer: OrganizerDep) -> Optional[Space]:
    return organizer.spaces.current_space


@router.put("/{space_id}", response_model=Space)
async def update_space(space_id: str, data: SpaceUpdate, organizer: OrganizerDep) -> Space:
    """Update a loaded space (partial)."""
    space = organizer.spaces.get(space_id)
    if space is None:
        raise AppError(ErrorCode.SPACE_NOT_FOUND, f"Space not found: {space_id}")
    changes = data.model_dump(exclude_unset=True)
    return await organizer.spaces.update(patched(space, changes))


@router.post("/{space_id}/archive", response_model=Space)
async def archive_space(space_id: str, organizer: OrganizerDep) -> Space:
    return await organizer.spaces.archive(space_id)


@router.post("/{space_id}/unarchive", response_model=Space)
async def unarchive_space(space_id: str, organizer: OrganizerDep) -> Space:
    return await organizer.spaces.unarchive(space_id)


@router.delete("/{space_id}", response_model=MessageResponse)
async def delete_space(space_id: str, organizer: OrganizerDep) -> MessageResponse:
    """Hard-delete a space that is not current."""
    await organizer.spaces.delete(space_id)
    return MessageResponse(message="Space deleted")


@router.post("/{space_id}/switch", response_model=Space)
async def switch_space(space_id: str, organizer: OrganizerDep) -> Space:
    """Make a space current and load its content."""
    await organizer.switch_space(space_id)
    return organizer.spaces.current_space


@router.get("/{space_id}/item-count", response_model=ItemCountResponse)
async def get_item_count(space_id: str, organizer: OrganizerDep) -> ItemCountResponse:
    count = await organizer.spaces.get_item_count(space_id)
    return ItemCountResponse(space_id=space_id, item_count=count)
