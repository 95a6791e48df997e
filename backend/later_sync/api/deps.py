"""
Later Sync - API Dependencies
=============================

Shared dependencies for FastAPI endpoints.
"""

from typing import Annotated, Any, TypeVar

from fastapi import Depends, Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from later_sync.core.errors import AppError, ErrorCode, classify
from later_sync.core.schemas import Space
from later_sync.core.sync import Organizer


def get_organizer(request: Request) -> Organizer:
    """Organizer built by the application lifespan."""
    return request.app.state.organizer


async def get_current_space(
    organizer: Annotated[Organizer, Depends(get_organizer)],
) -> Space:
    """
    Current space of the organizer.

    Raises:
        AppError: space_not_found when no space is selected
    """
    current = organizer.spaces.current_space
    if current is None:
        raise AppError(ErrorCode.SPACE_NOT_FOUND, "No space is selected")
    return current


M = TypeVar("M", bound=BaseModel)


def patched(model: M, changes: dict[str, Any]) -> M:
    """
    Revalidated copy of a frozen model with ``changes`` applied.

    Raises:
        AppError: validation_required or validation_invalid_format naming
            the offending field
    """
    try:
        return type(model).model_validate({**model.model_dump(), **changes})
    except PydanticValidationError as exc:
        raise classify(exc) from exc


# ==========================================================================
# Type Aliases for Dependency Injection
# ==========================================================================

OrganizerDep = Annotated[Organizer, Depends(get_organizer)]
CurrentSpace = Annotated[Space, Depends(get_current_space)]
