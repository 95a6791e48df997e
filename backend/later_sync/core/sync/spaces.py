"""
Later Sync - Space Registry
===========================

Owns the loaded spaces, the current space, the persisted selection and the
stored per-space item counts.
"""

from typing import Optional

import structlog

from later_sync.core.errors import AppError, ErrorCode, classify, log_error, require_text
from later_sync.core.observable import StateNotifier
from later_sync.core.repositories.base import PreferencesStore, SpaceRepository
from later_sync.core.retry import RetryExecutor
from later_sync.core.schemas import Space

logger = structlog.get_logger()


class SpaceRegistry(StateNotifier):
    """
    Observable set of spaces with a single current space.

    Selection rules:
    - a newly added space becomes current
    - the current space cannot be deleted
    - archiving updates the space in place and keeps the selection
    - on load, the persisted selection wins when it still exists,
      otherwise the first space is selected
    """

    def __init__(
        self,
        repository: SpaceRepository,
        preferences: PreferencesStore,
        retry: RetryExecutor,
    ):
        super().__init__()
        self.repository = repository
        self.preferences = preferences
        self.retry = retry

        self.spaces: tuple[Space, ...] = ()
        self.current_space: Optional[Space] = None
        self.is_loading = False
        self.error: Optional[AppError] = None

    # ======================================================================
    # Helpers
    # ======================================================================

    def _record(self, error: AppError, operation: str, **extra) -> None:
        self.error = error
        log_error(error, context=f"spaces.{operation}", **extra)

    def get(self, space_id: str) -> Optional[Space]:
        return next((s for s in self.spaces if s.id == space_id), None)

    def _replace(self, space: Space) -> None:
        self.spaces = tuple(space if s.id == space.id else s for s in self.spaces)
        if self.current_space is not None and self.current_space.id == space.id:
            self.current_space = space

    async def _persist_selection(self, space_id: str) -> None:
        try:
            await self.preferences.set_last_selected_space_id(space_id)
        except Exception as exc:
            log_error(classify(exc), context="spaces.persist_selection", space_id=space_id)

    async def _restore_selection(self) -> Optional[Space]:
        if not self.spaces:
            return None
        try:
            persisted_id = await self.preferences.get_last_selected_space_id()
        except Exception as exc:
            log_error(classify(exc), context="spaces.restore_selection")
            return self.spaces[0]

        if persisted_id is None:
            return self.spaces[0]

        persisted = self.get(persisted_id)
        if persisted is not None:
            return persisted

        logger.info("stale_space_selection", space_id=persisted_id)
        try:
            await self.preferences.clear_last_selected_space_id()
        except Exception as exc:
            log_error(classify(exc), context="spaces.clear_selection", space_id=persisted_id)
        return self.spaces[0]

    def clear_error(self) -> None:
        self.error = None
        self.notify()

    def clear_current(self) -> None:
        self.current_space = None
        self.notify()

    # ======================================================================
    # Loading
    # ======================================================================

    async def load(self, include_archived: bool = False) -> None:
        """Fetch spaces and resolve the current space if none is selected."""
        self.is_loading = True
        self.error = None
        self.notify()

        try:
            spaces = await self.retry.execute(
                lambda: self.repository.get_spaces(include_archived),
                "load spaces",
            )
        except AppError as error:
            self.spaces = ()
            self._record(error, "load")
        else:
            self.spaces = tuple(spaces)
            if self.current_space is None:
                self.current_space = await self._restore_selection()
            else:
                self.current_space = self.get(self.current_space.id) or self.current_space
        finally:
            self.is_loading = False
            self.notify()

    # ======================================================================
    # Mutations
    # ======================================================================

    async def add(self, space: Space) -> Space:
        """Create a space and make it current."""
        try:
            require_text(space.name, "Space name")
            created = await self.retry.execute(
                lambda: self.repository.create_space(space),
                "create space",
            )
        except AppError as error:
            self._record(error, "add")
            self.notify()
            raise

        self.spaces = self.spaces + (created,)
        self.current_space = created
        self.notify()
        await self._persist_selection(created.id)
        return created

    async def update(self, space: Space) -> Space:
        try:
            require_text(space.name, "Space name")
            updated = await self.retry.execute(
                lambda: self.repository.update_space(space),
                "update space",
            )
        except AppError as error:
            self._record(error, "update", space_id=space.id)
            self.notify()
            raise

        self._replace(updated)
        self.notify()
        return updated

    def _require(self, space_id: str) -> Space:
        space = self.get(space_id)
        if space is None:
            raise AppError(
                ErrorCode.SPACE_NOT_FOUND,
                f"Space not found: {space_id}",
                context={"space_id": space_id},
            )
        return space

    async def archive(self, space_id: str) -> Space:
        return await self.update(self._require(space_id).model_copy(update={"is_archived": True}))

    async def unarchive(self, space_id: str) -> Space:
        return await self.update(self._require(space_id).model_copy(update={"is_archived": False}))

    async def delete(self, space_id: str) -> None:
        """
        Hard-delete a space that is not current.

        Raises:
            AppError: validation_required when ``space_id`` is current
        """
        if self.current_space is not None and self.current_space.id == space_id:
            error = AppError(
                ErrorCode.VALIDATION_REQUIRED,
                "Cannot delete the current space",
                user_message="Switch to another space before deleting this one.",
                context={"field_name": "Current space"},
            )
            self._record(error, "delete", space_id=space_id)
            self.notify()
            raise error

        try:
            await self.retry.execute(
                lambda: self.repository.delete_space(space_id),
                "delete space",
            )
        except AppError as error:
            self._record(error, "delete", space_id=space_id)
            self.notify()
            raise

        self.spaces = tuple(s for s in self.spaces if s.id != space_id)
        self.notify()

        try:
            if await self.preferences.get_last_selected_space_id() == space_id:
                await self.preferences.clear_last_selected_space_id()
        except Exception as exc:
            log_error(classify(exc), context="spaces.clear_selection", space_id=space_id)

    async def switch_to(self, space_id: str) -> Space:
        """
        Make a loaded space current and remember it.

        Raises:
            AppError: space_not_found when the space is not loaded
        """
        space = self._require(space_id)
        self.current_space = space
        self.notify()
        await self._persist_selection(space_id)
        logger.info("space_switched", space_id=space_id)
        return space

    # ======================================================================
    # Item counts
    # ======================================================================

    async def get_item_count(self, space_id: str) -> int:
        return await self.retry.execute(
            lambda: self.repository.get_item_count(space_id),
            "count space items",
        )

    async def _adjust_item_count(self, space_id: str, increment: bool) -> None:
        operation = "increment_item_count" if increment else "decrement_item_count"
        try:
            if increment:
                await self.retry.execute(
                    lambda: self.repository.increment_item_count(space_id),
                    "increment space item count",
                )
            else:
                await self.retry.execute(
                    lambda: self.repository.decrement_item_count(space_id),
                    "decrement space item count",
                )
            refreshed = await self.retry.execute(
                lambda: self.repository.get_space_by_id(space_id),
                "refresh space",
            )
        except AppError as error:
            self._record(error, operation, space_id=space_id)
            self.notify()
            return

        if refreshed is not None:
            self._replace(refreshed)
        self.notify()

    async def increment_item_count(self, space_id: str) -> None:
        await self._adjust_item_count(space_id, increment=True)

    async def decrement_item_count(self, space_id: str) -> None:
        await self._adjust_item_count(space_id, increment=False)
