"""
Later Sync - Reorder Coordinator
================================

Cross-type drag-and-drop reordering of the unified content view.

The new order is applied to the in-memory collections first, then every
changed entity is persisted concurrently. Partial failure rolls forward:
memory keeps the new order, and one aggregated error is recorded on every
collection with a failed write and then raised.
"""

import asyncio
from collections.abc import Sequence
from typing import TypeVar

import structlog

from later_sync.core.errors import AppError, ValidationErrors, classify, log_error
from later_sync.core.retry import RetryExecutor
from later_sync.core.schemas import Content, ContentFilter, ContentKind, content_fields
from later_sync.core.sync.content import UnifiedContentView

logger = structlog.get_logger()

T = TypeVar("T")


# ==========================================================================
# Pure helpers
# ==========================================================================

def move_item(items: Sequence[T], old_index: int, new_index: int) -> list[T]:
    """
    Move ``items[old_index]`` so it ends up before the element that was at
    ``new_index``; ``new_index == len(items)`` moves it to the end.
    """
    if new_index > old_index:
        new_index -= 1
    moved = list(items)
    moved.insert(new_index, moved.pop(old_index))
    return moved


def renumber(items: Sequence[Content]) -> list[Content]:
    """Copies of the entities whose sort_order differs from their position."""
    return [
        entity.model_copy(update={"sort_order": position})
        for position, entity in enumerate(items)
        if content_fields(entity).sort_order != position
    ]


# ==========================================================================
# Coordinator
# ==========================================================================

class ReorderCoordinator:
    """Applies a reorder optimistically, then persists it in parallel."""

    def __init__(self, view: UnifiedContentView, retry: RetryExecutor):
        self.view = view
        self.retry = retry

    async def reorder(
        self,
        content_filter: ContentFilter,
        old_index: int,
        new_index: int,
    ) -> list[Content]:
        """
        Move one entity within the filtered view.

        Returns:
            The entities whose sort_order changed

        Raises:
            AppError: out_of_range for bad indices (nothing changes), or one
                aggregated error when some writes fail (memory keeps the move)
        """
        visible = self.view.get_filtered(content_filter)
        size = len(visible)
        if not 0 <= old_index < size:
            raise ValidationErrors.out_of_range("Old index", 0, max(size - 1, 0))
        if not 0 <= new_index <= size:
            raise ValidationErrors.out_of_range("New index", 0, size)

        target = new_index - 1 if new_index > old_index else new_index
        if target == old_index:
            return []

        changed = renumber(move_item(visible, old_index, new_index))

        by_kind: dict[ContentKind, list[Content]] = {}
        for entity in changed:
            by_kind.setdefault(ContentKind(entity.kind), []).append(entity)
        for kind, entities in by_kind.items():
            self.view.collection_for(kind).apply_local(entities)

        logger.info(
            "content_reordered",
            filter=content_filter.value,
            old_index=old_index,
            new_index=target,
            changed=len(changed),
        )

        results = await asyncio.gather(
            *(self._persist(entity) for entity in changed),
            return_exceptions=True,
        )

        failures: dict[str, AppError] = {}
        failed_kinds: dict[ContentKind, None] = {}
        for entity, result in zip(changed, results):
            if isinstance(result, Exception):
                failures[entity.id] = classify(result)
                failed_kinds[ContentKind(entity.kind)] = None
            elif isinstance(result, BaseException):
                raise result

        if failures:
            first = next(iter(failures.values()))
            error = AppError(
                first.code,
                f"Failed to save order for {len(failures)} of {len(changed)} items",
                technical_details=first.technical_details,
                context={
                    "failed_ids": list(failures),
                    "errors": {entity_id: e.message for entity_id, e in failures.items()},
                },
            )
            log_error(error, context="reorder", filter=content_filter.value)
            for kind in failed_kinds:
                self.view.collection_for(kind).report_error(error)
            raise error

        return changed

    async def _persist(self, entity: Content) -> None:
        kind = ContentKind(entity.kind)
        repository = self.view.collection_for(kind).repository
        await self.retry.execute(
            lambda: repository.update(entity),
            f"save {kind.value} sort order",
        )
