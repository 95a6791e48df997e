"""
Space registry tests: selection fallback, persistence and item counts.
"""

import pytest

from later_sync.core.errors import AppError, ErrorCode
from later_sync.core.schemas import Note, Space


class TestLoadSelection:
    """Resolving the current space on load."""

    async def test_persisted_space_is_selected(self, organizer, preferences):
        preferences.last_selected = "space-b"

        await organizer.spaces.load()

        assert organizer.spaces.current_space.id == "space-b"

    async def test_stale_persisted_id_falls_back_and_is_cleared(self, organizer, preferences):
        preferences.last_selected = "space-c"

        await organizer.spaces.load()

        assert organizer.spaces.current_space.id == "space-a"
        assert preferences.last_selected is None
        assert preferences.calls["clear"] == 1

    async def test_absent_selection_picks_first(self, organizer):
        await organizer.spaces.load()
        assert organizer.spaces.current_space.id == "space-a"

    async def test_unreadable_selection_picks_first(self, organizer, preferences):
        preferences.last_selected = "space-b"
        preferences.fail("get", OSError("corrupt prefs"))

        await organizer.spaces.load()

        assert organizer.spaces.current_space.id == "space-a"
        assert preferences.last_selected == "space-b"

    async def test_existing_selection_is_kept_on_reload(self, organizer):
        await organizer.spaces.load()
        await organizer.spaces.switch_to("space-b")

        await organizer.spaces.load()

        assert organizer.spaces.current_space.id == "space-b"

    async def test_no_spaces_means_no_current(self, organizer, space_repo):
        space_repo.spaces.clear()
        await organizer.spaces.load()
        assert organizer.spaces.current_space is None

    async def test_fetch_failure_clears_list(self, organizer, space_repo):
        await organizer.spaces.load()
        space_repo.fail("get_spaces", ValueError("bad row"))

        await organizer.spaces.load()

        assert organizer.spaces.spaces == ()
        assert organizer.spaces.error.code is ErrorCode.UNKNOWN

    async def test_archived_spaces_are_hidden_unless_requested(self, organizer, space_repo):
        space_repo.spaces["space-b"] = space_repo.spaces["space-b"].model_copy(update={"is_archived": True})

        await organizer.spaces.load()
        assert [s.id for s in organizer.spaces.spaces] == ["space-a"]

        await organizer.spaces.load(include_archived=True)
        assert [s.id for s in organizer.spaces.spaces] == ["space-a", "space-b"]


class TestMutations:
    """Add, update, archive, delete and switch."""

    async def test_add_selects_and_persists(self, organizer, preferences):
        await organizer.spaces.load()

        created = await organizer.spaces.add(Space(name="Side project"))

        assert organizer.spaces.current_space == created
        assert organizer.spaces.spaces[-1] == created
        assert preferences.last_selected == created.id

    async def test_add_survives_preference_failure(self, organizer, preferences):
        await organizer.spaces.load()
        preferences.fail("set", OSError("read-only"))

        created = await organizer.spaces.add(Space(name="Side project"))

        assert organizer.spaces.current_space == created
        assert preferences.last_selected is None

    async def test_add_rejects_blank_name(self, organizer, space_repo):
        with pytest.raises(AppError) as exc_info:
            await organizer.spaces.add(Space(name=" "))

        assert exc_info.value.user_message == "Space name is required."
        assert space_repo.calls["create_space"] == 0

    async def test_update_replaces_current(self, organizer):
        await organizer.spaces.load()
        current = organizer.spaces.current_space

        await organizer.spaces.update(current.model_copy(update={"name": "Home"}))

        assert organizer.spaces.current_space.name == "Home"
        assert organizer.spaces.spaces[0].name == "Home"

    async def test_archive_preserves_selection(self, organizer, preferences):
        await organizer.spaces.load()
        await organizer.spaces.switch_to("space-b")

        archived = await organizer.spaces.archive("space-b")

        assert archived.is_archived
        assert organizer.spaces.current_space.id == "space-b"
        assert organizer.spaces.current_space.is_archived
        assert preferences.last_selected == "space-b"
        assert preferences.calls["clear"] == 0

    async def test_unarchive(self, organizer):
        await organizer.spaces.load()
        await organizer.spaces.archive("space-b")

        restored = await organizer.spaces.unarchive("space-b")

        assert not restored.is_archived

    async def test_cannot_delete_current_space(self, organizer, space_repo):
        await organizer.spaces.load()

        with pytest.raises(AppError) as exc_info:
            await organizer.spaces.delete("space-a")

        error = exc_info.value
        assert error.code is ErrorCode.VALIDATION_REQUIRED
        assert error.context["field_name"] == "Current space"
        assert space_repo.calls["delete_space"] == 0
        assert "space-a" in space_repo.spaces

    async def test_delete_clears_matching_selection(self, organizer, preferences):
        await organizer.spaces.load()
        preferences.last_selected = "space-b"

        await organizer.spaces.delete("space-b")

        assert [s.id for s in organizer.spaces.spaces] == ["space-a"]
        assert preferences.last_selected is None

    async def test_delete_keeps_unrelated_selection(self, organizer, preferences):
        await organizer.spaces.load()
        preferences.last_selected = "space-a"

        await organizer.spaces.delete("space-b")

        assert preferences.last_selected == "space-a"

    async def test_switch_to_unknown_space(self, organizer):
        await organizer.spaces.load()

        with pytest.raises(AppError) as exc_info:
            await organizer.spaces.switch_to("space-z")

        assert exc_info.value.code is ErrorCode.SPACE_NOT_FOUND
        assert organizer.spaces.current_space.id == "space-a"

    async def test_switch_persists_selection(self, organizer, preferences):
        await organizer.spaces.load()
        await organizer.spaces.switch_to("space-b")
        assert preferences.last_selected == "space-b"

    async def test_switch_survives_preference_failure(self, organizer, preferences):
        await organizer.spaces.load()
        preferences.fail("set", OSError("read-only"))

        await organizer.spaces.switch_to("space-b")

        assert organizer.spaces.current_space.id == "space-b"

    async def test_clear_current(self, organizer):
        await organizer.spaces.load()
        organizer.spaces.clear_current()
        assert organizer.spaces.current_space is None


class TestItemCounts:
    """Stored counts and live counts."""

    async def test_increment_refetches_space(self, organizer, space_repo):
        await organizer.spaces.load()

        await organizer.spaces.increment_item_count("space-a")
        await organizer.spaces.increment_item_count("space-a")

        assert organizer.spaces.current_space.item_count == 2
        assert organizer.spaces.spaces[0].item_count == 2

    async def test_count_failure_is_recorded_not_raised(self, organizer, space_repo):
        await organizer.spaces.load()
        space_repo.fail("increment_item_count", KeyError("x"))

        await organizer.spaces.increment_item_count("space-a")

        assert organizer.spaces.error.code is ErrorCode.UNKNOWN
        assert organizer.spaces.current_space.item_count == 0

    async def test_get_item_count_is_live(self, organizer, note_repo):
        note_repo.seed(
            Note(space_id="space-a", title="One"),
            Note(space_id="space-a", title="Two"),
            Note(space_id="space-b", title="Elsewhere"),
        )

        assert await organizer.spaces.get_item_count("space-a") == 2


class TestOrganizer:
    """Facade wiring."""

    async def test_load_fetches_current_space_content(self, organizer, note_repo, preferences):
        preferences.last_selected = "space-b"
        note_repo.seed(Note(id="n1", space_id="space-b", title="Standup"))

        await organizer.load()

        assert [e.id for e in organizer.content.get_filtered()] == ["n1"]
        assert organizer.snapshot()["current_space_id"] == "space-b"

    async def test_switch_space_reloads_content(self, organizer, note_repo):
        note_repo.seed(
            Note(id="a1", space_id="space-a", title="Groceries"),
            Note(id="b1", space_id="space-b", title="Standup"),
        )
        await organizer.load()

        await organizer.switch_space("space-b")

        assert [e.id for e in organizer.content.get_filtered()] == ["b1"]

    async def test_snapshot_reports_errors(self, organizer, note_repo):
        await organizer.load()
        note_repo.fail("get_by_space", ValueError("bad row"))

        await organizer.notes.load_for_space("space-a")
        snapshot = organizer.snapshot()

        assert snapshot["errors"]["note"]["code"] == ErrorCode.UNKNOWN.value
        organizer.notes.clear_error()
        assert organizer.snapshot()["errors"] == {}
