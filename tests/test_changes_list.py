"""Integration tests for ChangesList wiring of cache, coordinator and view."""

import asyncio

import pytest

from changes_lens.core.changes_list import ChangesList
from changes_lens.core.diff_engine import compute_untracked_diff
from changes_lens.core.filtered_view import FilterState
from changes_lens.models.status import (
    FileEntry,
    FileStatusKind,
    IncludeAllValue,
    SelectionType,
    WorkingDirectoryStatus,
)


def _entry(path, selection=SelectionType.ALL):
    return FileEntry(id=path, path=path, status=FileStatusKind.MODIFIED, selection=selection)


def _status(*entries):
    return WorkingDirectoryStatus(files=tuple(entries))


class Harness:
    """Fake collaborators plus a caller that adopts selection corrections."""

    def __init__(self, contents, selected=(), filters=None):
        self.contents = dict(contents)
        self.mtimes = {path: 1 for path in contents}
        self.diff_calls = 0
        self.selected = list(selected)
        self.filtered_events: list[list[str]] = []
        self.corrections: list[list[str]] = []
        self.changes = ChangesList(
            self.stat,
            self.compute,
            selection_provider=lambda: self.selected,
            on_filtered_set_changed=lambda files: self.filtered_events.append([f.path for f in files]),
            on_selection_corrected=self.adopt,
            filters=filters,
        )

    async def stat(self, path):
        return self.mtimes[path]

    async def compute(self, entry):
        self.diff_calls += 1
        await asyncio.sleep(0)
        return compute_untracked_diff(self.contents[entry.path].encode("utf-8"))

    def adopt(self, files):
        self.corrections.append([f.id for f in files])
        self.selected = [f.id for f in files]


class TestUpstreamChanges:
    """Test reactions to new working directory snapshots."""

    @pytest.mark.asyncio
    async def test_refresh_then_content_filter_applies(self):
        h = Harness({"a.py": "foo\n", "b.py": "bar\n"}, selected=["a.py"],
                    filters=FilterState(content_substring="foo"))

        task = h.changes.notify_upstream_files_changed(_status(_entry("a.py"), _entry("b.py")))
        # Before the first refresh nothing is cached, so nothing matches
        assert h.changes.filtered_files == ()

        await task

        assert [f.path for f in h.changes.filtered_files] == ["a.py"]
        assert len(h.changes.cache) == 2

    @pytest.mark.asyncio
    async def test_equal_file_list_is_ignored(self):
        h = Harness({"a.py": "x\n"}, selected=["a.py"])
        await h.changes.notify_upstream_files_changed(_status(_entry("a.py")))

        assert h.changes.notify_upstream_files_changed(_status(_entry("a.py"))) is None
        assert h.diff_calls == 1

    @pytest.mark.asyncio
    async def test_selection_only_change_skips_refresh(self):
        h = Harness({"a.py": "x\n"}, selected=["a.py"])
        await h.changes.notify_upstream_files_changed(_status(_entry("a.py")))

        result = h.changes.notify_upstream_files_changed(
            _status(_entry("a.py", selection=SelectionType.NONE)),
            selection_changed=True,
        )

        assert result is None
        assert h.changes.working_directory.files[0].selection == SelectionType.NONE
        assert h.changes.filtered_files[0].selection == SelectionType.NONE
        assert not h.changes.coordinator.is_refreshing

    @pytest.mark.asyncio
    async def test_view_holds_latest_entries_before_refresh(self):
        h = Harness({"a.py": "x\n"}, selected=["a.py"])
        await h.changes.notify_upstream_files_changed(_status(_entry("a.py")))

        replacement = _entry("a.py", selection=SelectionType.PARTIAL)
        task = h.changes.notify_upstream_files_changed(_status(replacement))

        assert h.changes.filtered_files[0] is replacement
        await task

    @pytest.mark.asyncio
    async def test_removed_selection_falls_back_to_first_row(self):
        h = Harness({"a.py": "x\n", "b.py": "y\n"}, selected=["b.py"])
        await h.changes.notify_upstream_files_changed(_status(_entry("a.py"), _entry("b.py")))

        await h.changes.notify_upstream_files_changed(_status(_entry("a.py")))

        assert h.corrections[-1] == ["a.py"]
        assert h.selected == ["a.py"]
        assert set(h.changes.cache.snapshot) == {"a.py"}

    @pytest.mark.asyncio
    async def test_burst_of_updates_coalesces(self):
        h = Harness({f"f{i}": "x\n" for i in range(5)}, selected=["f0"])

        tasks = [
            h.changes.notify_upstream_files_changed(_status(*(_entry(f"f{j}") for j in range(i + 1))))
            for i in range(5)
        ]
        await h.changes.wait_idle()

        assert all(task is tasks[0] for task in tasks)
        assert h.changes.coordinator.cycles_started <= 2
        assert len(h.changes.cache) == 5
        assert [f.path for f in h.changes.filtered_files] == [f"f{i}" for i in range(5)]


class TestFiltersAndRefresh:
    """Test filter edits and forced refreshes."""

    @pytest.mark.asyncio
    async def test_set_filters_does_not_refresh(self):
        h = Harness({"a.py": "foo\n", "b.py": "bar\n"}, selected=["a.py"])
        await h.changes.notify_upstream_files_changed(_status(_entry("a.py"), _entry("b.py")))
        calls = h.diff_calls

        h.changes.set_filters("", "bar")

        assert h.diff_calls == calls
        assert not h.changes.coordinator.is_refreshing
        assert [f.path for f in h.changes.filtered_files] == ["b.py"]
        assert h.selected == ["b.py"]

    @pytest.mark.asyncio
    async def test_forced_refresh_picks_up_edits(self):
        h = Harness({"a.py": "old\n"}, selected=["a.py"], filters=FilterState(content_substring="new"))
        await h.changes.notify_upstream_files_changed(_status(_entry("a.py")))
        assert h.changes.filtered_files == ()

        h.contents["a.py"] = "new\n"
        h.mtimes["a.py"] = 2
        await h.changes.refresh()

        assert [f.path for f in h.changes.filtered_files] == ["a.py"]

    @pytest.mark.asyncio
    async def test_unchanged_refresh_fires_no_events(self):
        h = Harness({"a.py": "x\n"}, selected=["a.py"])
        await h.changes.notify_upstream_files_changed(_status(_entry("a.py")))
        events = list(h.filtered_events)

        await h.changes.refresh()

        assert h.filtered_events == events
        assert h.diff_calls == 1

    @pytest.mark.asyncio
    async def test_close_is_safe_when_idle(self):
        h = Harness({})
        await h.changes.close()


class TestDescriptions:
    """Test count descriptions and include-all passthrough."""

    def test_descriptions(self):
        h = Harness({})
        # selection_changed skips the refresh, so no event loop is needed
        h.changes.notify_upstream_files_changed(
            _status(_entry("a"), _entry("b", selection=SelectionType.NONE)),
            selection_changed=True,
        )

        assert h.changes.file_count_description == "2 changed files"
        assert h.changes.selected_count_description == "1 changed file selected"
        assert h.changes.include_all_value() == IncludeAllValue.MIXED
