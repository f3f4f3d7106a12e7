"""Tests for core/restore.py — restore a directory to an earlier session."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from organizer_journal.core.file_ops import FileOperation, OperationExecutor
from organizer_journal.core.history import EntryStatus, HistoryEntry, HistoryStore
from organizer_journal.core.organizer import Organizer
from organizer_journal.core.restore import RestoreResult, format_missing_files
from organizer_journal.core.vault import SafeDeletionVault


class FlakyExecutor(OperationExecutor):
    """Executor whose reverse_move fails for chosen destinations."""

    def __init__(self) -> None:
        self.fail_on: set[str] = set()

    def reverse_move(self, operation: FileOperation) -> Path:
        if operation.destination_path in self.fail_on:
            raise OSError(f"disk error on {operation.destination_path}")
        return super().reverse_move(operation)


@pytest.fixture
def executor() -> FlakyExecutor:
    return FlakyExecutor()


@pytest.fixture
def organizer(tmp_path: Path, executor: FlakyExecutor) -> Organizer:
    return Organizer(HistoryStore(tmp_path / "history.json"), SafeDeletionVault(tmp_path / "vault"), executor=executor)


@pytest.fixture
def folder(tmp_path: Path) -> Path:
    root = tmp_path / "Desktop"
    root.mkdir()
    for name in ("f1.txt", "f2.txt", "f3.txt"):
        (root / name).write_text(name, encoding="utf-8")
    return root


def _three_sessions(organizer: Organizer, folder: Path) -> tuple[HistoryEntry, HistoryEntry, HistoryEntry]:
    """A moves f1 to X, B moves f2 to Y, C moves f1 on from X to Z."""
    a = organizer.apply_moves(folder, [(folder / "f1.txt", folder / "X" / "f1.txt")])
    b = organizer.apply_moves(folder, [(folder / "f2.txt", folder / "Y" / "f2.txt")])
    c = organizer.apply_moves(folder, [(folder / "X" / "f1.txt", folder / "Z" / "f1.txt")])
    return a, b, c


class TestFormatMissingFiles:
    """Tests for format_missing_files."""

    def test_short_list(self) -> None:
        """Up to five paths are listed as is."""
        assert format_missing_files(["/a", "/b"]) == "/a\n/b"

    def test_long_list_is_truncated(self) -> None:
        """More than five paths end with a count of the rest."""
        paths = [f"/f{i}" for i in range(8)]

        text = format_missing_files(paths)

        assert text.splitlines() == ["/f0", "/f1", "/f2", "/f3", "/f4", "...and 3 more"]
        assert len(paths) == 8


class TestRestoreResult:
    """Tests for RestoreResult flags."""

    def test_clean_result(self) -> None:
        """A default result has no issues."""
        result = RestoreResult(restored_count=2)

        assert not result.has_issues
        assert result.missing_count == 0

    def test_missing_files_are_issues(self) -> None:
        """Skipped files should be reported as issues."""
        result = RestoreResult(missing_files=["/a"])

        assert result.has_issues
        assert result.missing_count == 1


class TestPreview:
    """Tests for RestoreEngine.preview."""

    def test_candidates_newest_first(self, organizer: Organizer, folder: Path) -> None:
        """Later completed sessions should be listed newest first."""
        a, b, c = _three_sessions(organizer, folder)

        preview = organizer.preview_restore(a.id)

        assert [e.id for e in preview.candidates] == [c.id, b.id]
        assert preview.total_files == 2
        assert preview.missing_files == []
        assert not preview.is_current_state

    def test_skips_undone_failed_and_other_directories(self, organizer: Organizer, folder: Path, tmp_path: Path) -> None:
        """Only completed, not-undone sessions of the same folder are candidates."""
        other = tmp_path / "Other"
        other.mkdir()
        (other / "o.txt").write_text("o", encoding="utf-8")

        a, b, c = _three_sessions(organizer, folder)
        organizer.undo(c.id)
        organizer.record_session(folder, EntryStatus.FAILED, error_message="boom")
        organizer.apply_moves(other, [(other / "o.txt", other / "sub" / "o.txt")])

        assert [e.id for e in organizer.preview_restore(a.id).candidates] == [b.id]

    def test_preview_changes_nothing(self, organizer: Organizer, folder: Path) -> None:
        """Preview must not touch the filesystem or the store."""
        a, _b, _c = _three_sessions(organizer, folder)
        files = sorted(str(p) for p in folder.rglob("*"))
        entries = organizer.history.entries

        organizer.preview_restore(a.id)

        assert sorted(str(p) for p in folder.rglob("*")) == files
        assert organizer.history.entries == entries


class TestRestoreToState:
    """Tests for RestoreEngine.restore_to_state."""

    def test_restores_layout_after_target(self, organizer: Organizer, folder: Path) -> None:
        """Restoring to A should undo C then B and leave A applied."""
        a, b, c = _three_sessions(organizer, folder)

        result = organizer.restore_to_state(a.id)

        assert (folder / "X" / "f1.txt").read_text(encoding="utf-8") == "f1.txt"
        assert (folder / "f2.txt").exists()
        assert (folder / "f3.txt").exists()
        assert not (folder / "Z" / "f1.txt").exists()
        assert result.restored_count == 2
        assert [e.id for e in result.undone_entries] == [c.id, b.id]
        assert not result.has_issues
        assert result.summary.startswith("Restored to")

        history = organizer.history
        assert not history.get(a.id).is_undone
        assert history.get(b.id).is_undone
        assert history.get(c.id).is_undone

    def test_latest_entry_is_noop(self, organizer: Organizer, folder: Path) -> None:
        """Restoring to the newest session should change nothing."""
        _a, _b, c = _three_sessions(organizer, folder)
        files = sorted(str(p) for p in folder.rglob("*"))
        entries = organizer.history.entries

        result = organizer.restore_to_state(c.id)

        assert result.restored_count == 0
        assert result.undone_entries == []
        assert result.summary.startswith("Already at the state from")
        assert sorted(str(p) for p in folder.rglob("*")) == files
        assert organizer.history.entries == entries

    def test_missing_files_need_confirmation(self, organizer: Organizer, folder: Path) -> None:
        """Missing files without proceed should change nothing."""
        a, _b, _c = _three_sessions(organizer, folder)
        (folder / "Y" / "f2.txt").unlink()
        entries = organizer.history.entries

        result = organizer.restore_to_state(a.id)

        assert result.needs_confirmation
        assert result.missing_files == [str((folder / "Y" / "f2.txt").resolve())]
        assert "Continue with partial restore?" in result.summary
        assert (folder / "Z" / "f1.txt").exists()
        assert organizer.history.entries == entries

    def test_proceed_with_missing(self, organizer: Organizer, folder: Path) -> None:
        """Proceeding should restore every file that still exists."""
        a, b, c = _three_sessions(organizer, folder)
        (folder / "Y" / "f2.txt").unlink()
        preview = organizer.preview_restore(a.id)

        result = organizer.restore_to_state(a.id, proceed_with_missing=True)

        assert result.restored_count == preview.total_files - result.missing_count
        assert result.missing_count == 1
        assert result.has_issues
        assert result.summary.startswith("Partially restored")
        assert (folder / "X" / "f1.txt").exists()
        assert organizer.history.get(b.id).is_undone
        assert organizer.history.get(c.id).is_undone

    def test_failure_stops_restore(self, organizer: Organizer, executor: FlakyExecutor, folder: Path) -> None:
        """A failing session should stop the restore and leave older ones alone."""
        a, b, c = _three_sessions(organizer, folder)
        executor.fail_on.add(str((folder / "Z" / "f1.txt").resolve()))

        result = organizer.restore_to_state(a.id)

        assert len(result.failures) == 1
        assert [e.id for e in result.not_attempted] == [b.id]
        assert result.undone_entries == []
        assert result.has_issues
        assert not organizer.history.get(c.id).is_undone
        assert not organizer.history.get(b.id).is_undone
        assert (folder / "Y" / "f2.txt").exists()

    def test_already_undone_candidates_are_skipped(self, organizer: Organizer, folder: Path) -> None:
        """Sessions undone earlier are not undone again."""
        a, b, c = _three_sessions(organizer, folder)
        organizer.undo(c.id)

        result = organizer.restore_to_state(a.id)

        assert [e.id for e in result.undone_entries] == [b.id]
        assert result.restored_count == 1
        assert (folder / "f2.txt").exists()


class TestSessionOrder:
    """Tests that session order comes from the journal, not from the clock."""

    def test_clock_stepped_back(self, organizer: Organizer, folder: Path) -> None:
        """A session appended later with an earlier timestamp is still undone."""
        a = organizer.apply_moves(folder, [(folder / "f1.txt", folder / "X" / "f1.txt")])
        (folder / "Y").mkdir()
        (folder / "f2.txt").rename(folder / "Y" / "f2.txt")
        b = HistoryEntry(
            directory_path=a.directory_path,
            files_organized=1,
            operations=(FileOperation.move(folder / "f2.txt", folder / "Y" / "f2.txt"),),
            timestamp=a.timestamp - timedelta(minutes=30),
        )
        organizer.history.append(b)

        result = organizer.restore_to_state(a.id)

        assert [e.id for e in result.undone_entries] == [b.id]
        assert result.restored_count == 1
        assert (folder / "f2.txt").exists()
        assert organizer.history.get(b.id).is_undone
        assert not organizer.history.get(a.id).is_undone

    def test_last_appended_is_current_state(self, organizer: Organizer, folder: Path) -> None:
        """The last appended session is the current state whatever its timestamp."""
        a = organizer.apply_moves(folder, [(folder / "f1.txt", folder / "X" / "f1.txt")])
        b = HistoryEntry(directory_path=a.directory_path, operations=(), timestamp=a.timestamp - timedelta(hours=1))
        organizer.history.append(b)

        assert organizer.preview_restore(b.id).is_current_state
        assert [e.id for e in organizer.preview_restore(a.id).candidates] == [b.id]
