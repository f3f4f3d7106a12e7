"""Tests for core/file_ops.py — operations, conflict resolution and batch execution."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from organizer_journal.core.file_ops import (
    FileOperation,
    OperationExecutor,
    OperationFailedError,
    OperationKind,
    SourceNotFoundError,
    get_default_app_dir,
    move_without_overwrite,
    unique_path,
)


class TestFileOperation:
    """Tests for FileOperation dataclass."""

    def test_move_resolves_paths(self, tmp_path: Path) -> None:
        """FileOperation.move should store resolved paths and a timestamp."""
        src = tmp_path / "src.txt"
        dst = tmp_path / "dst.txt"
        op = FileOperation.move(src, dst)

        assert op.kind is OperationKind.MOVE
        assert op.source_path == str(src.resolve())
        assert op.destination_path == str(dst.resolve())
        assert isinstance(op.timestamp, datetime)
        assert op.moves_file

    def test_rename_stays_in_folder(self, tmp_path: Path) -> None:
        """rename should produce a sibling destination."""
        op = FileOperation.rename(tmp_path / "old.txt", "new.txt")

        assert op.kind is OperationKind.RENAME
        assert op.destination_path == str((tmp_path / "new.txt").resolve())

    def test_rename_rejects_paths(self, tmp_path: Path) -> None:
        """rename should reject names containing a directory."""
        with pytest.raises(ValueError):
            FileOperation.rename(tmp_path / "old.txt", "sub/new.txt")

    def test_create_folder_has_no_destination(self, tmp_path: Path) -> None:
        """create_folder should only carry the folder path."""
        op = FileOperation.create_folder(tmp_path / "Photos")

        assert op.destination_path is None
        assert not op.moves_file

    def test_immutable(self, tmp_path: Path) -> None:
        """FileOperation should be immutable (frozen dataclass)."""
        op = FileOperation.move(tmp_path / "a", tmp_path / "b")

        with pytest.raises(AttributeError):
            op.source_path = "new_path"  # type: ignore[misc]

    def test_dict_roundtrip(self, tmp_path: Path) -> None:
        """to_dict/from_dict should preserve every field."""
        op = FileOperation.move(tmp_path / "a.txt", tmp_path / "b.txt")

        assert FileOperation.from_dict(op.to_dict()) == op


class TestUniquePath:
    """Tests for unique_path conflict resolution."""

    def test_free_path_unchanged(self, tmp_path: Path) -> None:
        """A free path should be returned as is."""
        target = tmp_path / "report.pdf"
        assert unique_path(target) == target

    def test_smallest_free_suffix(self, tmp_path: Path) -> None:
        """Taken paths should get the smallest free _N before the extension."""
        (tmp_path / "report.pdf").write_text("a", encoding="utf-8")
        (tmp_path / "report_1.pdf").write_text("b", encoding="utf-8")
        (tmp_path / "report_3.pdf").write_text("c", encoding="utf-8")

        assert unique_path(tmp_path / "report.pdf") == tmp_path / "report_2.pdf"

    def test_no_extension(self, tmp_path: Path) -> None:
        """Files without extension get the suffix at the end."""
        (tmp_path / "Makefile").write_text("a", encoding="utf-8")

        assert unique_path(tmp_path / "Makefile") == tmp_path / "Makefile_1"


class TestMoveWithoutOverwrite:
    """Tests for move_without_overwrite."""

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        """Missing destination parents should be created."""
        src = tmp_path / "a.txt"
        src.write_text("hello", encoding="utf-8")

        final = move_without_overwrite(src, tmp_path / "deep" / "nested" / "a.txt")

        assert final.read_text(encoding="utf-8") == "hello"
        assert not src.exists()

    def test_never_overwrites(self, tmp_path: Path) -> None:
        """An existing destination must keep its content."""
        src = tmp_path / "a.txt"
        dst = tmp_path / "out" / "a.txt"
        src.write_text("new", encoding="utf-8")
        dst.parent.mkdir()
        dst.write_text("existing", encoding="utf-8")

        final = move_without_overwrite(src, dst)

        assert final == tmp_path / "out" / "a_1.txt"
        assert dst.read_text(encoding="utf-8") == "existing"
        assert final.read_text(encoding="utf-8") == "new"

    def test_source_not_found(self, tmp_path: Path) -> None:
        """A missing source should raise SourceNotFoundError."""
        with pytest.raises(SourceNotFoundError):
            move_without_overwrite(tmp_path / "missing.txt", tmp_path / "b.txt")


class TestOperationExecutor:
    """Tests for OperationExecutor.apply."""

    def test_applies_in_order(self, tmp_path: Path) -> None:
        """Folders and moves should be applied in the given order."""
        (tmp_path / "a.txt").write_text("a", encoding="utf-8")
        ops = [
            FileOperation.create_folder(tmp_path / "Docs"),
            FileOperation.move(tmp_path / "a.txt", tmp_path / "Docs" / "a.txt"),
        ]

        result = OperationExecutor().apply(ops)

        assert result.all_succeeded
        assert result.files_moved == 1
        assert result.folders_created == 1
        assert (tmp_path / "Docs" / "a.txt").exists()

    def test_create_folder_idempotent(self, tmp_path: Path) -> None:
        """Creating an existing folder should succeed silently."""
        (tmp_path / "Docs").mkdir()

        result = OperationExecutor().apply([FileOperation.create_folder(tmp_path / "Docs")])

        assert result.all_succeeded

    def test_create_folder_over_file_fails(self, tmp_path: Path) -> None:
        """A file occupying the folder path should fail the operation."""
        (tmp_path / "Docs").write_text("x", encoding="utf-8")

        result = OperationExecutor().apply([FileOperation.create_folder(tmp_path / "Docs")])

        assert len(result.failed) == 1

    def test_failure_does_not_abort_batch(self, tmp_path: Path) -> None:
        """One failing move should not stop the following ones."""
        (tmp_path / "b.txt").write_text("b", encoding="utf-8")
        ops = [
            FileOperation.move(tmp_path / "missing.txt", tmp_path / "out" / "missing.txt"),
            FileOperation.move(tmp_path / "b.txt", tmp_path / "out" / "b.txt"),
        ]

        result = OperationExecutor().apply(ops)

        assert [op.source_path for op in result.succeeded] == [ops[1].source_path]
        failed_op, error = result.failed[0]
        assert failed_op == ops[0]
        assert isinstance(error, OperationFailedError)
        assert isinstance(error.cause, SourceNotFoundError)
        assert (tmp_path / "out" / "b.txt").exists()

    def test_conflict_records_resolved_destination(self, tmp_path: Path) -> None:
        """The succeeded operation should carry the suffixed destination."""
        (tmp_path / "a.txt").write_text("new", encoding="utf-8")
        (tmp_path / "out").mkdir()
        (tmp_path / "out" / "a.txt").write_text("existing", encoding="utf-8")
        op = FileOperation.move(tmp_path / "a.txt", tmp_path / "out" / "a.txt")

        result = OperationExecutor().apply([op])

        performed = result.succeeded[0]
        assert performed.id == op.id
        assert performed.destination_path == str((tmp_path / "out" / "a_1.txt").resolve())
        assert (tmp_path / "out" / "a.txt").read_text(encoding="utf-8") == "existing"

    def test_rename(self, tmp_path: Path) -> None:
        """Rename should move the file within its folder."""
        (tmp_path / "IMG_001.jpg").write_bytes(b"jpeg")

        result = OperationExecutor().apply([FileOperation.rename(tmp_path / "IMG_001.jpg", "beach.jpg")])

        assert result.files_moved == 1
        assert (tmp_path / "beach.jpg").read_bytes() == b"jpeg"

    def test_reverse_move(self, tmp_path: Path) -> None:
        """reverse_move should put the file back at its source."""
        (tmp_path / "a.txt").write_text("a", encoding="utf-8")
        executor = OperationExecutor()
        performed = executor.apply([FileOperation.move(tmp_path / "a.txt", tmp_path / "x" / "a.txt")]).succeeded[0]

        back = executor.reverse_move(performed)

        assert back == (tmp_path / "a.txt").resolve()
        assert back.exists()
        assert not (tmp_path / "x" / "a.txt").exists()

    def test_reverse_move_rejects_folders(self, tmp_path: Path) -> None:
        """create_folder operations cannot be reversed by moving."""
        with pytest.raises(ValueError):
            OperationExecutor().reverse_move(FileOperation.create_folder(tmp_path / "Docs"))


class TestGetDefaultAppDir:
    """Tests for get_default_app_dir function."""

    def test_under_home(self) -> None:
        """Should return a hidden folder in the home directory."""
        result = get_default_app_dir()

        assert result.parent == Path.home()
        assert result.name.startswith(".")
