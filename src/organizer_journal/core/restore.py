"""Restore a directory to the state of an earlier session.

Every completed, not-undone session of the same directory that happened after
the target is undone, newest first. Reversing an older session before a newer
one could bring back a path conflict the newer session already resolved.

Restores are not transactional: if a session fails partway, sessions already
undone stay undone and the result reports what did and did not complete.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from organizer_journal.core.history import EntryStatus, UndoError
from organizer_journal.core.locks import DirectoryLocks
from organizer_journal.core.undo import preflight

if TYPE_CHECKING:
    from organizer_journal.core.file_ops import FileOperation, FileOperationError
    from organizer_journal.core.history import HistoryEntry, HistoryStore
    from organizer_journal.core.undo import UndoEngine

logger = logging.getLogger(__name__)

_MAX_LISTED_FILES = 5


@dataclass
class RestorePreview:
    """What a restore would do, computed without touching the filesystem.

    Attributes:
        target: The session to restore to.
        candidates: Sessions that would be undone, newest first.
        missing_files: Moved files that can no longer be found.
        total_files: Number of file moves the candidates recorded.
    """

    target: HistoryEntry
    candidates: list[HistoryEntry] = field(default_factory=list)
    missing_files: list[str] = field(default_factory=list)
    total_files: int = 0

    @property
    def is_current_state(self) -> bool:
        """True if nothing happened after the target."""
        return not self.candidates


@dataclass
class RestoreResult:
    """Outcome of a restore-to-state.

    Attributes:
        restored_count: Files moved back.
        missing_files: Files skipped because they could not be found.
        undone_entries: Sessions flagged undone, in the order they were undone.
        failures: Errors that stopped or degraded the restore.
        not_attempted: Sessions left untouched after a failure.
        needs_confirmation: True if the call stopped at the missing-files gate.
        summary: Human-readable description of the outcome.
    """

    restored_count: int = 0
    missing_files: list[str] = field(default_factory=list)
    undone_entries: list[HistoryEntry] = field(default_factory=list)
    failures: list[FileOperationError] = field(default_factory=list)
    not_attempted: list[HistoryEntry] = field(default_factory=list)
    needs_confirmation: bool = False
    summary: str = ""

    @property
    def missing_count(self) -> int:
        """Number of files that could not be found."""
        return len(self.missing_files)

    @property
    def has_issues(self) -> bool:
        """True if anything was skipped, failed or awaits confirmation."""
        return bool(self.missing_files or self.failures or self.not_attempted or self.needs_confirmation)


def format_missing_files(paths: list[str]) -> str:
    """List the first few missing paths, one per line."""
    lines = paths[:_MAX_LISTED_FILES]
    if len(paths) > _MAX_LISTED_FILES:
        lines.append(f"...and {len(paths) - _MAX_LISTED_FILES} more")
    return "\n".join(lines)


class RestoreEngine:
    """Undoes every session after a target session for the same directory."""

    def __init__(self, store: HistoryStore, undo_engine: UndoEngine, locks: DirectoryLocks | None = None) -> None:
        self._store = store
        self._undo = undo_engine
        self._locks = locks or DirectoryLocks()

    def candidates(self, target: HistoryEntry) -> list[HistoryEntry]:
        """Sessions that must be undone to reach target, newest first.

        Raises:
            KeyError: If target is not in the store.
        """
        entries = [
            entry
            for entry in self._store.later_entries(target.id)
            if entry.status is EntryStatus.COMPLETED and not entry.is_undone
        ]
        entries.reverse()
        return entries

    def preview(self, target: HistoryEntry) -> RestorePreview:
        """Compute candidates and missing files without changing anything."""
        candidates = self.candidates(target)
        operations: list[FileOperation] = [
            op for entry in reversed(candidates) for op in (entry.operations or ())
        ]
        return RestorePreview(
            target=target,
            candidates=candidates,
            missing_files=preflight(operations),
            total_files=sum(1 for op in operations if op.moves_file),
        )

    def restore_to_state(self, target: HistoryEntry, *, proceed_with_missing: bool = False) -> RestoreResult:
        """Undo every later session so the directory matches target's state.

        Args:
            target: Session whose resulting layout should be restored.
            proceed_with_missing: Continue even though some files are missing.

        Returns:
            RestoreResult. If files are missing and proceed_with_missing is
            False, nothing is changed and needs_confirmation is True.

        Raises:
            DirectoryBusyError: If another mutation holds the directory.
        """
        with self._locks.hold(target.directory_path):
            preview = self.preview(target)
            when = target.timestamp.strftime("%Y-%m-%d %H:%M:%S")

            if preview.is_current_state:
                return RestoreResult(summary=f"Already at the state from {when}.")

            if preview.missing_files and not proceed_with_missing:
                logger.info(f"Restore to {target.id} paused: {len(preview.missing_files)} file(s) missing")
                return RestoreResult(
                    missing_files=preview.missing_files,
                    needs_confirmation=True,
                    summary=(
                        f"{len(preview.missing_files)} file(s) no longer exist and cannot be restored:\n\n"
                        f"{format_missing_files(preview.missing_files)}\n\nContinue with partial restore?"
                    ),
                )

            result = RestoreResult()
            for index, entry in enumerate(preview.candidates):
                try:
                    undo_result = self._undo.reverse(entry, proceed_with_missing=True)
                except UndoError as e:
                    logger.warning(f"Restore stopped at session {entry.id}: {e}")
                    result.failures.append(e)
                    result.not_attempted = preview.candidates[index + 1:]
                    break

                result.restored_count += undo_result.restored
                result.missing_files.extend(undo_result.missing_files)
                if undo_result.failures:
                    result.failures.extend(undo_result.failures)
                    result.not_attempted = preview.candidates[index + 1:]
                    break
                result.undone_entries.append(undo_result.entry)

            result.summary = self._summarize(result, when)
            logger.info(f"Restore to {target.id}: {result.summary.splitlines()[0]}")
            return result

    @staticmethod
    def _summarize(result: RestoreResult, when: str) -> str:
        sessions = len(result.undone_entries)
        if not result.has_issues:
            return f"Restored to {when}: {result.restored_count} file(s) moved back across {sessions} session(s)."

        lines = [f"Partially restored to {when}: {result.restored_count} file(s) moved back, {sessions} session(s) undone."]
        if result.missing_files:
            lines.append(f"{result.missing_count} file(s) could not be found and were skipped:")
            lines.append(format_missing_files(result.missing_files))
        if result.failures:
            lines.append(f"{len(result.failures)} error(s) stopped the restore:")
            lines.extend(str(failure) for failure in result.failures[:_MAX_LISTED_FILES])
        if result.not_attempted:
            lines.append(f"{len(result.not_attempted)} later session(s) were not undone.")
        return "\n".join(lines)
