"""Session facade: apply plans, clean up duplicates, undo, restore and redo.

Every mutating session takes the directory lock, performs its work and
appends exactly one HistoryEntry. All methods perform blocking I/O.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from organizer_journal.core.file_ops import (
    FileOperation,
    FileOperationError,
    OperationExecutor,
)
from organizer_journal.core.history import EntryStatus, HistoryEntry, HistoryStore
from organizer_journal.core.locks import DirectoryLocks
from organizer_journal.core.restore import RestoreEngine
from organizer_journal.core.undo import UndoEngine
from organizer_journal.core.vault import SafeDeletionVault

if TYPE_CHECKING:
    from collections.abc import Iterable

    from organizer_journal.core.file_ops import BatchResult
    from organizer_journal.core.restore import RestorePreview, RestoreResult
    from organizer_journal.core.settings import Settings
    from organizer_journal.core.undo import UndoResult
    from organizer_journal.core.vault import DuplicateGroup, RestorableDuplicate

logger = logging.getLogger(__name__)

_RECORDABLE_STATUSES = frozenset({EntryStatus.FAILED, EntryStatus.CANCELLED, EntryStatus.SKIPPED})


class NotRedoableError(FileOperationError):
    """Raised when redoing a session that is not undone or has no operations."""


def _failure_message(failures: list[tuple[str, Exception]], total: int) -> str:
    lines = [f"{len(failures)} of {total} item(s) failed:"]
    lines.extend(f"{path}: {error}" for path, error in failures)
    return "\n".join(lines)


class Organizer:
    """Entry point for every journaled filesystem change.

    Attributes:
        history: The session journal.
        vault: The safe deletion vault.
        undo_engine: Reverses single sessions.
        restore_engine: Rolls a directory back to an earlier session.
    """

    def __init__(
        self,
        history: HistoryStore,
        vault: SafeDeletionVault,
        *,
        executor: OperationExecutor | None = None,
        locks: DirectoryLocks | None = None,
    ) -> None:
        self.history = history
        self.vault = vault
        self._executor = executor or OperationExecutor()
        self._locks = locks or DirectoryLocks()
        self.undo_engine = UndoEngine(history, self._executor, vault, self._locks)
        self.restore_engine = RestoreEngine(history, self.undo_engine, self._locks)

    @classmethod
    def from_settings(cls, settings: Settings) -> Organizer:
        """Build an organizer with storage locations taken from settings."""
        return cls(HistoryStore(settings.history_file), SafeDeletionVault(settings.vault_dir))

    def is_busy(self, directory: Path) -> bool:
        """Check whether a mutation is running for a directory."""
        return self._locks.is_busy(str(directory.resolve()))

    def _require(self, entry_id: str) -> HistoryEntry:
        entry = self.history.get(entry_id)
        if entry is None:
            raise KeyError(f"Unknown history entry: {entry_id}")
        return entry

    # Forward sessions

    def apply_moves(
        self,
        directory: Path,
        moves: Iterable[tuple[Path, Path]],
        *,
        folders: Iterable[Path] = (),
        plan: Any = None,
    ) -> HistoryEntry:
        """Apply a plan of proposed moves as one session.

        Args:
            directory: Folder being organized.
            moves: Ordered (source, destination) proposals.
            folders: Folders the plan creates, created before any move.
            plan: Opaque JSON value stored with the entry.

        Returns:
            The appended HistoryEntry.
        """
        operations = [FileOperation.create_folder(folder) for folder in folders]
        operations.extend(FileOperation.move(src, dst) for src, dst in moves)
        return self.apply_operations(directory, operations, plan=plan)

    def apply_operations(self, directory: Path, operations: Iterable[FileOperation], *, plan: Any = None) -> HistoryEntry:
        """Run a batch of operations as one session and journal it.

        Raises:
            DirectoryBusyError: If another mutation holds the directory.
        """
        directory_path = str(directory.resolve())
        operations = list(operations)
        with self._locks.hold(directory_path):
            result = self._executor.apply(operations)
            entry = self._entry_from_batch(directory_path, result, len(operations), plan)
            self.history.append(entry)
        logger.info(f"Organized {directory_path}: {result.files_moved} file(s), {len(result.failed)} failure(s)")
        return entry

    @staticmethod
    def _entry_from_batch(directory_path: str, result: BatchResult, total: int, plan: Any) -> HistoryEntry:
        if result.failed and not result.succeeded:
            status = EntryStatus.FAILED
        else:
            status = EntryStatus.COMPLETED

        error_message = None
        if result.failed:
            failures = [(op.source_path, error.cause) for op, error in result.failed]
            error_message = _failure_message(failures, total)

        return HistoryEntry(
            directory_path=directory_path,
            files_organized=result.files_moved,
            folders_created=result.folders_created,
            status=status,
            success=result.all_succeeded,
            operations=tuple(result.succeeded) if status is EntryStatus.COMPLETED else None,
            error_message=error_message,
            plan=plan,
        )

    def cleanup_duplicates(self, directory: Path, groups: Iterable[DuplicateGroup]) -> HistoryEntry:
        """Move the duplicates of each group into the vault as one session.

        Args:
            directory: Folder the duplicates were found in.
            groups: Groups with the survivor already chosen.

        Returns:
            The appended HistoryEntry.

        Raises:
            DirectoryBusyError: If another mutation holds the directory.
        """
        directory_path = str(directory.resolve())
        items: list[RestorableDuplicate] = []
        failures: list[tuple[str, Exception]] = []
        total = 0

        with self._locks.hold(directory_path):
            for group in groups:
                for duplicate in group.duplicates:
                    total += 1
                    try:
                        items.extend(self.vault.delete_safely([duplicate], group.original))
                    except (FileOperationError, OSError, ValueError) as e:
                        logger.warning(f"Could not quarantine {duplicate}: {e}")
                        failures.append((str(duplicate), e))

            entry = HistoryEntry(
                directory_path=directory_path,
                status=EntryStatus.DUPLICATES_CLEANUP if items or not failures else EntryStatus.FAILED,
                success=not failures,
                error_message=_failure_message(failures, total) if failures else None,
                duplicates_deleted=len(items),
                recovered_space=sum(item.size_bytes for item in items),
                restorable_items=tuple(items),
            )
            self.history.append(entry)
        return entry

    def record_session(
        self,
        directory: Path,
        status: EntryStatus,
        *,
        error_message: str | None = None,
        plan: Any = None,
    ) -> HistoryEntry:
        """Journal a session that changed nothing (failed, cancelled or skipped).

        Raises:
            ValueError: If status is not failed, cancelled or skipped.
        """
        if status not in _RECORDABLE_STATUSES:
            raise ValueError(f"Cannot record a '{status.value}' session without performing it")
        entry = HistoryEntry(
            directory_path=str(directory.resolve()),
            status=status,
            success=False,
            error_message=error_message,
            plan=plan,
        )
        self.history.append(entry)
        return entry

    # Reversal

    def undo(self, entry_id: str, *, proceed_with_missing: bool = False) -> UndoResult:
        """Reverse one session. See UndoEngine.reverse()."""
        return self.undo_engine.reverse(self._require(entry_id), proceed_with_missing=proceed_with_missing)

    def preview_restore(self, entry_id: str) -> RestorePreview:
        """Show what restoring to a session would do."""
        return self.restore_engine.preview(self._require(entry_id))

    def restore_to_state(self, entry_id: str, *, proceed_with_missing: bool = False) -> RestoreResult:
        """Roll a directory back to a session. See RestoreEngine.restore_to_state()."""
        return self.restore_engine.restore_to_state(
            self._require(entry_id),
            proceed_with_missing=proceed_with_missing,
        )

    def restore_duplicate(self, entry_id: str, item: RestorableDuplicate) -> None:
        """Restore a single quarantined duplicate of a cleanup session.

        Raises:
            FileExistsAtOriginalError: If the original path is occupied.
            VaultItemMissingError: If the quarantined file is gone.
        """
        entry = self._require(entry_id)
        with self._locks.hold(entry.directory_path):
            self.vault.restore(item)

    def redo(self, entry_id: str, *, plan: Any = None) -> HistoryEntry:
        """Re-apply an undone session as a brand-new session.

        The undone entry keeps its flag; the redo is journaled separately.

        Raises:
            NotRedoableError: If the entry is not an undone organize session.
        """
        entry = self._require(entry_id)
        if not entry.is_undone or entry.status is not EntryStatus.COMPLETED or entry.operations is None:
            raise NotRedoableError(f"Session {entry_id} is not an undone organize session")

        operations = [
            FileOperation(kind=op.kind, source_path=op.source_path, destination_path=op.destination_path)
            for op in entry.operations
        ]
        return self.apply_operations(
            Path(entry.directory_path),
            operations,
            plan=entry.plan if plan is None else plan,
        )
