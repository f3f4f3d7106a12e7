"""Reversal of a single history entry.

Undo moves files back in strict reverse order of the forward session. Folders
created by the session are never deleted, since the user may have put new
content in them. Duplicate cleanup sessions are reversed through the vault.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from organizer_journal.core.file_ops import FileOperationError, OperationFailedError, SourceNotFoundError
from organizer_journal.core.history import EntryStatus
from organizer_journal.core.locks import DirectoryLocks
from organizer_journal.core.vault import VaultError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from organizer_journal.core.file_ops import FileOperation, OperationExecutor
    from organizer_journal.core.history import HistoryEntry, HistoryStore
    from organizer_journal.core.vault import RestorableDuplicate, SafeDeletionVault

logger = logging.getLogger(__name__)


def preflight(operations: Sequence[FileOperation]) -> list[str]:
    """Find moved files that are no longer where the session put them.

    Read-only: nothing on disk is touched. The reversal is simulated from the
    last operation back, so a file moved twice (a -> b, then b -> c) is found
    at b once c -> b has been undone.

    Args:
        operations: Forward operations of one or more sessions, oldest first.

    Returns:
        Destination paths that will not exist when their reversal runs,
        in forward order.
    """
    present: dict[str, bool] = {}
    missing: list[str] = []
    for operation in reversed(operations):
        if not operation.moves_file or operation.destination_path is None:
            continue
        destination = operation.destination_path
        if not present.get(destination, Path(destination).exists()):
            missing.append(destination)
            continue
        present[destination] = False
        present[operation.source_path] = True
    missing.reverse()
    return missing


def preflight_restorable(items: Iterable[RestorableDuplicate]) -> list[str]:
    """Find vault records whose quarantined file is gone."""
    return [item.deleted_path for item in items if not Path(item.deleted_path).exists()]


@dataclass
class UndoResult:
    """Outcome of reversing one entry.

    Attributes:
        entry: The entry as it is after the call.
        restored: Number of files moved back or restored from the vault.
        missing_files: Paths the preflight could not find.
        failures: Per-item errors raised while reversing.
        needs_confirmation: True if the call stopped at the preflight gate.
    """

    entry: HistoryEntry
    restored: int = 0
    missing_files: list[str] = field(default_factory=list)
    failures: list[FileOperationError] = field(default_factory=list)
    needs_confirmation: bool = False

    @property
    def completed(self) -> bool:
        """True if the entry was reversed and flagged undone."""
        return self.entry.is_undone and not self.needs_confirmation

    @property
    def has_issues(self) -> bool:
        """True if anything was missing, failed or is awaiting confirmation."""
        return bool(self.missing_files or self.failures or self.needs_confirmation)


class UndoEngine:
    """Reverses one HistoryEntry and flags it undone in the store."""

    def __init__(
        self,
        store: HistoryStore,
        executor: OperationExecutor,
        vault: SafeDeletionVault,
        locks: DirectoryLocks | None = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._vault = vault
        self._locks = locks or DirectoryLocks()

    def _already_restored(self, item: RestorableDuplicate) -> bool:
        """True if item was restored on its own and is back at its original path."""
        return item.deleted_path not in self._vault and Path(item.original_path).exists()

    def _pending_items(self, entry: HistoryEntry) -> list[RestorableDuplicate]:
        return [item for item in entry.restorable_items or () if not self._already_restored(item)]

    def preflight(self, entry: HistoryEntry) -> list[str]:
        """Missing paths that would be skipped if entry were reversed now."""
        if entry.status is EntryStatus.DUPLICATES_CLEANUP:
            return preflight_restorable(self._pending_items(entry))
        return preflight(entry.operations or ())

    def reverse(self, entry: HistoryEntry, *, proceed_with_missing: bool = False) -> UndoResult:
        """Reverse a session.

        Args:
            entry: The session to reverse.
            proceed_with_missing: Continue past missing files, skipping them.

        Returns:
            UndoResult. If files are missing and proceed_with_missing is False,
            nothing is changed and needs_confirmation is True.

        Raises:
            AlreadyUndoneError: If the entry is already undone.
            NotUndoableError: If the entry cannot be undone.
            DirectoryBusyError: If another mutation holds the directory.
            KeyError: If the entry is not in the store.
        """
        current = self._store.get(entry.id)
        if current is None:
            raise KeyError(f"Unknown history entry: {entry.id}")
        current.check_undoable()

        with self._locks.hold(current.directory_path):
            # Another undo may have finished between the check above and the lock.
            current = self._store.get(entry.id) or current
            current.check_undoable()

            missing = self.preflight(current)
            if missing and not proceed_with_missing:
                logger.info(f"Undo of {current.id} paused: {len(missing)} file(s) missing")
                return UndoResult(entry=current, missing_files=missing, needs_confirmation=True)

            if current.status is EntryStatus.DUPLICATES_CLEANUP:
                result = self._restore_duplicates(current)
            else:
                result = self._reverse_operations(current)
            result.missing_files = missing

            if not result.failures:
                result.entry = self._store.mark_undone(current.id)
                logger.info(f"Undid session {current.id}: {result.restored} restored, {len(missing)} missing")
            else:
                logger.warning(f"Undo of {current.id} incomplete: {len(result.failures)} failure(s)")
            return result

    def _reverse_operations(self, entry: HistoryEntry) -> UndoResult:
        result = UndoResult(entry=entry)
        for operation in reversed(entry.operations or ()):
            if not operation.moves_file or operation.destination_path is None:
                continue
            if not Path(operation.destination_path).exists():
                continue
            try:
                self._executor.reverse_move(operation)
                result.restored += 1
            except (SourceNotFoundError, OSError) as e:
                logger.warning(f"Could not move back {operation.destination_path}: {e}")
                result.failures.append(OperationFailedError(operation, e))
        return result

    def _restore_duplicates(self, entry: HistoryEntry) -> UndoResult:
        result = UndoResult(entry=entry)
        for item in self._pending_items(entry):
            if not Path(item.deleted_path).exists():
                continue
            try:
                self._vault.restore(item)
                result.restored += 1
            except VaultError as e:
                logger.warning(f"Could not restore {item.original_path}: {e}")
                result.failures.append(e)
            except OSError as e:
                logger.warning(f"Could not restore {item.original_path}: {e}")
                result.failures.append(VaultError(str(e)))
        return result
