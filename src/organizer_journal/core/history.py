"""Persistent journal of organize and cleanup sessions.

Each session produces exactly one HistoryEntry, appended to the HistoryStore.
Entries never change after creation except for the one-way ``is_undone`` flag.
The store survives application restarts through a JSON file and notifies
subscribers after every change.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from organizer_journal.core.file_ops import FileOperation, FileOperationError
from organizer_journal.core.vault import RestorableDuplicate

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)


class UndoError(FileOperationError):
    """Raised when an entry cannot be undone."""


class AlreadyUndoneError(UndoError):
    """Raised when undoing an entry that is already undone."""


class NotUndoableError(UndoError):
    """Raised when an entry's status or contents do not allow undo."""


class EntryStatus(str, Enum):
    """Terminal status of a session."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    UNDO = "undo"
    DUPLICATES_CLEANUP = "duplicates_cleanup"


UNDOABLE_STATUSES = frozenset({EntryStatus.COMPLETED, EntryStatus.DUPLICATES_CLEANUP})


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable record of one organize or cleanup session.

    Attributes:
        directory_path: Folder the session worked on.
        files_organized: Number of files moved or renamed.
        folders_created: Number of folders created.
        status: Terminal status of the session.
        success: False if any item of the session failed.
        is_undone: True once the session has been reversed.
        operations: Performed operations, in forward order.
        error_message: Human-readable failure summary.
        plan: Opaque JSON value of the plan the session applied.
        duplicates_deleted: Number of duplicates moved into the vault.
        recovered_space: Bytes moved into the vault.
        restorable_items: Vault records of a duplicate cleanup.
        timestamp: When the session finished.
        id: Unique identifier.
    """

    directory_path: str
    files_organized: int = 0
    folders_created: int = 0
    status: EntryStatus = EntryStatus.COMPLETED
    success: bool = True
    is_undone: bool = False
    operations: tuple[FileOperation, ...] | None = None
    error_message: str | None = None
    plan: Any = None
    duplicates_deleted: int | None = None
    recovered_space: int | None = None
    restorable_items: tuple[RestorableDuplicate, ...] | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_undoable(self) -> bool:
        """True if the entry can still be reversed."""
        return self.status in UNDOABLE_STATUSES and not self.is_undone

    def check_undoable(self) -> None:
        """Raise if the entry cannot be undone.

        Raises:
            AlreadyUndoneError: If the entry was already undone.
            NotUndoableError: If the status does not allow undo or nothing was recorded.
        """
        if self.is_undone or self.status is EntryStatus.UNDO:
            raise AlreadyUndoneError(f"Session {self.id} has already been undone")
        if self.status not in UNDOABLE_STATUSES:
            raise NotUndoableError(f"Session {self.id} has status '{self.status.value}' and cannot be undone")
        if self.status is EntryStatus.DUPLICATES_CLEANUP:
            if self.restorable_items is None:
                raise NotUndoableError(f"Session {self.id} has no restorable items recorded")
        elif self.operations is None:
            raise NotUndoableError(f"Session {self.id} has no operations recorded")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "id": self.id,
            "directory_path": self.directory_path,
            "timestamp": self.timestamp.isoformat(),
            "files_organized": self.files_organized,
            "folders_created": self.folders_created,
            "success": self.success,
            "status": self.status.value,
            "is_undone": self.is_undone,
            "operations": None if self.operations is None else [op.to_dict() for op in self.operations],
            "error_message": self.error_message,
            "plan": self.plan,
            "duplicates_deleted": self.duplicates_deleted,
            "recovered_space": self.recovered_space,
            "restorable_items": (
                None if self.restorable_items is None else [item.to_dict() for item in self.restorable_items]
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        """Deserialize from a dict, migrating entries written without a status."""
        success = data.get("success", True)
        is_undone = data.get("is_undone", False)

        if data.get("status") is not None:
            status = EntryStatus(data["status"])
        elif is_undone:
            status = EntryStatus.UNDO
        elif success:
            status = EntryStatus.COMPLETED
        else:
            status = EntryStatus.FAILED

        operations = data.get("operations")
        items = data.get("restorable_items")
        return cls(
            id=data["id"],
            directory_path=data["directory_path"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            files_organized=int(data.get("files_organized", 0)),
            folders_created=int(data.get("folders_created", 0)),
            success=success,
            status=status,
            is_undone=is_undone,
            operations=None if operations is None else tuple(FileOperation.from_dict(op) for op in operations),
            error_message=data.get("error_message"),
            plan=data.get("plan"),
            duplicates_deleted=data.get("duplicates_deleted"),
            recovered_space=data.get("recovered_space"),
            restorable_items=None if items is None else tuple(RestorableDuplicate.from_dict(i) for i in items),
        )


@dataclass(frozen=True)
class HistoryStats:
    """Aggregate counters, always computed from the entries.

    Undone sessions no longer count towards files, folders, recovered space
    or successes; they are counted in ``reverted_count`` instead.
    """

    total_sessions: int = 0
    total_files_organized: int = 0
    total_folders_created: int = 0
    reverted_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    total_recovered_space: int = 0

    @property
    def success_rate(self) -> float:
        """Fraction of sessions that completed and are still in effect."""
        if self.total_sessions == 0:
            return 0.0
        return self.success_count / self.total_sessions

    @classmethod
    def from_entries(cls, entries: tuple[HistoryEntry, ...] | list[HistoryEntry]) -> HistoryStats:
        """Fold a sequence of entries into counters."""
        files = folders = reverted = succeeded = failed = space = 0
        for entry in entries:
            if entry.is_undone or entry.status is EntryStatus.UNDO:
                reverted += 1
                continue
            if entry.status is EntryStatus.COMPLETED:
                succeeded += 1
                files += entry.files_organized
                folders += entry.folders_created
            elif entry.status is EntryStatus.FAILED:
                failed += 1
            space += entry.recovered_space or 0
        return cls(
            total_sessions=len(entries),
            total_files_organized=files,
            total_folders_created=folders,
            reverted_count=reverted,
            success_count=succeeded,
            failed_count=failed,
            total_recovered_space=space,
        )


class HistoryStore:
    """Ordered, persistent, observable collection of HistoryEntry.

    Insertion order is chronological order. All writes are serialized by a
    lock; readers receive immutable snapshots.

    Attributes:
        history_file: JSON file backing the store, or None for in-memory use.
    """

    def __init__(self, history_file: Path | None = None) -> None:
        """Initialize the store.

        Args:
            history_file: Path to the JSON file. None keeps history in memory only.
        """
        self.history_file = history_file
        self._lock = threading.RLock()
        self._entries: list[HistoryEntry] = []
        self._index: dict[str, int] = {}
        self._listeners: list[Callable[[HistoryStore], None]] = []
        self._load()

    def _load(self) -> None:
        """Load history from the JSON file if it exists."""
        if self.history_file is None or not self.history_file.exists():
            return
        try:
            data = json.loads(self.history_file.read_text(encoding="utf-8"))
            self._entries = [HistoryEntry.from_dict(item) for item in data]
        except (json.JSONDecodeError, TypeError, KeyError, ValueError, AttributeError) as e:
            logger.warning(f"History file {self.history_file} is unreadable, starting empty: {e}")
            self._entries = []
        self._index = {entry.id: i for i, entry in enumerate(self._entries)}

    def _save(self, entries: list[HistoryEntry]) -> None:
        """Write entries atomically. Callers publish them only after this returns."""
        if self.history_file is None:
            return
        self.history_file.parent.mkdir(parents=True, exist_ok=True)
        data = [entry.to_dict() for entry in entries]
        tmp = self.history_file.with_name(f".{self.history_file.name}.tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.history_file)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("History listener failed")

    def subscribe(self, listener: Callable[[HistoryStore], None]) -> Callable[[], None]:
        """Register a callback run after every change.

        Args:
            listener: Called with the store after each append, flip or clear.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def append(self, entry: HistoryEntry) -> None:
        """Append a new entry.

        The entry becomes visible only once it is on disk.

        Raises:
            ValueError: If an entry with the same id exists.
            OSError: If the history file cannot be written. The store is unchanged.
        """
        with self._lock:
            if entry.id in self._index:
                raise ValueError(f"Duplicate history entry id: {entry.id}")
            entries = [*self._entries, entry]
            self._save(entries)
            self._entries = entries
            self._index[entry.id] = len(entries) - 1
        logger.info(f"Recorded {entry.status.value} session for {entry.directory_path}")
        self._notify()

    def mark_undone(self, entry_id: str) -> HistoryEntry:
        """Flip an entry's is_undone flag. The only mutation entries allow.

        Args:
            entry_id: Entry to flip.

        Returns:
            The updated entry.

        Raises:
            KeyError: If no such entry exists.
            AlreadyUndoneError: If the entry is already undone.
            NotUndoableError: If the status does not allow undo.
            OSError: If the history file cannot be written. The store is unchanged.
        """
        with self._lock:
            index = self._index[entry_id]
            current = self._entries[index]
            current.check_undoable()
            updated = replace(current, is_undone=True)
            entries = list(self._entries)
            entries[index] = updated
            self._save(entries)
            self._entries = entries
        self._notify()
        return updated

    def get(self, entry_id: str) -> HistoryEntry | None:
        """Return the current version of an entry, or None."""
        with self._lock:
            index = self._index.get(entry_id)
            return None if index is None else self._entries[index]

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        """Snapshot of all entries, oldest first."""
        with self._lock:
            return tuple(self._entries)

    @property
    def stats(self) -> HistoryStats:
        """Aggregate counters folded over the current entries."""
        return HistoryStats.from_entries(self.entries)

    def later_entries(self, entry_id: str) -> list[HistoryEntry]:
        """Entries of the same directory appended after entry_id, oldest first.

        Order comes from insertion, not from timestamps, so a clock that
        stepped back between sessions does not reorder them.

        Raises:
            KeyError: If no such entry exists.
        """
        with self._lock:
            index = self._index[entry_id]
            directory_path = self._entries[index].directory_path
            return [entry for entry in self._entries[index + 1:] if entry.directory_path == directory_path]

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._save([])
            self._entries = []
            self._index = {}
        self._notify()

    def __len__(self) -> int:
        """Return the number of entries."""
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        """Iterate over a snapshot of entries from oldest to newest."""
        return iter(self.entries)


def get_default_history_path(app_dir: Path) -> Path:
    """Get the default path for the history JSON file."""
    return app_dir / "history.json"
