"""Core journal, undo, restore and safe deletion logic for Organizer Journal."""

from organizer_journal.core.file_ops import (
    BatchResult,
    DestinationExistsError,
    FileOperation,
    FileOperationError,
    OperationExecutor,
    OperationFailedError,
    OperationKind,
    SourceNotFoundError,
    get_default_app_dir,
    unique_path,
)
from organizer_journal.core.history import (
    AlreadyUndoneError,
    EntryStatus,
    HistoryEntry,
    HistoryStats,
    HistoryStore,
    NotUndoableError,
    UndoError,
    get_default_history_path,
)
from organizer_journal.core.locks import DirectoryBusyError, DirectoryLocks
from organizer_journal.core.organizer import NotRedoableError, Organizer
from organizer_journal.core.restore import RestoreEngine, RestorePreview, RestoreResult
from organizer_journal.core.settings import Settings
from organizer_journal.core.undo import UndoEngine, UndoResult, preflight
from organizer_journal.core.vault import (
    DuplicateGroup,
    FileExistsAtOriginalError,
    RestorableDuplicate,
    SafeDeletionVault,
    VaultError,
    VaultItemMissingError,
    compute_content_hash,
    get_default_vault_dir,
)

__all__ = [
    # file_ops
    "BatchResult",
    "DestinationExistsError",
    "FileOperation",
    "FileOperationError",
    "OperationExecutor",
    "OperationFailedError",
    "OperationKind",
    "SourceNotFoundError",
    "get_default_app_dir",
    "unique_path",
    # history
    "AlreadyUndoneError",
    "EntryStatus",
    "HistoryEntry",
    "HistoryStats",
    "HistoryStore",
    "NotUndoableError",
    "UndoError",
    "get_default_history_path",
    # locks
    "DirectoryBusyError",
    "DirectoryLocks",
    # organizer
    "NotRedoableError",
    "Organizer",
    # restore
    "RestoreEngine",
    "RestorePreview",
    "RestoreResult",
    # settings
    "Settings",
    # undo
    "UndoEngine",
    "UndoResult",
    "preflight",
    # vault
    "DuplicateGroup",
    "FileExistsAtOriginalError",
    "RestorableDuplicate",
    "SafeDeletionVault",
    "VaultError",
    "VaultItemMissingError",
    "compute_content_hash",
    "get_default_vault_dir",
]
