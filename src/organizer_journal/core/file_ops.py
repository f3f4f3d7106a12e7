"""File operations with conflict resolution and per-item failure reporting.

This module is the ONLY allowed way to move files in the application.
CRITICAL: Never use os.remove(), os.unlink(), shutil.rmtree(), or Path.unlink().
          The only permanent deletion lives in SafeDeletionVault.purge().
CRITICAL: Never use shutil.copy() or shutil.copy2() — only MOVE.
CRITICAL: Never overwrite an existing path; resolve conflicts with unique_path().
"""

from __future__ import annotations

import logging
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


class FileOperationError(Exception):
    """Base exception for file operation errors."""


class SourceNotFoundError(FileOperationError):
    """Raised when source file does not exist."""


class DestinationExistsError(FileOperationError):
    """Raised when a non-directory occupies a folder path."""


class OperationFailedError(FileOperationError):
    """A single operation of a batch failed.

    Attributes:
        operation: The operation that failed.
        cause: The underlying exception.
    """

    def __init__(self, operation: FileOperation, cause: Exception) -> None:
        super().__init__(f"{operation.kind.value} {operation.source_path} failed: {cause}")
        self.operation = operation
        self.cause = cause


class OperationKind(str, Enum):
    """Kind of filesystem mutation."""

    MOVE = "move"
    RENAME = "rename"
    CREATE_FOLDER = "create_folder"


@dataclass(frozen=True)
class FileOperation:
    """Immutable record of one planned or performed filesystem mutation.

    Attributes:
        kind: What the operation does.
        source_path: File being moved/renamed, or the folder to create.
        destination_path: Where the file goes (None for create_folder).
        timestamp: When the operation was planned or performed.
        id: Unique identifier.
    """

    kind: OperationKind
    source_path: str
    destination_path: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def move(cls, src: Path, dst: Path) -> FileOperation:
        """Create a move operation."""
        return cls(kind=OperationKind.MOVE, source_path=str(src.resolve()), destination_path=str(dst.resolve()))

    @classmethod
    def rename(cls, src: Path, new_name: str) -> FileOperation:
        """Create a rename operation that keeps the file in its folder.

        Args:
            src: File to rename.
            new_name: New file name (no directory part).

        Returns:
            A new FileOperation.

        Raises:
            ValueError: If new_name contains a path separator.
        """
        if Path(new_name).name != new_name:
            raise ValueError(f"Rename target must be a bare file name: {new_name!r}")
        src = src.resolve()
        return cls(kind=OperationKind.RENAME, source_path=str(src), destination_path=str(src.with_name(new_name)))

    @classmethod
    def create_folder(cls, path: Path) -> FileOperation:
        """Create a create_folder operation."""
        return cls(kind=OperationKind.CREATE_FOLDER, source_path=str(path.resolve()))

    @property
    def moves_file(self) -> bool:
        """True for move and rename operations."""
        return self.kind in (OperationKind.MOVE, OperationKind.RENAME)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "source_path": self.source_path,
            "destination_path": self.destination_path,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileOperation:
        """Deserialize from a dict produced by to_dict()."""
        return cls(
            kind=OperationKind(data["kind"]),
            source_path=data["source_path"],
            destination_path=data.get("destination_path"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            id=data["id"],
        )


@dataclass
class BatchResult:
    """Outcome of applying a batch of operations.

    Attributes:
        succeeded: Operations that were performed, with resolved destinations.
        failed: Operations that failed, paired with the error.
    """

    succeeded: list[FileOperation] = field(default_factory=list)
    failed: list[tuple[FileOperation, OperationFailedError]] = field(default_factory=list)

    @property
    def files_moved(self) -> int:
        """Number of move/rename operations that succeeded."""
        return sum(1 for op in self.succeeded if op.moves_file)

    @property
    def folders_created(self) -> int:
        """Number of create_folder operations that succeeded."""
        return sum(1 for op in self.succeeded if op.kind is OperationKind.CREATE_FOLDER)

    @property
    def all_succeeded(self) -> bool:
        """True if no operation failed."""
        return not self.failed


def unique_path(path: Path) -> Path:
    """Return path, or the first free sibling ``stem_N.ext`` for N = 1, 2, ...

    Args:
        path: Desired path.

    Returns:
        A path that does not currently exist.
    """
    if not path.exists() and not path.is_symlink():
        return path

    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
        if not candidate.exists() and not candidate.is_symlink():
            return candidate
        counter += 1


def move_without_overwrite(src: Path, dst: Path) -> Path:
    """Move src to dst, suffixing dst if it is taken.

    Args:
        src: Existing file or folder.
        dst: Desired destination.

    Returns:
        The path the item was actually moved to.

    Raises:
        SourceNotFoundError: If src does not exist.
        OSError: If the move itself fails.
    """
    if not src.exists() and not src.is_symlink():
        raise SourceNotFoundError(f"Source file not found: {src}")

    dst.parent.mkdir(parents=True, exist_ok=True)
    final = unique_path(dst)
    shutil.move(str(src), str(final))
    return final


class OperationExecutor:
    """Applies batches of FileOperation to the real filesystem.

    Every call performs blocking I/O; run it off the UI event loop.
    """

    def apply(self, operations: Iterable[FileOperation]) -> BatchResult:
        """Apply operations in order, best-effort.

        A failing operation is recorded and the batch continues.

        Args:
            operations: Operations in the order they must be performed.

        Returns:
            BatchResult with resolved successes and per-item failures.
        """
        result = BatchResult()
        for operation in operations:
            try:
                result.succeeded.append(self._apply_one(operation))
            except (FileOperationError, OSError, ValueError) as e:
                logger.warning(f"Operation failed: {operation.kind.value} {operation.source_path}: {e}")
                result.failed.append((operation, OperationFailedError(operation, e)))
        return result

    def _apply_one(self, operation: FileOperation) -> FileOperation:
        if operation.kind is OperationKind.CREATE_FOLDER:
            folder = Path(operation.source_path)
            if folder.exists() and not folder.is_dir():
                raise DestinationExistsError(f"Not a folder: {folder}")
            folder.mkdir(parents=True, exist_ok=True)
            return operation

        if operation.destination_path is None:
            raise ValueError(f"{operation.kind.value} operation has no destination")

        final = move_without_overwrite(Path(operation.source_path), Path(operation.destination_path))
        if str(final) == operation.destination_path:
            return operation
        logger.info(f"Destination taken, moved to {final} instead")
        return FileOperation(
            kind=operation.kind,
            source_path=operation.source_path,
            destination_path=str(final),
            timestamp=operation.timestamp,
            id=operation.id,
        )

    def reverse_move(self, operation: FileOperation) -> Path:
        """Move a performed move/rename back to its source.

        Args:
            operation: A performed move or rename.

        Returns:
            The path the file was moved back to (suffixed if the source is taken).

        Raises:
            ValueError: If operation is not a move or rename.
            SourceNotFoundError: If the file is no longer at the destination.
            OSError: If the move fails.
        """
        if not operation.moves_file or operation.destination_path is None:
            raise ValueError(f"Cannot reverse a {operation.kind.value} operation")
        return move_without_overwrite(Path(operation.destination_path), Path(operation.source_path))


def get_default_app_dir() -> Path:
    """Get the private per-user folder holding history and the vault."""
    return Path.home() / ".organizer-journal"
