"""Per-directory mutation locks.

At most one apply, undo, restore or cleanup may run against a directory at a
time. Locks are re-entrant so a restore can call undo for the same directory
from the same thread.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

from organizer_journal.core.file_ops import FileOperationError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class DirectoryBusyError(FileOperationError):
    """Raised when another mutation is already running for a directory."""


class DirectoryLocks:
    """Registry of one re-entrant lock per directory path."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _lock_for(self, directory_path: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(directory_path)
            if lock is None:
                lock = threading.RLock()
                self._locks[directory_path] = lock
            return lock

    @contextmanager
    def hold(self, directory_path: str) -> Iterator[None]:
        """Hold the lock for a directory without waiting.

        Args:
            directory_path: Directory being mutated.

        Raises:
            DirectoryBusyError: If another thread holds the lock.
        """
        lock = self._lock_for(directory_path)
        if not lock.acquire(blocking=False):
            logger.warning(f"Rejected concurrent mutation of {directory_path}")
            raise DirectoryBusyError(f"Another operation is already running for {directory_path}")
        try:
            yield
        finally:
            lock.release()

    def is_busy(self, directory_path: str) -> bool:
        """Check whether some thread currently holds the directory lock."""
        lock = self._lock_for(directory_path)
        if lock.acquire(blocking=False):
            lock.release()
            return False
        return True
