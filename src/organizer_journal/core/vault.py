"""Safe deletion vault for duplicate cleanup.

Files deleted as duplicates are moved into a private, hidden quarantine folder
instead of being removed. A JSON manifest keyed by vault path records where
each file came from so it can be restored later.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from organizer_journal.core.file_ops import FileOperationError, SourceNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
_HASH_CHUNK = 1024 * 1024
_HASH_PREFIX = 16


class VaultError(FileOperationError):
    """Base exception for vault errors."""


class FileExistsAtOriginalError(VaultError):
    """Raised when a restore target path is occupied. The file stays in the vault."""


class VaultItemMissingError(VaultError):
    """Raised when the quarantined copy is no longer in the vault."""


@dataclass(frozen=True)
class RestorableDuplicate:
    """A duplicate that was moved into the vault and can be restored.

    Attributes:
        deleted_path: Where the file now lives inside the vault.
        original_path: Absolute path the file is restored to.
        survivor_path: The file that was kept from the same duplicate group.
        content_hash: SHA-256 of the file content.
        size_bytes: File size at deletion time.
        deleted_at: When the file was quarantined.
        id: Unique identifier.
    """

    deleted_path: str
    original_path: str
    survivor_path: str = ""
    content_hash: str = ""
    size_bytes: int = 0
    deleted_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "id": self.id,
            "deleted_path": self.deleted_path,
            "original_path": self.original_path,
            "survivor_path": self.survivor_path,
            "content_hash": self.content_hash,
            "size_bytes": self.size_bytes,
            "deleted_at": self.deleted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RestorableDuplicate:
        """Deserialize from a dict produced by to_dict()."""
        return cls(
            deleted_path=data["deleted_path"],
            original_path=data["original_path"],
            survivor_path=data.get("survivor_path", ""),
            content_hash=data.get("content_hash", ""),
            size_bytes=int(data.get("size_bytes", 0)),
            deleted_at=datetime.fromisoformat(data["deleted_at"]),
            id=data["id"],
        )


@dataclass
class DuplicateGroup:
    """A group of identical files handed over by the duplicate detector.

    Attributes:
        original: The file to keep.
        duplicates: Files to move into the vault.
    """

    original: Path
    duplicates: list[Path] = field(default_factory=list)


def compute_content_hash(path: Path) -> str:
    """Compute the SHA-256 hex digest of a file.

    Args:
        path: File to hash.

    Returns:
        Hex digest string.
    """
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


class SafeDeletionVault:
    """Quarantine folder with a manifest for restorable deletions.

    Quarantine names combine a content hash prefix with a random suffix, so
    rapid successive deletions never collide and no internal locking is
    needed for naming. The manifest itself is guarded by a lock.

    Attributes:
        vault_dir: Folder holding quarantined files and the manifest.
    """

    def __init__(self, vault_dir: Path) -> None:
        """Initialize the vault.

        Args:
            vault_dir: Folder for quarantined files. Created on first use.
        """
        self.vault_dir = vault_dir.resolve()
        self._manifest_file = self.vault_dir / MANIFEST_FILE
        self._lock = threading.Lock()
        self._items: dict[str, RestorableDuplicate] = {}
        self._load()

    def _load(self) -> None:
        """Load the manifest if it exists."""
        if not self._manifest_file.exists():
            return
        try:
            data = json.loads(self._manifest_file.read_text(encoding="utf-8"))
            items = (RestorableDuplicate.from_dict(value) for value in data.values())
            self._items = {item.deleted_path: item for item in items}
        except (json.JSONDecodeError, TypeError, KeyError, ValueError, AttributeError) as e:
            logger.warning(f"Vault manifest {self._manifest_file} is unreadable, starting empty: {e}")
            self._items = {}

    def _save(self) -> None:
        """Write the manifest atomically."""
        self.vault_dir.mkdir(parents=True, exist_ok=True)
        data = {path: item.to_dict() for path, item in self._items.items()}
        tmp = self._manifest_file.with_name(f".{MANIFEST_FILE}.tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self._manifest_file)

    def _quarantine_path(self, content_hash: str, suffix: str) -> Path:
        name = f"{content_hash[:_HASH_PREFIX]}-{uuid.uuid4().hex[:12]}{suffix}"
        return self.vault_dir / name

    def delete_safely(self, files_to_delete: Iterable[Path], original_file: Path) -> list[RestorableDuplicate]:
        """Move duplicates into the vault instead of deleting them.

        Args:
            files_to_delete: Duplicates to quarantine.
            original_file: The surviving file of the same group.

        Returns:
            One RestorableDuplicate per quarantined file.

        Raises:
            SourceNotFoundError: If a file to delete does not exist. Files
                quarantined before the error stay recorded in the manifest.
            OSError: If a move into the vault fails.
            ValueError: If original_file is among files_to_delete. Nothing is moved.
        """
        survivor = str(original_file.resolve())
        sources = [file_path.resolve() for file_path in files_to_delete]
        if any(str(src) == survivor for src in sources):
            raise ValueError(f"Refusing to quarantine the kept file {survivor}")

        self.vault_dir.mkdir(parents=True, exist_ok=True)
        deleted: list[RestorableDuplicate] = []

        try:
            for src in sources:
                if not src.is_file():
                    raise SourceNotFoundError(f"Duplicate not found: {src}")

                content_hash = compute_content_hash(src)
                size = src.stat().st_size
                target = self._quarantine_path(content_hash, src.suffix)
                shutil.move(str(src), str(target))

                item = RestorableDuplicate(
                    deleted_path=str(target),
                    original_path=str(src),
                    survivor_path=survivor,
                    content_hash=content_hash,
                    size_bytes=size,
                )
                deleted.append(item)
                logger.info(f"Quarantined {src} as {target.name}")
        finally:
            if deleted:
                with self._lock:
                    self._items.update({item.deleted_path: item for item in deleted})
                    self._save()

        return deleted

    def restore(self, item: RestorableDuplicate) -> None:
        """Move a quarantined file back to its original path.

        Args:
            item: The record returned by delete_safely().

        Raises:
            FileExistsAtOriginalError: If the original path is occupied.
            VaultItemMissingError: If the quarantined file is gone.
            OSError: If the move fails.
        """
        original = Path(item.original_path)
        quarantined = Path(item.deleted_path)

        if original.exists() or original.is_symlink():
            raise FileExistsAtOriginalError(f"A file already exists at {original}")
        if not quarantined.exists():
            raise VaultItemMissingError(f"Quarantined file not found: {quarantined}")

        original.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(quarantined), str(original))

        with self._lock:
            self._items.pop(item.deleted_path, None)
            self._save()
        logger.info(f"Restored {original} from vault")

    def get(self, deleted_path: str) -> RestorableDuplicate | None:
        """Look up a record by its vault path."""
        return self._items.get(deleted_path)

    def items(self) -> list[RestorableDuplicate]:
        """Return all quarantined records, oldest first."""
        with self._lock:
            return sorted(self._items.values(), key=lambda item: item.deleted_at)

    def __len__(self) -> int:
        """Return the number of quarantined files."""
        return len(self._items)

    def __contains__(self, deleted_path: object) -> bool:
        """Check whether a vault path is tracked."""
        return deleted_path in self._items

    def total_size(self) -> int:
        """Total bytes held in the vault."""
        return sum(item.size_bytes for item in self.items())

    def purge(self, item: RestorableDuplicate) -> None:
        """Permanently delete one quarantined file.

        This is the only place in the application that deletes file content.

        Args:
            item: Record to purge.
        """
        quarantined = Path(item.deleted_path)
        if quarantined.parent != self.vault_dir:
            raise VaultError(f"Refusing to delete outside the vault: {quarantined}")
        if quarantined.exists():
            os.remove(quarantined)
        with self._lock:
            self._items.pop(item.deleted_path, None)
            self._save()
        logger.info(f"Purged {quarantined.name} from vault")

    def purge_all(self) -> int:
        """Permanently delete everything in the vault.

        Returns:
            Number of records purged.
        """
        items = self.items()
        for item in items:
            self.purge(item)
        return len(items)


def get_default_vault_dir(app_dir: Path) -> Path:
    """Get the default vault folder inside the app folder."""
    return app_dir / "vault"
