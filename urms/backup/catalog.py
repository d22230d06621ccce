"""Authoritative index of backup archives."""

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from .._utils import logger, utc_now
from .archive import ARCHIVE_SUFFIX, ArchiveFormatError, describe_archive
from .errors import ArchiveNotFound, BusyError
from .models import Archive, ArchiveStatus
from .utils import load_json, save_json_atomic

INDEX_FILENAME = "catalog.json"
INDEX_VERSION = 1
STAGING_DIRNAME = ".staging"


class ArchiveCatalog:
    """Track metadata for every archive in the backup directory.

    The index file lives next to the archives. Archives embed their own
    manifest and checksum, so a lost or damaged index is rebuilt by scanning
    the directory.

    Several service instances may share one backup directory. Each keeps a
    cached copy of the index and reloads it before every read or mutation
    when the file has been replaced since it was last seen.
    """

    def __init__(self, backup_dir: Union[str, Path]):
        """Initialize catalog.

        Args:
            backup_dir: Directory holding archives and the index file
        """
        self.backup_dir = Path(backup_dir)
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        self.staging_dir = self.backup_dir / STAGING_DIRNAME
        self.staging_dir.mkdir(parents=True, exist_ok=True)
        self.index_path = self.backup_dir / INDEX_FILENAME

        self._lock = threading.Lock()
        self._archives: Dict[str, Archive] = {}
        self._stamp: Optional[Tuple[int, int, int]] = None
        self._load()

    def _load(self) -> None:
        if not self.index_path.exists():
            if any(self.backup_dir.glob(f"*{ARCHIVE_SUFFIX}")):
                logger.warning(f"Catalog index missing in {self.backup_dir}, rebuilding from archives")
                self.rebuild()
            return

        stamp = self._index_stamp()
        try:
            archives = self._read_index()
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            logger.warning(f"Catalog index unreadable ({e}), rebuilding from archives")
            self.rebuild()
            return

        changed = False
        with self._lock:
            self._archives = {a.backup_id: a for a in archives}
            self._stamp = stamp
            for archive in self._archives.values():
                # No backup survives a process restart
                if archive.status == ArchiveStatus.IN_PROGRESS:
                    archive.status = ArchiveStatus.FAILED
                    archive.error = "interrupted before completion"
                    archive.completed_at = utc_now()
                    changed = True
                    logger.warning(f"Marked interrupted backup as failed: {archive.backup_id}")

            for path in self.backup_dir.glob(f"*{ARCHIVE_SUFFIX}"):
                if path.stem in self._archives:
                    continue
                adopted = self._describe(path)
                self._archives[adopted.backup_id] = adopted
                changed = True
                logger.info(f"Adopted archive missing from index: {path.name}")

            if changed:
                self._persist()

    def _describe(self, path: Path) -> Archive:
        try:
            return describe_archive(path)
        except (ArchiveFormatError, OSError) as e:
            logger.warning(f"Failed to read backup {path.name}: {e}")
            stat = path.stat()
            return Archive(
                backup_id=path.stem,
                created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                collections=[],
                filename=path.name,
                status=ArchiveStatus.CORRUPT,
                size_bytes=stat.st_size,
                error=str(e),
            )

    def rebuild(self) -> List[Archive]:
        """Recreate the index by scanning archive files.

        Returns:
            Rebuilt archive list, newest first
        """
        with self._lock:
            archives: Dict[str, Archive] = {}
            for path in sorted(self.backup_dir.glob(f"*{ARCHIVE_SUFFIX}")):
                archive = self._describe(path)
                archives[archive.backup_id] = archive
            self._archives = archives
            self._persist()

        logger.info(f"Catalog rebuilt: {len(archives)} archive(s)")
        return self.list()

    def _index_stamp(self) -> Optional[Tuple[int, int, int]]:
        # Every publish replaces the file, so the inode changes with each write
        try:
            stat = self.index_path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _read_index(self) -> List[Archive]:
        data = load_json(self.index_path)
        return [Archive.model_validate(item) for item in data["archives"]]

    def _refresh(self) -> None:
        """Reload the index if another instance has published a newer one.

        Callers hold ``_lock``.
        """
        stamp = self._index_stamp()
        if stamp is None or stamp == self._stamp:
            return
        try:
            archives = self._read_index()
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            logger.warning(f"Catalog index changed but is unreadable ({e}), keeping cached entries")
            return
        self._archives = {a.backup_id: a for a in archives}
        self._stamp = stamp

    def _persist(self) -> None:
        save_json_atomic(
            {
                "version": INDEX_VERSION,
                "archives": [a.model_dump(mode="json") for a in self._archives.values()],
            },
            self.index_path,
        )
        self._stamp = self._index_stamp()

    def register(self, archive: Archive) -> None:
        """Add a new archive.

        Raises:
            ValueError: If the backup id already exists
            BusyError: If another archive is already in progress
        """
        with self._lock:
            self._refresh()
            if archive.backup_id in self._archives:
                raise ValueError(f"Backup id already exists: {archive.backup_id}")
            if archive.status == ArchiveStatus.IN_PROGRESS:
                for other in self._archives.values():
                    if other.status == ArchiveStatus.IN_PROGRESS:
                        raise BusyError("backup", f"backup {other.backup_id}")
            self._archives[archive.backup_id] = archive.model_copy(deep=True)
            self._persist()

    def update(self, archive: Archive) -> None:
        with self._lock:
            self._refresh()
            if archive.backup_id not in self._archives:
                raise ArchiveNotFound(archive.backup_id)
            self._archives[archive.backup_id] = archive.model_copy(deep=True)
            self._persist()

    def get(self, backup_id: str) -> Archive:
        with self._lock:
            self._refresh()
            archive = self._archives.get(backup_id)
        if archive is None:
            raise ArchiveNotFound(backup_id)
        return archive.model_copy(deep=True)

    def list(self) -> List[Archive]:
        """All archives sorted by creation time (newest first)."""
        with self._lock:
            self._refresh()
            current = list(self._archives.values())
        archives = [a.model_copy(deep=True) for a in current]
        archives.sort(key=lambda a: a.created_at, reverse=True)
        return archives

    def remove(self, backup_id: str) -> None:
        with self._lock:
            self._refresh()
            if self._archives.pop(backup_id, None) is None:
                raise ArchiveNotFound(backup_id)
            self._persist()

    def in_progress(self) -> Optional[Archive]:
        with self._lock:
            self._refresh()
            current = list(self._archives.values())
        for archive in current:
            if archive.status == ArchiveStatus.IN_PROGRESS:
                return archive.model_copy(deep=True)
        return None

    def archive_path(self, archive: Union[Archive, str]) -> Path:
        if isinstance(archive, Archive):
            return self.backup_dir / archive.filename
        return self.backup_dir / f"{archive}{ARCHIVE_SUFFIX}"

    def __len__(self) -> int:
        return len(self.list())
