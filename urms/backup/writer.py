"""Snapshot writer: stream live collections into one archive file."""

import asyncio
import os
from typing import Dict, Mapping, Optional, Sequence

from ..base import BaseDocumentStore
from .._utils import logger, utc_now
from .archive import (
    ARCHIVE_FORMAT,
    ARCHIVE_FORMAT_VERSION,
    ARCHIVE_SUFFIX,
    ArchiveStreamWriter,
    open_archive_for_write,
)
from .catalog import ArchiveCatalog
from .errors import BackupFailure
from .models import Archive, ArchiveManifest, ArchiveStatus, CollectionManifest
from .utils import generate_backup_id


class SnapshotWriter:
    """Serialize configured collections into a checksummed archive.

    The archive is written under the catalog's staging directory and renamed
    into the backup directory only once it is complete, so a reader never sees
    a half-written archive under its final name.
    """

    def __init__(
        self,
        store: BaseDocumentStore,
        catalog: ArchiveCatalog,
        compress: bool = True,
        schema_versions: Optional[Mapping[str, int]] = None,
        write_batch_size: int = 500,
    ):
        self.store = store
        self.catalog = catalog
        self.compress = compress
        self.schema_versions = dict(schema_versions or {})
        self.write_batch_size = write_batch_size

    async def write_snapshot(
        self,
        collections: Sequence[str],
        backup_id: Optional[str] = None,
        trigger: str = "manual",
    ) -> Archive:
        """Create a full snapshot of ``collections``.

        Args:
            collections: Collection names, in archive order
            backup_id: Optional custom backup ID. If None, generates timestamp-based ID.
            trigger: ``manual`` or ``scheduled``

        Returns:
            The completed Archive

        Raises:
            BackupFailure: On any read, write or finalization error
            BusyError: If another archive is already in progress
        """
        created_at = utc_now()
        backup_id = backup_id or generate_backup_id(created_at)
        archive = Archive(
            backup_id=backup_id,
            created_at=created_at,
            collections=list(collections),
            filename=f"{backup_id}{ARCHIVE_SUFFIX}",
            trigger=trigger,
        )
        try:
            self.catalog.register(archive)
        except ValueError as e:
            raise BackupFailure(None, str(e)) from e

        logger.info(f"Starting backup: {backup_id}")

        staging_path = self.catalog.staging_dir / f"{archive.filename}.part"
        final_path = self.catalog.archive_path(archive)
        published = False
        current: Optional[str] = None

        try:
            counts: Dict[str, int] = {}
            archive_file = await asyncio.to_thread(open_archive_for_write, staging_path, self.compress)
            try:
                stream = ArchiveStreamWriter(archive_file.fileobj)
                await asyncio.to_thread(stream.write_entry, {
                    "type": "header",
                    "format": ARCHIVE_FORMAT,
                    "format_version": ARCHIVE_FORMAT_VERSION,
                    "backup_id": backup_id,
                    "created_at": created_at.isoformat(),
                    "collections": list(collections),
                    "trigger": trigger,
                })

                for name in collections:
                    current = name
                    counts[name] = await self._write_collection(stream, name)
                current = None

                manifest = ArchiveManifest(
                    backup_id=backup_id,
                    created_at=created_at,
                    urms_version=self._get_version(),
                    collections=[
                        CollectionManifest(
                            name=name,
                            record_count=counts[name],
                            schema_version=self.schema_versions.get(name, 1),
                        )
                        for name in collections
                    ],
                    total_records=sum(counts.values()),
                )
                await asyncio.to_thread(
                    stream.write_entry, {"type": "manifest", **manifest.model_dump(mode="json")}
                )
                checksum = await asyncio.to_thread(stream.finish)
                await asyncio.to_thread(archive_file.close)
            finally:
                archive_file.abort()

            await asyncio.to_thread(os.replace, staging_path, final_path)
            published = True

            archive.status = ArchiveStatus.COMPLETE
            archive.size_bytes = final_path.stat().st_size
            archive.record_counts = counts
            archive.checksum = checksum
            archive.completed_at = utc_now()
            self.catalog.update(archive)

        except Exception as e:
            reason = str(e) or type(e).__name__
            if published:
                final_path.unlink(missing_ok=True)
            archive.status = ArchiveStatus.FAILED
            archive.error = reason
            archive.completed_at = utc_now()
            self._record_failure(archive)
            logger.error(f"Backup failed: {backup_id} ({current or 'finalize'}): {reason}")
            raise BackupFailure(current, reason) from e

        finally:
            staging_path.unlink(missing_ok=True)
            if archive.status == ArchiveStatus.IN_PROGRESS:
                # Cancelled mid-write
                archive.status = ArchiveStatus.FAILED
                archive.error = "interrupted"
                archive.completed_at = utc_now()
                self._record_failure(archive)

        logger.info(
            f"Backup complete: {backup_id} ({archive.size_bytes:,} bytes, "
            f"{sum(archive.record_counts.values())} records)"
        )
        return archive

    async def _write_collection(self, stream: ArchiveStreamWriter, name: str) -> int:
        # Encoding and file writes run in a worker thread, one batch at a time
        batch = [{
            "type": "section",
            "collection": name,
            "schema_version": self.schema_versions.get(name, 1),
        }]
        count = 0
        async for document in self.store.iter_documents(name):
            batch.append({"type": "record", "collection": name, "document": document})
            count += 1
            if len(batch) >= self.write_batch_size:
                await asyncio.to_thread(stream.write_entries, batch)
                batch = []
        batch.append({"type": "section_end", "collection": name, "record_count": count})
        await asyncio.to_thread(stream.write_entries, batch)

        logger.debug(f"Backed up collection: {name} ({count} documents)")
        return count

    def _record_failure(self, archive: Archive) -> None:
        try:
            self.catalog.update(archive)
        except Exception as e:
            logger.error(f"Could not record failed backup {archive.backup_id} in catalog: {e}")

    def _get_version(self) -> str:
        """Get urms version."""
        try:
            from .. import __version__
            return __version__
        except ImportError:
            return "unknown"
