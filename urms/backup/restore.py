"""Restore engine: verify an archive, stage it, swap it in."""

import asyncio
import uuid
import zlib
from itertools import groupby
from operator import itemgetter
from typing import Iterator, List, Tuple

from ..base import BaseDocumentStore, PartialSwapError
from .._utils import logger
from .archive import ArchiveFormatError, ArchiveRecordReader, ArchiveScan, scan_archive
from .catalog import ArchiveCatalog
from .errors import ArchiveCorrupt, PartialRestore, RestoreFailure
from .models import Archive, ArchiveStatus


def _read_batch(records: Iterator[Tuple[str, dict]], size: int) -> List[Tuple[str, dict]]:
    batch = []
    for item in records:
        batch.append(item)
        if len(batch) >= size:
            break
    return batch


class RestoreEngine:
    """Replace live collections with the contents of a complete archive.

    Live data is only touched by the final swap, after the archive has been
    verified end to end and every collection has been staged.
    """

    def __init__(self, store: BaseDocumentStore, catalog: ArchiveCatalog, batch_size: int = 500):
        self.store = store
        self.catalog = catalog
        self.batch_size = batch_size

    async def restore(self, backup_id: str) -> Archive:
        """Restore ``backup_id`` over the live collections.

        Returns:
            The restored Archive

        Raises:
            ArchiveNotFound: Unknown backup id
            ArchiveCorrupt: Archive failed verification, live data untouched
            RestoreFailure: Staging failed, live data untouched
            PartialRestore: Swap failed after some collections were replaced
        """
        archive = self.catalog.get(backup_id)
        if archive.status == ArchiveStatus.CORRUPT:
            raise ArchiveCorrupt(backup_id, archive.error or "previously marked corrupt")
        if archive.status != ArchiveStatus.COMPLETE:
            raise RestoreFailure(backup_id, f"backup is {archive.status.value}, not complete")

        logger.info(f"Starting restore from backup: {backup_id}")
        scan = await self.verify(archive)
        collections = [c.name for c in scan.manifest.collections]

        token = uuid.uuid4().hex
        try:
            await self.store.begin_staging(token)
            staged = await self._stage_archive(archive, scan, token)
        except ArchiveCorrupt:
            await self._discard(token)
            raise
        except Exception as e:
            await self._discard(token)
            logger.error(f"Restore failed while staging {backup_id}: {e}")
            raise RestoreFailure(backup_id, str(e) or type(e).__name__) from e

        try:
            await self.store.swap_staged(token, collections)
        except PartialSwapError as e:
            logger.error(f"Restore of {backup_id} partially applied: {e} (swapped: {e.swapped})")
            raise PartialRestore(backup_id, e.swapped, str(e)) from e
        except Exception as e:
            await self._discard(token)
            logger.error(f"Restore swap failed for {backup_id}: {e}")
            raise RestoreFailure(backup_id, str(e) or type(e).__name__) from e

        logger.info(f"Restore complete: {backup_id} ({staged} records in {len(collections)} collections)")
        return archive

    async def verify(self, archive: Archive) -> ArchiveScan:
        """Full verification pass over an archive.

        A failed check marks the archive ``corrupt`` in the catalog.

        Raises:
            ArchiveCorrupt: Unreadable stream, structural error or checksum mismatch
        """
        path = self.catalog.archive_path(archive)
        try:
            scan = await asyncio.to_thread(scan_archive, path)
        except ArchiveFormatError as e:
            self._mark_corrupt(archive, str(e))
            raise ArchiveCorrupt(archive.backup_id, str(e)) from e

        if not scan.checksum_valid:
            reason = "checksum mismatch"
        elif archive.checksum is not None and scan.stored_checksum != archive.checksum:
            reason = "checksum differs from catalog"
        elif scan.manifest.backup_id != archive.backup_id:
            reason = f"archive belongs to {scan.manifest.backup_id}"
        else:
            return scan

        self._mark_corrupt(archive, reason)
        raise ArchiveCorrupt(archive.backup_id, reason)

    async def _stage_archive(self, archive: Archive, scan: ArchiveScan, token: str) -> int:
        reader = ArchiveRecordReader(self.catalog.archive_path(archive))
        records = iter(reader)
        total = 0
        while True:
            try:
                batch = await asyncio.to_thread(_read_batch, records, self.batch_size)
            except (ValueError, KeyError, OSError, EOFError, zlib.error) as e:
                # Changed on disk since verification
                self._mark_corrupt(archive, f"unreadable archive: {e}")
                raise ArchiveCorrupt(archive.backup_id, f"unreadable archive: {e}") from e
            if not batch:
                break
            for collection, group in groupby(batch, key=itemgetter(0)):
                documents = [doc for _, doc in group]
                await self.store.stage_documents(token, collection, documents)
                total += len(documents)

        if reader.computed_checksum != scan.stored_checksum:
            self._mark_corrupt(archive, "archive changed after verification")
            raise ArchiveCorrupt(archive.backup_id, "archive changed after verification")
        return total

    async def _discard(self, token: str) -> None:
        try:
            await self.store.discard_staged(token)
        except Exception as e:
            logger.warning(f"Could not discard staged restore {token}: {e}")

    def _mark_corrupt(self, archive: Archive, reason: str) -> None:
        logger.error(f"Backup {archive.backup_id} failed verification: {reason}")
        archive.status = ArchiveStatus.CORRUPT
        archive.error = reason
        try:
            self.catalog.update(archive)
        except Exception as e:
            logger.error(f"Could not mark backup {archive.backup_id} corrupt: {e}")
