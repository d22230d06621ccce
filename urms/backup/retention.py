"""Retention policy enforcement."""

import time
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from .._utils import logger, utc_now
from ..config import RetentionPolicy
from .catalog import ArchiveCatalog
from .errors import ArchiveNotFound
from .models import Archive, ArchiveStatus, RetentionReport

# Staging files older than this belong to a process that died mid-backup
STALE_STAGING_SECONDS = 3600


class RetentionManager:
    """Delete archives that fall outside a retention policy."""

    def __init__(self, catalog: ArchiveCatalog):
        self.catalog = catalog

    def select_expired(
        self,
        archives: List[Archive],
        policy: RetentionPolicy,
        now: Optional[datetime] = None,
        protected: Iterable[str] = (),
    ) -> List[Archive]:
        """Archives violating either bound of ``policy``.

        Args:
            archives: Catalog listing, newest first
            policy: max_count / max_age_days bounds
            now: Reference time for the age bound
            protected: Backup ids that must never be selected

        Returns:
            Archives to delete, newest first
        """
        now = now or utc_now()
        protected = set(protected)
        expired = set()

        if policy.max_age_days is not None:
            cutoff = now - timedelta(days=policy.max_age_days)
            for archive in archives:
                if archive.status != ArchiveStatus.IN_PROGRESS and archive.created_at < cutoff:
                    expired.add(archive.backup_id)

        if policy.max_count is not None:
            complete = [a for a in archives if a.status == ArchiveStatus.COMPLETE]
            for archive in complete[policy.max_count:]:
                expired.add(archive.backup_id)

        return [
            a for a in archives
            if a.backup_id in expired
            and a.backup_id not in protected
            and a.status != ArchiveStatus.IN_PROGRESS
        ]

    def apply_policy(
        self,
        policy: RetentionPolicy,
        protected: Iterable[str] = (),
        now: Optional[datetime] = None,
    ) -> RetentionReport:
        """Delete every archive outside ``policy``.

        Deletion is best-effort per archive: a failure is recorded in the
        report and the remaining archives are still processed.
        """
        report = RetentionReport()
        for archive in self.select_expired(self.catalog.list(), policy, now, protected):
            try:
                self.delete_archive(archive)
                report.removed.append(archive.backup_id)
            except ArchiveNotFound:
                # Already removed by a concurrent cleanup
                continue
            except OSError as e:
                report.failures[archive.backup_id] = str(e)
                logger.warning(f"Failed to delete backup {archive.backup_id}: {e}")

        self.sweep_staging()

        if report.removed:
            logger.info(f"Retention removed {len(report.removed)} backup(s)")
        return report

    def delete_archive(self, archive: Archive) -> None:
        """Delete an archive file and its catalog entry."""
        path = self.catalog.archive_path(archive)
        path.unlink(missing_ok=True)
        self.catalog.remove(archive.backup_id)
        logger.info(f"Deleted backup: {archive.backup_id}")

    def sweep_staging(self, max_age_seconds: float = STALE_STAGING_SECONDS) -> List[str]:
        """Remove abandoned staging files."""
        in_progress = self.catalog.in_progress()
        active = f"{in_progress.filename}.part" if in_progress else None
        cutoff = time.time() - max_age_seconds
        removed = []

        for path in self.catalog.staging_dir.glob("*.part"):
            if path.name == active:
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed.append(path.name)
            except OSError as e:
                logger.warning(f"Could not remove staging file {path.name}: {e}")

        if removed:
            logger.info(f"Removed {len(removed)} abandoned staging file(s)")
        return removed
