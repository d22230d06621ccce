"""Backup orchestrator: the single entry point for backup operations."""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..base import BaseDocumentStore
from .._storage import StorageFactory
from .._utils import logger, utc_now
from ..config import Frequency, URMSConfig, parse_run_time
from .catalog import ArchiveCatalog
from .errors import (
    ArchiveCorrupt,
    ArchiveNotFound,
    BackupError,
    BusyError,
    CleanupPartialFailure,
    InvalidSchedule,
)
from .lock import BaseOperationLock, build_operation_lock
from .models import (
    Archive,
    ArchiveStatus,
    BackupResult,
    BackupStatus,
    CleanupResult,
    RestoreResult,
    ScheduleConfig,
    VerifyResult,
)
from .restore import RestoreEngine
from .retention import RetentionManager
from .writer import SnapshotWriter
from .utils import add_period, compute_initial_run, generate_backup_id


class BackupOrchestrator:
    """Owns the schedule and the operation lock, delegates the work.

    Backup and restore are mutually exclusive and fail fast with ``busy``
    instead of queueing. Operations that mutate data return result models;
    errors never escape them.
    """

    def __init__(
        self,
        store: BaseDocumentStore,
        catalog: ArchiveCatalog,
        writer: SnapshotWriter,
        restore_engine: RestoreEngine,
        retention: RetentionManager,
        lock: BaseOperationLock,
        config: URMSConfig,
    ):
        self.store = store
        self.catalog = catalog
        self.writer = writer
        self.restore_engine = restore_engine
        self.retention = retention
        self.lock = lock
        self.config = config

        self.collections = list(config.database.collections)
        self.retention_policy = config.backup.retention
        self._schedule = ScheduleConfig(
            frequency=config.backup.schedule_frequency,
            run_time=config.backup.schedule_run_time,
            enabled=config.backup.schedule_enabled,
        )

        self._current_operation: Optional[str] = None
        self._current_backup_id: Optional[str] = None
        self._last_error: Optional[str] = None

    @classmethod
    def from_config(
        cls,
        config: Optional[URMSConfig] = None,
        store: Optional[BaseDocumentStore] = None,
        lock: Optional[BaseOperationLock] = None,
    ) -> "BackupOrchestrator":
        """Build the orchestrator and its components.

        Args:
            config: Service configuration, read from the environment if None
            store: Document store, created from ``config.database`` if None
            lock: Operation lock, created from ``config.backup`` if None
        """
        config = config or URMSConfig.from_env()
        if store is None:
            store = StorageFactory.create_document_store(
                config.database.backend,
                global_config=config.database.to_store_config(),
            )
        catalog = ArchiveCatalog(config.backup.backup_dir)
        return cls(
            store=store,
            catalog=catalog,
            writer=SnapshotWriter(
                store,
                catalog,
                compress=config.backup.compress,
                schema_versions=config.database.schema_versions,
            ),
            restore_engine=RestoreEngine(store, catalog, batch_size=config.backup.restore_batch_size),
            retention=RetentionManager(catalog),
            lock=lock or build_operation_lock(config.backup),
            config=config,
        )

    # Status and listing never take the operation lock

    def get_status(self) -> BackupStatus:
        """Current engine state as seen by this process."""
        last_backup_id = None
        archive_count = 0
        try:
            archives = self.catalog.list()
            archive_count = len(archives)
            last_backup_id = next(
                (a.backup_id for a in archives if a.status == ArchiveStatus.COMPLETE), None
            )
        except Exception as e:
            logger.warning(f"Could not read catalog for status: {e}")

        return BackupStatus(
            is_running=self._current_operation is not None,
            current_operation=self._current_operation,
            current_backup_id=self._current_backup_id,
            last_backup_id=last_backup_id,
            last_error=self._last_error,
            archive_count=archive_count,
            schedule=self.schedule,
        )

    def list_backups(self) -> List[Archive]:
        """All archives, newest first."""
        return self.catalog.list()

    def get_backup(self, backup_id: str) -> Archive:
        return self.catalog.get(backup_id)

    def get_backup_path(self, backup_id: str) -> Path:
        """Path of a published archive file.

        Raises:
            ArchiveNotFound: Unknown id, archive not finished, or file missing
        """
        archive = self.catalog.get(backup_id)
        path = self.catalog.archive_path(archive)
        if archive.status == ArchiveStatus.IN_PROGRESS or not path.exists():
            raise ArchiveNotFound(backup_id)
        return path

    async def perform_full_backup(self, trigger: str = "manual") -> BackupResult:
        """Snapshot every configured collection, then apply retention."""
        if not await self.lock.acquire("backup"):
            return await self._busy_result("backup", BackupResult)

        backup_id = generate_backup_id()
        self._current_operation = "backup"
        self._current_backup_id = backup_id
        try:
            archive = await self.writer.write_snapshot(self.collections, backup_id=backup_id, trigger=trigger)
            self._last_error = None
        except BackupError as e:
            self._last_error = str(e)
            return BackupResult(success=False, error=str(e), error_kind=e.kind)
        except Exception as e:
            logger.exception(f"Unexpected error during backup: {e}")
            self._last_error = str(e)
            return BackupResult(success=False, error=str(e), error_kind="backup_failure")
        finally:
            self._current_operation = None
            self._current_backup_id = None
            await self.lock.release()

        try:
            report = self.retention.apply_policy(self.retention_policy, protected=self._protected())
            if report.failures:
                logger.warning(f"Retention could not delete: {report.failures}")
        except Exception as e:
            logger.error(f"Retention after backup failed: {e}", exc_info=True)

        return BackupResult(success=True, backup_id=archive.backup_id)

    async def restore_from_backup(self, backup_id: str) -> RestoreResult:
        """Replace the live collections with archive ``backup_id``."""
        if not await self.lock.acquire("restore"):
            return await self._busy_result("restore", RestoreResult, backup_id=backup_id)

        self._current_operation = "restore"
        self._current_backup_id = backup_id
        try:
            await self.restore_engine.restore(backup_id)
            self._last_error = None
            return RestoreResult(success=True, backup_id=backup_id)
        except BackupError as e:
            self._last_error = str(e)
            return RestoreResult(success=False, backup_id=backup_id, error=str(e), error_kind=e.kind)
        except Exception as e:
            logger.exception(f"Unexpected error during restore of {backup_id}: {e}")
            self._last_error = str(e)
            return RestoreResult(
                success=False, backup_id=backup_id, error=str(e), error_kind="restore_failure"
            )
        finally:
            self._current_operation = None
            self._current_backup_id = None
            await self.lock.release()

    async def _busy_result(self, requested: str, result_cls, **fields):
        holder = self._current_operation
        if holder is None:
            # Held by another instance sharing the lock
            try:
                holder = await self.lock.current_holder()
            except Exception as e:
                logger.warning(f"Could not read operation lock holder: {e}")
        error = BusyError(requested, holder)
        logger.warning(str(error))
        return result_cls(success=False, error=str(error), error_kind=error.kind, **fields)

    async def cleanup_old_backups(self) -> CleanupResult:
        """Apply the retention policy now."""
        try:
            report = self.retention.apply_policy(self.retention_policy, protected=self._protected())
        except Exception as e:
            logger.exception(f"Cleanup failed: {e}")
            return CleanupResult(success=False, error=str(e), error_kind="backup_error")

        if report.failures:
            error = CleanupPartialFailure(report.failures)
            logger.warning(str(error))
            return CleanupResult(
                success=False,
                removed=report.removed,
                failures=report.failures,
                error=str(error),
                error_kind=error.kind,
            )
        return CleanupResult(success=True, removed=report.removed)

    def delete_backup(self, backup_id: str) -> None:
        """Delete one archive.

        Raises:
            ArchiveNotFound: Unknown backup id
            BusyError: The archive is being written or restored
        """
        archive = self.catalog.get(backup_id)
        if backup_id in self._protected():
            raise BusyError("delete", f"restore of {backup_id}")
        if archive.status == ArchiveStatus.IN_PROGRESS:
            raise BusyError("delete", f"backup {backup_id}")
        self.retention.delete_archive(archive)

    async def verify_backups(self) -> List[VerifyResult]:
        """Re-verify every complete archive, marking mismatches corrupt."""
        results = []
        for archive in self.catalog.list():
            if archive.status != ArchiveStatus.COMPLETE:
                continue
            try:
                await self.restore_engine.verify(archive)
                results.append(VerifyResult(backup_id=archive.backup_id, valid=True))
            except ArchiveCorrupt as e:
                results.append(VerifyResult(backup_id=archive.backup_id, valid=False, error=e.reason))

        invalid = sum(1 for r in results if not r.valid)
        logger.info(f"Verified {len(results)} backup(s), {invalid} corrupt")
        return results

    def _protected(self) -> set:
        if self._current_operation == "restore" and self._current_backup_id:
            return {self._current_backup_id}
        return set()

    # Schedule

    @property
    def schedule(self) -> ScheduleConfig:
        return self._schedule.model_copy()

    def update_backup_schedule(
        self,
        frequency: str,
        run_time: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ScheduleConfig:
        """Change the automatic backup cadence.

        Raises:
            InvalidSchedule: Unknown frequency or malformed run time
        """
        try:
            frequency = Frequency(str(frequency).lower())
        except ValueError:
            allowed = ", ".join(f.value for f in Frequency)
            raise InvalidSchedule(f"Invalid schedule {frequency!r}, expected one of: {allowed}")

        run_time = run_time or self._schedule.run_time
        try:
            at = parse_run_time(run_time)
        except ValueError as e:
            raise InvalidSchedule(str(e)) from e

        run_time = f"{at.hour:02d}:{at.minute:02d}"
        self._schedule = ScheduleConfig(
            frequency=frequency,
            run_time=run_time,
            enabled=self._schedule.enabled,
            next_run=compute_initial_run(run_time, now or utc_now()),
        )
        logger.info(
            f"Backup schedule updated: {frequency.value} at {run_time} UTC "
            f"(next run: {self._schedule.next_run.isoformat()})"
        )
        return self.schedule

    def ensure_next_run(self, now: Optional[datetime] = None) -> None:
        if self._schedule.enabled and self._schedule.next_run is None:
            self._schedule.next_run = compute_initial_run(self._schedule.run_time, now or utc_now())

    def advance_schedule(self, fired_for: datetime) -> None:
        """Move ``next_run`` one period past the slot that fired.

        A schedule replaced while the backup ran is left alone.
        """
        if self._schedule.next_run != fired_for:
            return
        self._schedule.next_run = add_period(fired_for, self._schedule.frequency)
        logger.debug(f"Next scheduled backup: {self._schedule.next_run.isoformat()}")

    async def close(self) -> None:
        close_lock = getattr(self.lock, "close", None)
        if close_lock is not None:
            await close_lock()
        await self.store.close()
