"""Backup and restore engine for the records database."""

from .catalog import ArchiveCatalog
from .errors import (
    ArchiveCorrupt,
    ArchiveNotFound,
    BackupError,
    BackupFailure,
    BusyError,
    CleanupPartialFailure,
    InvalidSchedule,
    PartialRestore,
    RestoreFailure,
)
from .lock import BaseOperationLock, LocalOperationLock, RedisOperationLock, build_operation_lock
from .manager import BackupOrchestrator
from .models import (
    Archive,
    ArchiveManifest,
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
from .scheduler import BackupScheduler
from .writer import SnapshotWriter

__all__ = [
    "ArchiveCatalog",
    "ArchiveCorrupt",
    "ArchiveNotFound",
    "BackupError",
    "BackupFailure",
    "BusyError",
    "CleanupPartialFailure",
    "InvalidSchedule",
    "PartialRestore",
    "RestoreFailure",
    "BaseOperationLock",
    "LocalOperationLock",
    "RedisOperationLock",
    "build_operation_lock",
    "BackupOrchestrator",
    "Archive",
    "ArchiveManifest",
    "ArchiveStatus",
    "BackupResult",
    "BackupStatus",
    "CleanupResult",
    "RestoreResult",
    "ScheduleConfig",
    "VerifyResult",
    "RestoreEngine",
    "RetentionManager",
    "BackupScheduler",
    "SnapshotWriter",
]
