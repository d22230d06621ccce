"""Error taxonomy for backup/restore operations.

Every error carries a ``kind`` string that the orchestrator copies into its
result models and the API layer maps to an HTTP status.
"""

from typing import Dict, List, Optional, Sequence


class BackupError(Exception):
    """Base exception for backup engine operations."""

    kind = "backup_error"


class BusyError(BackupError):
    """A backup or restore is already running."""

    kind = "busy"

    def __init__(self, requested: str, holder: Optional[str] = None):
        self.requested = requested
        self.holder = holder
        if holder:
            message = f"Cannot start {requested}: {holder} already in progress"
        else:
            message = f"Cannot start {requested}: another operation is in progress"
        super().__init__(message)


class ArchiveNotFound(BackupError):
    kind = "not_found"

    def __init__(self, backup_id: str):
        self.backup_id = backup_id
        super().__init__(f"Backup not found: {backup_id}")


class ArchiveCorrupt(BackupError):
    """Archive failed integrity verification."""

    kind = "corrupt"

    def __init__(self, backup_id: str, reason: str):
        self.backup_id = backup_id
        self.reason = reason
        super().__init__(f"Backup {backup_id} is corrupt: {reason}")


class BackupFailure(BackupError):
    """I/O or serialization error while writing a snapshot."""

    kind = "backup_failure"

    def __init__(self, collection: Optional[str], reason: str):
        self.collection = collection
        self.reason = reason
        if collection:
            super().__init__(f"Backup failed on collection {collection}: {reason}")
        else:
            super().__init__(f"Backup failed: {reason}")


class RestoreFailure(BackupError):
    """Restore failed before live data was touched."""

    kind = "restore_failure"

    def __init__(self, backup_id: str, reason: str):
        self.backup_id = backup_id
        self.reason = reason
        super().__init__(f"Restore of {backup_id} failed: {reason}")


class PartialRestore(BackupError):
    """The swap failed after some live collections were replaced.

    Re-running the restore from the same archive converges.
    """

    kind = "partial_restore"

    def __init__(self, backup_id: str, swapped: Sequence[str], reason: str):
        self.backup_id = backup_id
        self.swapped: List[str] = list(swapped)
        self.reason = reason
        super().__init__(
            f"Restore of {backup_id} partially applied ({', '.join(self.swapped)} replaced): "
            f"{reason}. Re-run the restore from the same backup."
        )


class InvalidSchedule(BackupError):
    kind = "invalid_schedule"


class CleanupPartialFailure(BackupError):
    """Some archives could not be deleted; the others were."""

    kind = "cleanup_partial_failure"

    def __init__(self, failures: Dict[str, str]):
        self.failures = dict(failures)
        super().__init__(
            f"Failed to delete {len(self.failures)} backup(s): "
            + "; ".join(f"{k}: {v}" for k, v in self.failures.items())
        )
