"""Data models for backup/restore operations."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from ..config import Frequency


class ArchiveStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    FAILED = "failed"
    CORRUPT = "corrupt"


class CollectionManifest(BaseModel):
    """Per-collection entry of an archive manifest."""

    name: str
    record_count: int = 0
    schema_version: int = 1


class ArchiveManifest(BaseModel):
    """Manifest embedded in every archive after the collection sections."""

    backup_id: str = Field(..., description="Unique backup identifier")
    created_at: datetime = Field(..., description="Snapshot start timestamp")
    urms_version: str = Field(..., description="urms version that wrote the archive")
    collections: List[CollectionManifest] = Field(..., description="Collections in archive order")
    total_records: int = Field(..., description="Sum of record counts")


class Archive(BaseModel):
    """Catalog entry for one snapshot."""

    backup_id: str = Field(..., description="Unique backup identifier")
    created_at: datetime = Field(..., description="Snapshot start timestamp")
    collections: List[str] = Field(..., description="Collections included, in archive order")
    filename: str = Field(..., description="Archive file name inside the backup directory")
    status: ArchiveStatus = ArchiveStatus.IN_PROGRESS
    size_bytes: int = 0
    record_counts: Dict[str, int] = Field(default_factory=dict)
    checksum: Optional[str] = Field(None, description="SHA-256 checksum of the archive payload")
    trigger: str = "manual"
    completed_at: Optional[datetime] = None
    error: Optional[str] = None


class ScheduleConfig(BaseModel):
    """Process-wide automatic backup cadence."""

    frequency: Frequency = Frequency.DAILY
    run_time: str = "02:00"
    enabled: bool = True
    next_run: Optional[datetime] = None


class BackupStatus(BaseModel):
    is_running: bool
    current_operation: Optional[str] = None
    current_backup_id: Optional[str] = None
    last_backup_id: Optional[str] = None
    last_error: Optional[str] = None
    archive_count: int = 0
    schedule: ScheduleConfig


class BackupResult(BaseModel):
    success: bool
    backup_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class RestoreResult(BaseModel):
    success: bool
    backup_id: str
    error: Optional[str] = None
    error_kind: Optional[str] = None


class RetentionReport(BaseModel):
    removed: List[str] = Field(default_factory=list)
    failures: Dict[str, str] = Field(default_factory=dict)


class CleanupResult(BaseModel):
    success: bool
    removed: List[str] = Field(default_factory=list)
    failures: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None
    error_kind: Optional[str] = None


class VerifyResult(BaseModel):
    backup_id: str
    valid: bool
    error: Optional[str] = None
