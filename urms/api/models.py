"""Pydantic models for API requests and responses.

Payloads use camelCase keys to match the existing URMS web client.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BackupInfo(CamelModel):
    backup_id: str
    created_at: datetime
    collections: List[str]
    filename: str
    status: str
    size_bytes: int = 0
    record_counts: Dict[str, int] = Field(default_factory=dict)
    checksum: Optional[str] = None
    trigger: str = "manual"
    completed_at: Optional[datetime] = None
    error: Optional[str] = None


class ScheduleInfo(CamelModel):
    frequency: str
    run_time: str
    enabled: bool
    next_run: Optional[datetime] = None


class BackupStatusInfo(CamelModel):
    is_running: bool
    current_operation: Optional[str] = None
    current_backup_id: Optional[str] = None
    last_backup_id: Optional[str] = None
    last_error: Optional[str] = None
    archive_count: int = 0
    schedule: ScheduleInfo


class StatusResponse(CamelModel):
    success: bool = True
    status: BackupStatusInfo


class CreateBackupResponse(CamelModel):
    success: bool = True
    message: str = "Backup completed successfully"
    backup_id: str


class BackupListResponse(CamelModel):
    success: bool = True
    backups: List[BackupInfo]


class RestoreResponse(CamelModel):
    success: bool = True
    message: str = "Restore completed successfully"
    backup_id: str


class ScheduleUpdate(CamelModel):
    # Optional so a missing value is a 400, not a validation 422
    schedule: Optional[str] = Field(None, description="daily, weekly, monthly or yearly")
    run_time: Optional[str] = Field(None, description="HH:MM in UTC")


class ScheduleResponse(CamelModel):
    success: bool = True
    message: str = "Backup schedule updated successfully"
    schedule: ScheduleInfo


class CleanupResponse(CamelModel):
    success: bool = True
    message: str = "Old backups cleaned up successfully"
    removed: List[str] = Field(default_factory=list)


class DeleteResponse(CamelModel):
    success: bool = True
    message: str


class VerifyInfo(CamelModel):
    backup_id: str
    valid: bool
    error: Optional[str] = None


class VerifyResponse(CamelModel):
    success: bool = True
    results: List[VerifyInfo]


class HealthStatus(BaseModel):
    status: str  # "healthy", "unhealthy"
    database: bool
    scheduler: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_now)
