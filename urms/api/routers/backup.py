"""Backup and restore API endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from ..dependencies import ADMIN_ROLES, SYSTEM_ADMIN_ROLES, get_orchestrator, require_roles
from ..exceptions import BackupNotFoundError, BackupOperationError, ScheduleRequiredError
from ..models import (
    BackupInfo,
    BackupListResponse,
    BackupStatusInfo,
    CleanupResponse,
    CreateBackupResponse,
    DeleteResponse,
    RestoreResponse,
    ScheduleInfo,
    ScheduleResponse,
    ScheduleUpdate,
    StatusResponse,
    VerifyInfo,
    VerifyResponse,
)
from urms._utils import logger
from urms.backup import ArchiveNotFound, BackupError, BackupOrchestrator

router = APIRouter(prefix="/backup", tags=["backup"])

admin_only = Depends(require_roles(*ADMIN_ROLES))
system_admin_only = Depends(require_roles(*SYSTEM_ADMIN_ROLES))


@router.get("/status", response_model=StatusResponse, dependencies=[admin_only])
async def get_backup_status(
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
) -> StatusResponse:
    """Current backup state and schedule."""
    status = orchestrator.get_status()
    return StatusResponse(status=BackupStatusInfo.model_validate(status.model_dump(mode="json")))


@router.post("/create", response_model=CreateBackupResponse, dependencies=[admin_only])
async def create_backup(
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
) -> CreateBackupResponse:
    """Run a full backup now and wait for it to finish."""
    result = await orchestrator.perform_full_backup()
    if not result.success:
        raise BackupOperationError("Backup failed", result.error, result.error_kind)
    return CreateBackupResponse(backup_id=result.backup_id)


@router.get("/list", response_model=BackupListResponse, dependencies=[admin_only])
async def list_backups(
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
) -> BackupListResponse:
    """List all backups, newest first."""
    backups = [
        BackupInfo.model_validate(archive.model_dump(mode="json"))
        for archive in orchestrator.list_backups()
    ]
    return BackupListResponse(backups=backups)


@router.post("/restore/{backup_id}", response_model=RestoreResponse, dependencies=[system_admin_only])
async def restore_backup(
    backup_id: str,
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
) -> RestoreResponse:
    """Replace the live collections with a stored backup."""
    result = await orchestrator.restore_from_backup(backup_id)
    if not result.success:
        raise BackupOperationError("Restore failed", result.error, result.error_kind)
    return RestoreResponse(backup_id=backup_id)


@router.put("/schedule", response_model=ScheduleResponse, dependencies=[system_admin_only])
async def update_schedule(
    body: ScheduleUpdate,
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
) -> ScheduleResponse:
    """Change how often automatic backups run."""
    if not body.schedule:
        raise ScheduleRequiredError()
    try:
        schedule = orchestrator.update_backup_schedule(body.schedule, body.run_time)
    except BackupError as e:
        raise BackupOperationError("Invalid backup schedule", str(e), e.kind)
    return ScheduleResponse(schedule=ScheduleInfo.model_validate(schedule.model_dump(mode="json")))


@router.delete("/cleanup", response_model=CleanupResponse, dependencies=[admin_only])
async def cleanup_backups(
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
) -> CleanupResponse:
    """Delete backups outside the retention policy."""
    result = await orchestrator.cleanup_old_backups()
    if not result.success:
        error = BackupOperationError("Cleanup failed", result.error, result.error_kind)
        error.detail["removed"] = result.removed
        error.detail["failures"] = result.failures
        raise error
    return CleanupResponse(removed=result.removed)


@router.post("/verify", response_model=VerifyResponse, dependencies=[admin_only])
async def verify_backups(
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
) -> VerifyResponse:
    """Re-check the checksum of every complete backup."""
    results = await orchestrator.verify_backups()
    return VerifyResponse(
        results=[VerifyInfo.model_validate(r.model_dump()) for r in results],
    )


@router.get("/{backup_id}/download", dependencies=[system_admin_only])
async def download_backup(
    backup_id: str,
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
) -> FileResponse:
    """Download a backup archive as a .urbak file."""
    try:
        backup_path = orchestrator.get_backup_path(backup_id)
    except ArchiveNotFound:
        raise BackupNotFoundError(backup_id)

    return FileResponse(
        path=backup_path,
        media_type="application/octet-stream",
        filename=backup_path.name,
    )


@router.delete("/{backup_id}", response_model=DeleteResponse, dependencies=[system_admin_only])
async def delete_backup(
    backup_id: str,
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
) -> DeleteResponse:
    """Delete a backup archive."""
    try:
        orchestrator.delete_backup(backup_id)
    except BackupError as e:
        raise BackupOperationError("Delete failed", str(e), e.kind)
    except OSError as e:
        logger.error(f"Failed to delete backup {backup_id}: {e}")
        raise BackupOperationError("Delete failed", str(e), None)

    return DeleteResponse(message=f"Backup deleted: {backup_id}")
