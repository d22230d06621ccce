"""Health check endpoints."""

from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_orchestrator, get_scheduler
from ..models import HealthStatus
from urms._utils import logger
from urms.backup import BackupOrchestrator, BackupScheduler

router = APIRouter(prefix="/health", tags=["health"])


async def check_database(orchestrator: BackupOrchestrator) -> bool:
    """Check document store connectivity."""
    try:
        return await orchestrator.store.check_health()
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False


@router.get("", response_model=HealthStatus)
async def health_check(
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
    scheduler: Optional[BackupScheduler] = Depends(get_scheduler),
) -> HealthStatus:
    """Database connectivity and scheduler state."""
    database_ok = await check_database(orchestrator)
    return HealthStatus(
        status="healthy" if database_ok else "unhealthy",
        database=database_ok,
        scheduler=scheduler.get_status() if scheduler else {"running": False},
    )


@router.get("/ready")
async def readiness_probe(
    orchestrator: BackupOrchestrator = Depends(get_orchestrator),
) -> Dict[str, str]:
    """Kubernetes readiness probe."""
    if not await check_database(orchestrator):
        raise HTTPException(status_code=503, detail="Service not ready")
    return {"status": "ready"}


@router.get("/live")
async def liveness_probe() -> Dict[str, str]:
    """Kubernetes liveness probe."""
    return {"status": "alive"}
