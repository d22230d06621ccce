"""Dependency injection for FastAPI."""

from typing import TYPE_CHECKING, Optional

from fastapi import Header, Request

from .exceptions import AuthenticationRequiredError, InsufficientRoleError

if TYPE_CHECKING:
    from urms.backup import BackupOrchestrator, BackupScheduler

ADMIN_ROLES = ("admin", "system-admin")
SYSTEM_ADMIN_ROLES = ("system-admin",)


async def get_orchestrator(request: Request) -> "BackupOrchestrator":
    """Get BackupOrchestrator instance from app state."""
    return request.app.state.orchestrator


async def get_scheduler(request: Request) -> Optional["BackupScheduler"]:
    """Get scheduler from app state if one was started."""
    return getattr(request.app.state, "scheduler", None)


def require_roles(*roles: str):
    """Build a dependency that admits only the given roles.

    The role is set by the upstream auth gateway in ``X-User-Role``.
    """
    async def check_role(x_user_role: Optional[str] = Header(None)) -> str:
        if not x_user_role:
            raise AuthenticationRequiredError()
        if x_user_role not in roles:
            raise InsufficientRoleError(x_user_role)
        return x_user_role

    return check_role
