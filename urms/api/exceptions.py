"""Custom exceptions for FastAPI application."""

from typing import Optional

from fastapi import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

# Engine error kinds with a dedicated status; everything else is a 500
STATUS_BY_ERROR_KIND = {
    "not_found": HTTP_404_NOT_FOUND,
    "busy": HTTP_409_CONFLICT,
    "invalid_schedule": HTTP_400_BAD_REQUEST,
}


class BackupAPIError(HTTPException):
    """Base exception for backup API errors."""
    pass


class AuthenticationRequiredError(BackupAPIError):
    def __init__(self):
        super().__init__(HTTP_401_UNAUTHORIZED, "Authentication required")


class InsufficientRoleError(BackupAPIError):
    def __init__(self, role: str):
        super().__init__(HTTP_403_FORBIDDEN, f"Role {role} is not allowed to perform this action")


class ScheduleRequiredError(BackupAPIError):
    def __init__(self):
        super().__init__(HTTP_400_BAD_REQUEST, "Backup schedule is required")


class BackupNotFoundError(BackupAPIError):
    def __init__(self, backup_id: str):
        super().__init__(HTTP_404_NOT_FOUND, f"Backup not found: {backup_id}")


class BackupOperationError(BackupAPIError):
    """Failed engine operation, with the status chosen from its error kind."""

    def __init__(self, message: str, error: Optional[str], error_kind: Optional[str]):
        status_code = STATUS_BY_ERROR_KIND.get(error_kind, HTTP_500_INTERNAL_SERVER_ERROR)
        super().__init__(
            status_code,
            {"success": False, "message": message, "error": error, "errorKind": error_kind},
        )
        self.error_kind = error_kind
