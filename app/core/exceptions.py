from typing import Any, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(ServiceError):
    """Malformed input (missing reason, empty course list, start >= end)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class AuthorizationError(ServiceError):
    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(ServiceError):
    """Uniqueness or overlap violation. `details` carries the conflicting records, if any."""

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
        self.details = details


class ConsistencyError(ServiceError):
    """Stored data violates an invariant the write path is supposed to guarantee."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


def error_detail(e: ServiceError) -> Any:
    """HTTP `detail` payload for a service error."""
    details = getattr(e, "details", None)
    if details is None:
        return e.message
    return {"message": e.message, "conflicts": details}
