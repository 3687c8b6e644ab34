"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    def extra(self) -> dict[str, Any]:
        """Additional fields rendered into the error response body."""
        return {}


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception (permission denied)."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


class ConflictException(AppException):
    """Overlapping appointments block the requested window."""

    def __init__(
        self,
        message: str = "Conflict",
        conflicts: list[dict[str, Any]] | None = None,
        resource: str = "professional",
    ):
        """Initialize with 409 status code and the full conflict set."""
        super().__init__(message, status_code=409)
        self.conflicts = conflicts or []
        self.resource = resource

    def extra(self) -> dict[str, Any]:
        """Expose the conflicting appointments so clients can offer other slots."""
        return {"resource": self.resource, "conflicts": self.conflicts}


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class PolicyViolationException(AppException):
    """A lifecycle guard rejected the operation."""

    def __init__(self, reason: str, message: str = "Operation not allowed"):
        """Initialize with 422 status code and a machine-readable reason code."""
        super().__init__(message, status_code=422)
        self.reason = reason

    def extra(self) -> dict[str, Any]:
        """Expose the reason code."""
        return {"reason": self.reason}


class StoreFailureException(AppException):
    """Transient persistence failure; state must be re-read before retrying."""

    def __init__(self, message: str = "Storage temporarily unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)
        self.retryable = True

    def extra(self) -> dict[str, Any]:
        """Flag the error as retryable."""
        return {"retryable": self.retryable}


class AuditWriteException(AppException):
    """The primary change committed but its audit entry could not be written."""

    def __init__(self, entity_id: str, action: str):
        """Initialize with 500 status code."""
        super().__init__(
            f"Audit entry for '{action}' on appointment {entity_id} could not be written",
            status_code=500,
        )
        self.entity_id = entity_id
        self.action = action
        self.committed = True

    def extra(self) -> dict[str, Any]:
        """Report that the primary mutation is committed."""
        return {"entity_id": self.entity_id, "action": self.action, "committed": self.committed}
