from typing import Any, Dict, Optional


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationFailedError(AppException):
    """Bad input: empty patch, reversed range, compliance rejection."""
    def __init__(self, message: str, error_code: str = "VALIDATION_FAILED", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=400, error_code=error_code, details=details)


class InvalidRangeError(ValidationFailedError):
    def __init__(self, message: str = "End time must be after start time"):
        super().__init__(message=message, error_code="INVALID_RANGE")


class ConflictError(AppException):
    def __init__(self, message: str, error_code: str = "CONFLICT", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=409, error_code=error_code, details=details)


class OverlapConflictError(ConflictError):
    def __init__(self, message: str = "Time entry overlaps with existing entry"):
        super().__init__(message=message, error_code="TIME_ENTRY_OVERLAP")


class AlreadyClockedInError(ConflictError):
    def __init__(self):
        super().__init__(message="Already clocked in", error_code="ALREADY_CLOCKED_IN")


class NoActiveEntryError(ConflictError):
    def __init__(self):
        super().__init__(message="No active time entry", error_code="NO_ACTIVE_ENTRY")


class NotFoundError(AppException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message=message, status_code=404, error_code="NOT_FOUND")


class PreconditionFailedError(AppException):
    """The record is in a state that does not allow the requested transition."""
    def __init__(self, message: str, error_code: str = "PRECONDITION_FAILED"):
        super().__init__(message=message, status_code=400, error_code=error_code)


class NoOvertimeRuleError(PreconditionFailedError):
    def __init__(self):
        super().__init__(message="No default overtime rule configured", error_code="NO_OVERTIME_RULE")


class DependencyUnavailableError(AppException):
    """A collaborator (stored procedure, permission store) failed to answer."""
    def __init__(self, message: str, status_code: int = 500, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="DEPENDENCY_UNAVAILABLE",
            details=details
        )


class AuthenticationError(AppException):
    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(
            message=message,
            status_code=401,
            error_code="AUTH_FAILED"
        )


class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )
