"""TideGate error types.

Each class fixes the HTTP status and the machine-readable code. The API
layer turns any ``TideGateException`` into::

    {"error": <code>, "message": <text>, "details": {...}}
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    ROLE_NOT_FOUND = "ROLE_NOT_FOUND"
    PERMISSION_NOT_FOUND = "PERMISSION_NOT_FOUND"
    GRANT_NOT_FOUND = "GRANT_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    AUDIT_LOG_NOT_FOUND = "AUDIT_LOG_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"

    DATABASE_ERROR = "DATABASE_ERROR"
    # Retryable: connection dropped, pool exhausted, lock wait.
    TRANSIENT_STORAGE_ERROR = "TRANSIENT_STORAGE_ERROR"
    CANCELLED = "CANCELLED"


class TideGateException(Exception):
    """Base class. Subclasses override ``status_code`` and ``error_code``."""

    status_code: int = 500
    error_code: ErrorCode = ErrorCode.DATABASE_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code is not None:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }


# 404s

class NotFoundError(TideGateException):
    status_code = 404
    error_code = ErrorCode.NOT_FOUND


class RoleNotFoundError(NotFoundError):
    error_code = ErrorCode.ROLE_NOT_FOUND

    def __init__(self, role_id: str):
        super().__init__(f"Role not found: {role_id}", {"role_id": role_id})


class PermissionNotFoundError(NotFoundError):
    """Raised for the first id that is not a catalog permission."""

    error_code = ErrorCode.PERMISSION_NOT_FOUND

    def __init__(self, permission_id: str):
        super().__init__(f"Permission not found: {permission_id}", {"permission_id": permission_id})


class GrantNotFoundError(NotFoundError):
    """No grant with this exact (user, role, scope) key."""

    error_code = ErrorCode.GRANT_NOT_FOUND

    def __init__(self, user_id: str, role_id: str, scope_type: str, scope_value: str = ""):
        super().__init__(
            f"Role grant not found for user {user_id}",
            {
                "user_id": user_id,
                "role_id": role_id,
                "scope_type": scope_type,
                "scope_value": scope_value,
            },
        )


class SessionNotFoundError(NotFoundError):
    """Unknown, revoked and expired tokens all look like this.

    Same message, no details: a caller cannot tell which case it hit.
    """

    error_code = ErrorCode.SESSION_NOT_FOUND

    def __init__(self):
        super().__init__("Invalid or expired token")


class AuditLogNotFoundError(NotFoundError):
    error_code = ErrorCode.AUDIT_LOG_NOT_FOUND

    def __init__(self, entry_id: Any):
        super().__init__(f"Audit log entry not found: {entry_id}", {"entry_id": entry_id})


class UserNotFoundError(NotFoundError):
    error_code = ErrorCode.USER_NOT_FOUND

    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}", {"user_id": user_id})


# Caller mistakes

class ValidationError(TideGateException):
    """Bad input. ``field`` names the offending parameter when there is one."""

    status_code = 400
    error_code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)


class AuthenticationError(TideGateException):
    status_code = 401
    error_code = ErrorCode.UNAUTHORIZED

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(message)


class ForbiddenError(TideGateException):
    """Permission denied, or a policy rule (e.g. system roles are not deletable)."""

    status_code = 403
    error_code = ErrorCode.FORBIDDEN

    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message)


class ConflictError(TideGateException):
    status_code = 409
    error_code = ErrorCode.CONFLICT

    def __init__(self, message: str = "Resource already exists", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


# Storage

class DatabaseError(TideGateException):
    """Storage failure the caller should not blindly retry.

    ``original_error`` stays server-side: driver messages can carry SQL text
    and bound parameters, so it is logged but never put in ``details``.
    """

    error_code = ErrorCode.DATABASE_ERROR

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class TransientStorageError(DatabaseError):
    """Connection or timeout failure; the same call may succeed later."""

    error_code = ErrorCode.TRANSIENT_STORAGE_ERROR


class OperationCancelledError(TideGateException):
    """The caller's deadline passed, or it cancelled, before storage answered."""

    status_code = 504
    error_code = ErrorCode.CANCELLED

    def __init__(self, operation: str, reason: str = "deadline exceeded"):
        super().__init__(
            f"Operation cancelled: {operation} ({reason})",
            {"operation": operation, "reason": reason},
        )
