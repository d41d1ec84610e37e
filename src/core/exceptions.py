"""Custom exceptions and error codes."""

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Standardized error codes for the API."""

    # Authentication errors (401)
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"

    # Authorization errors (403)
    FORBIDDEN = "FORBIDDEN"
    NOT_A_MEMBER = "NOT_A_MEMBER"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    LAST_OWNER = "LAST_OWNER"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
    MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"
    NOTIFICATION_NOT_FOUND = "NOTIFICATION_NOT_FOUND"

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CIRCULAR_REFERENCE = "CIRCULAR_REFERENCE"
    INVALID_ROLE = "INVALID_ROLE"

    # State machine errors (409)
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Conflict errors (409)
    CONFLICT = "CONFLICT"
    DUPLICATE_KEY = "DUPLICATE_KEY"
    PROJECT_KEY_TAKEN = "PROJECT_KEY_TAKEN"
    ALREADY_A_MEMBER = "ALREADY_A_MEMBER"

    # Rate limiting (429)
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Server errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Collaborator errors (502/503)
    PERMANENT_FAILURE = "PERMANENT_FAILURE"
    DELIVERY_REJECTED = "DELIVERY_REJECTED"
    TRANSIENT_FAILURE = "TRANSIENT_FAILURE"
    OPERATION_TIMEOUT = "OPERATION_TIMEOUT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    DELIVERY_UNAVAILABLE = "DELIVERY_UNAVAILABLE"


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Any | None = None,
    ) -> None:
        self.error_code = error_code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class AuthenticationError(AppException):
    """Authentication failed."""

    def __init__(
        self,
        message: str = "Authentication required",
        error_code: ErrorCode = ErrorCode.UNAUTHORIZED,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            status_code=401,
        )


# --- Error taxonomy ---


class ValidationError(AppException):
    """Malformed input. Never retried as-is."""

    def __init__(
        self,
        message: str,
        details: Any | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            status_code=400,
            details=details,
        )


class NotFoundError(AppException):
    """Entity absent."""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Any | None = None,
        error_code: ErrorCode = ErrorCode.NOT_FOUND,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            status_code=404,
            details=details,
        )


class InvalidTransitionError(AppException):
    """Requested status edge is not permitted."""

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(
            error_code=ErrorCode.INVALID_TRANSITION,
            message=f"Cannot transition from {from_status} to {to_status}",
            status_code=409,
            details={"from": from_status, "to": to_status},
        )


class ConflictError(AppException):
    """Optimistic concurrency loss. Retryable after re-reading the entity."""

    def __init__(
        self,
        message: str = "Entity was modified concurrently",
        details: Any | None = None,
        error_code: ErrorCode = ErrorCode.CONFLICT,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            status_code=409,
            details=details,
        )


class DuplicateKeyError(AppException):
    """Uniqueness violation. Not retryable with the same input."""

    def __init__(
        self,
        message: str = "Duplicate key",
        details: Any | None = None,
        error_code: ErrorCode = ErrorCode.DUPLICATE_KEY,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            status_code=409,
            details=details,
        )


class ForbiddenError(AppException):
    """Authorization failure."""

    def __init__(
        self,
        message: str = "Access denied",
        details: Any | None = None,
        error_code: ErrorCode = ErrorCode.FORBIDDEN,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            status_code=403,
            details=details,
        )


class TransientError(AppException):
    """Collaborator timeout or unavailability. Safe to retry the whole operation."""

    def __init__(
        self,
        message: str = "Temporarily unavailable, retry later",
        details: Any | None = None,
        error_code: ErrorCode = ErrorCode.TRANSIENT_FAILURE,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            status_code=503,
            details=details,
        )


class PermanentError(AppException):
    """Collaborator rejected the request. Not retryable."""

    def __init__(
        self,
        message: str = "Request rejected by downstream service",
        details: Any | None = None,
        error_code: ErrorCode = ErrorCode.PERMANENT_FAILURE,
    ) -> None:
        super().__init__(
            error_code=error_code,
            message=message,
            status_code=502,
            details=details,
        )


# --- Not found ---


class TaskNotFoundError(NotFoundError):
    """Task not found."""

    def __init__(self, task_id: str) -> None:
        super().__init__(
            message=f"Task not found: {task_id}",
            details={"task_id": task_id},
            error_code=ErrorCode.TASK_NOT_FOUND,
        )


class ProjectNotFoundError(NotFoundError):
    """Project not found."""

    def __init__(self, project_id: str) -> None:
        super().__init__(
            message=f"Project not found: {project_id}",
            details={"project_id": project_id},
            error_code=ErrorCode.PROJECT_NOT_FOUND,
        )


class MemberNotFoundError(NotFoundError):
    """User is not a member of the project being modified."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            message="User is not a member of this project",
            details={"user_id": user_id},
            error_code=ErrorCode.MEMBER_NOT_FOUND,
        )


class NotificationNotFoundError(NotFoundError):
    """Notification not found (or not owned by the caller)."""

    def __init__(self, notification_id: str) -> None:
        super().__init__(
            message=f"Notification not found: {notification_id}",
            details={"notification_id": notification_id},
            error_code=ErrorCode.NOTIFICATION_NOT_FOUND,
        )


# --- Validation ---


class CircularReferenceError(ValidationError):
    """Circular reference detected in hierarchy."""

    def __init__(self, message: str = "Circular reference detected") -> None:
        super().__init__(message=message, error_code=ErrorCode.CIRCULAR_REFERENCE)


class InvalidRoleError(ValidationError):
    """Role cannot be granted through this operation."""

    def __init__(self, role: str, message: str | None = None) -> None:
        super().__init__(
            message=message or f"Role cannot be assigned here: {role}",
            details={"role": role},
            error_code=ErrorCode.INVALID_ROLE,
        )


# --- Authorization ---


class NotAMemberError(ForbiddenError):
    """User is not a member of the project."""

    def __init__(self, project_id: str) -> None:
        super().__init__(
            message="You are not a member of this project",
            details={"project_id": project_id},
            error_code=ErrorCode.NOT_A_MEMBER,
        )


class InsufficientPermissionsError(ForbiddenError):
    """User does not have sufficient permissions."""

    def __init__(self, required_role: str = "admin") -> None:
        super().__init__(
            message=f"Insufficient permissions. Required role: {required_role}",
            details={"required_role": required_role},
            error_code=ErrorCode.INSUFFICIENT_PERMISSIONS,
        )


class LastOwnerError(ForbiddenError):
    """The current owner cannot be removed; ownership must be transferred first."""

    def __init__(self) -> None:
        super().__init__(
            message="Cannot remove the project owner. Transfer ownership first",
            error_code=ErrorCode.LAST_OWNER,
        )


# --- Conflicts and uniqueness ---


class TaskConflictError(ConflictError):
    """Task version changed between read and write."""

    def __init__(self, task_id: str, expected_version: int) -> None:
        super().__init__(
            message=f"Task {task_id} was modified concurrently; re-read and retry",
            details={"task_id": task_id, "expected_version": expected_version},
        )


class ProjectConflictError(ConflictError):
    """Project version changed between read and write."""

    def __init__(self, project_id: str, expected_version: int) -> None:
        super().__init__(
            message=f"Project {project_id} was modified concurrently; re-read and retry",
            details={"project_id": project_id, "expected_version": expected_version},
        )


class ProjectKeyTakenError(DuplicateKeyError):
    """Project key is already taken."""

    def __init__(self, key: str) -> None:
        super().__init__(
            message=f"Project key already taken: {key}",
            details={"key": key},
            error_code=ErrorCode.PROJECT_KEY_TAKEN,
        )


class AlreadyAMemberError(DuplicateKeyError):
    """User is already a member of the project."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            message="User is already a member of this project",
            details={"user_id": user_id},
            error_code=ErrorCode.ALREADY_A_MEMBER,
        )


# --- Collaborator failures ---


class OperationTimeoutError(TransientError):
    """A domain operation exceeded its deadline."""

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        super().__init__(
            message=f"Operation timed out: {operation}",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
            error_code=ErrorCode.OPERATION_TIMEOUT,
        )


class StoreUnavailableError(TransientError):
    """The domain store could not be reached."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(
            message="Domain store unavailable",
            details={"reason": reason} if reason else None,
            error_code=ErrorCode.STORE_UNAVAILABLE,
        )


class DeliveryTransientError(TransientError):
    """A delivery channel failed in a way that may succeed on retry."""

    def __init__(self, channel: str, reason: str) -> None:
        super().__init__(
            message=f"Delivery via {channel} temporarily failed: {reason}",
            details={"channel": channel, "reason": reason},
            error_code=ErrorCode.DELIVERY_UNAVAILABLE,
        )


class DeliveryPermanentError(PermanentError):
    """A delivery channel rejected the message."""

    def __init__(self, channel: str, reason: str) -> None:
        super().__init__(
            message=f"Delivery via {channel} rejected: {reason}",
            details={"channel": channel, "reason": reason},
            error_code=ErrorCode.DELIVERY_REJECTED,
        )
