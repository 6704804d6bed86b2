"""Custom exceptions for database and workflow operations."""

from enum import Enum
from typing import List, Optional


class ErrorKind(str, Enum):
    """Failure taxonomy shared by every command."""
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    ALREADY_REVIEWED = "already_reviewed"
    PERMISSION_DENIED = "permission_denied"
    VALIDATION_FAILED = "validation_failed"
    CONFLICTING_VERSION = "conflicting_version"


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class DatabaseConnectionError(DatabaseError):
    """Database connection failed."""
    pass


class DatabaseOperationError(DatabaseError):
    """General database operation failed."""
    pass


class MentorflowError(DatabaseError):
    """A command failed for a reason the caller can branch on."""

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class EntityNotFoundError(MentorflowError):
    """Requested entity not found."""
    kind = ErrorKind.NOT_FOUND


class InvalidTransitionError(MentorflowError):
    """Action attempted from a state that does not permit it."""
    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status


class AlreadyReviewedError(MentorflowError):
    """Submission verdict was already recorded by another reviewer."""
    kind = ErrorKind.ALREADY_REVIEWED

    def __init__(self, message: str, review_status: Optional[str] = None):
        super().__init__(message)
        self.review_status = review_status


class PermissionDeniedError(MentorflowError):
    """Permission engine denied the action."""
    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, message: str, permission: str, reason: Optional[str] = None):
        super().__init__(message)
        self.permission = permission
        self.reason = reason


class ValidationFailedError(MentorflowError):
    """Payload failed validation before any write."""
    kind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class ConflictingVersionError(MentorflowError):
    """Concurrent version allocation collided and was rejected."""
    kind = ErrorKind.CONFLICTING_VERSION
