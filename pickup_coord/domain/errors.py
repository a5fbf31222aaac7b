"""
Domain error taxonomy.

Every failure a caller can see is one of these.  Each class carries the
HTTP status the API layer answers with; the message is the short
human-readable string placed in the response envelope.
"""

from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationRequired(AppError):
    status_code = 401

    def __init__(self, message: str = "Sign-in is required."):
        super().__init__(message)


class ProfileNotFound(AppError):
    status_code = 401

    def __init__(self, message: str = "Profile not found. Please sign in again."):
        super().__init__(message)


class NotFound(AppError):
    status_code = 404

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"{resource} not found.")


class AuthorizationDenied(AppError):
    status_code = 403

    def __init__(self, message: str = "You do not have access to this resource."):
        super().__init__(message)


class InvalidStateTransition(AppError):
    """Raised when an entity's status does not permit the operation."""

    status_code = 409


class ConstraintViolation(AppError):
    """Raised when a capacity, count or uniqueness rule would be exceeded."""

    status_code = 409


class ValidationFailed(AppError):
    status_code = 422


class DatastoreFailure(AppError):
    status_code = 503

    def __init__(self, message: str = "The data store is unavailable. Please try again."):
        super().__init__(message)
