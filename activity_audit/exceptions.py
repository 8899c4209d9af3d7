"""Domain errors raised by the session, impersonation and tracking services."""


class TrackingCoreError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TrackingCoreError):
    """Raised when input to an operation is malformed or missing."""
    pass


class InvalidArgumentError(ValidationError):
    """Raised when an argument is well-formed but not acceptable (e.g. self-impersonation)."""
    pass


class NotFoundError(TrackingCoreError):
    """Raised when a session, impersonation log or principal does not exist."""
    pass


class ConflictError(TrackingCoreError):
    """Raised on duplicate tokens or a concurrent impersonation."""
    pass


class ForbiddenError(TrackingCoreError):
    """Raised on a role or ownership violation."""
    pass


class AuthorizationError(TrackingCoreError):
    """Raised when an active session is required but missing, invalid or expired."""
    pass
