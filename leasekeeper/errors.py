"""
Domain error taxonomy.

Services raise these; the envelope boundary (services/envelope.py) turns them
into failed results. They never reach API callers as raw exceptions.
"""


class DomainError(Exception):
    code = "DOMAIN_ERROR"
    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Schema or range violation in the caller's input."""
    code = "VALIDATION_ERROR"
    http_status = 422


class AuthorizationError(DomainError):
    """Caller role or ownership mismatch."""
    code = "AUTHORIZATION_ERROR"
    http_status = 403


class NotFoundError(DomainError):
    """Entity missing or soft-deleted."""
    code = "NOT_FOUND"
    http_status = 404


class ConflictError(DomainError):
    """Overlapping lease interval, duplicate confirmation."""
    code = "CONFLICT"
    http_status = 409


class StateError(DomainError):
    """Illegal status transition for the entity's current state."""
    code = "STATE_ERROR"
    http_status = 409
