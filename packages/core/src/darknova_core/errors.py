"""Domain exceptions raised by the service layer.

The API layer maps each class to an HTTP status code; nothing here knows about HTTP.
"""


class DarknovaError(Exception):
    """Base class for all domain errors."""


class ValidationError(DarknovaError):
    """A required field is missing or a value is out of range."""


class NotFoundError(DarknovaError):
    """The referenced order, user, progress record or absence does not exist."""


class PermissionDeniedError(DarknovaError):
    """The acting user's role does not allow the mutation."""


class InvalidTransitionError(DarknovaError):
    """The requested status change is not allowed from the current status."""


class ConflictError(DarknovaError):
    """A uniqueness rule would be violated (e.g. duplicate username)."""


__all__ = [
    "DarknovaError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "InvalidTransitionError",
    "ConflictError",
]
