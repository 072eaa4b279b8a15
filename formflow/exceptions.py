class AuthenticationError(Exception):
    """Raised when a request needs an authenticated user and has none."""


class AccessDeniedError(Exception):
    """Raised when the current user lacks the role an operation needs."""


class NotFoundError(Exception):
    """Raised when a form, response or collaborator does not exist."""


class ConflictError(Exception):
    """Raised when a change conflicts with existing state."""


class StorageUnavailableError(Exception):
    """Raised when the storage layer cannot be read or written."""
