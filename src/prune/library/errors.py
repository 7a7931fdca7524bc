"""Photo library errors."""


class LibraryError(Exception):
    """Base exception for photo library operations."""


class AuthorizationError(LibraryError):
    """Raised when a mutation is attempted without library access."""

