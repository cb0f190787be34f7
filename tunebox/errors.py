"""
Error taxonomy for tunebox library operations.

Raised by LibraryManager (and by the store's required-field checks) and
translated into HTTP responses by the web layer.
"""


class LibraryError(Exception):
    """Base exception for library operations."""

    status_code = 500

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__.strip()
        super().__init__(self.message)


class InvalidArgument(LibraryError):
    """Malformed or missing required input."""

    status_code = 400


class NotFound(LibraryError):
    """Referenced entity does not exist."""

    status_code = 404


class Unauthorized(LibraryError):
    """Caller is not the owning user."""

    status_code = 403


class Conflict(LibraryError):
    """Entity already exists."""

    status_code = 409


class ServerFault(LibraryError):
    """Storage or unexpected failure."""

    status_code = 500
