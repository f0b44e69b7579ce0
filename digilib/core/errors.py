class LibraryError(Exception):
    """Base exception for library errors surfaced to API callers."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class Unauthorized(LibraryError):
    """No identity attached to the request."""
    status_code = 401


class Forbidden(LibraryError):
    """Identity present but lacking the required role or ownership."""
    status_code = 403


class NotFound(LibraryError):
    """Referenced loan, book, user or wishlist item does not exist."""
    status_code = 404


class Conflict(LibraryError):
    """Duplicate active loan, email, ISBN or wishlist entry."""
    status_code = 409


class OutOfStock(LibraryError):
    """Book has no copies available."""
    status_code = 400


class InvalidState(LibraryError):
    """Transition not permitted from the loan's current status."""
    status_code = 400


class ValidationError(LibraryError):
    """Missing or malformed input."""
    status_code = 400
