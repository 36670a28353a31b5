"""Error taxonomy for the book lifecycle.

Services raise these; the API layer turns them into JSON responses with the
attached HTTP status and error code.
"""

from fastapi import status


class LibraryError(Exception):
    """Base class for every failure the lifecycle core reports to callers."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "library_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LibraryError):
    """Book or request id is unknown."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


class ConflictError(LibraryError):
    """A pending request already exists for the book."""

    status_code = status.HTTP_409_CONFLICT
    error = "conflict"


class InvalidStateError(LibraryError):
    """The request has already been resolved."""

    status_code = status.HTTP_409_CONFLICT
    error = "invalid_state"


class InvalidTransitionError(LibraryError):
    """The action is not legal for the book's current status."""

    status_code = status.HTTP_409_CONFLICT
    error = "invalid_transition"


class UnauthorizedError(LibraryError):
    """Caller lacks the admin role or is not the user the action belongs to."""

    status_code = status.HTTP_403_FORBIDDEN
    error = "unauthorized"


class ConsistencyFaultError(LibraryError):
    """Book status and request ledger disagree.

    Signals corrupted data or a bug. Never repaired automatically.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "consistency_fault"
