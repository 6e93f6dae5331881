"""Exceptions surfaced by the reading list core to the presentation layer."""


class ReadingListError(Exception):
    """Base class for all reading list errors."""


class ValidationError(ReadingListError):
    """
    Raised when user input is rejected before any store mutation.

    Nothing is applied to the record store, so there is nothing to roll back.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class NotFoundError(ReadingListError):
    """Raised when an operation references a bookmark absent from the local snapshot."""

    def __init__(self, bookmark_id: str) -> None:
        self.bookmark_id = bookmark_id
        super().__init__(f"Bookmark '{bookmark_id}' not found")


class OperationFailedError(ReadingListError):
    """
    Raised when the backend rejected a mutation or could not be reached.

    By the time this reaches the caller the store has already been reloaded
    from the backend (rollback-by-reload).
    """

    def __init__(self, action: str, cause: str) -> None:
        self.action = action
        self.cause = cause
        super().__init__(f"Failed to {action}: {cause}")


class FetchError(ReadingListError):
    """Raised when the collection for an owner cannot be loaded."""

    def __init__(self, owner: str, cause: str) -> None:
        self.owner = owner
        self.cause = cause
        super().__init__(f"Failed to load bookmarks: {cause}")


class BackendError(ReadingListError):
    """Raised by persistence and change feed collaborators on transport or auth failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
