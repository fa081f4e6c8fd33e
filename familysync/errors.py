"""Error taxonomy for the store and the sync layer.

Local errors (``DataServiceError`` and subclasses) are raised synchronously
by store operations and are fixed by the caller correcting its input.
Sync errors (``SyncError`` and subclasses) come from the remote transport;
they never discard local data, the affected record simply stays dirty.

A lookup that finds nothing is not an error: fetch operations return None.
"""


class DataServiceError(Exception):
    """Base class for local store errors."""


class InvalidData(DataServiceError):
    """A precondition was violated (empty lookup key, malformed input)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid data: {message}")


class ValidationFailed(DataServiceError):
    """One or more field validation rules failed."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class ConstraintViolation(DataServiceError):
    """A uniqueness or relationship constraint would be broken."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Constraint violation: {message}")


class MigrationError(DataServiceError):
    """A data migration was rejected; nothing was applied."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Migration failed: {message}")


class SyncError(Exception):
    """Base class for remote transport failures."""

    retryable = False


class NetworkError(SyncError):
    """The remote could not be reached."""

    retryable = True


class SyncTimeout(NetworkError):
    """A transport call did not finish within the configured timeout."""


class AuthError(SyncError):
    """The remote rejected our credentials."""


class RemoteNotFound(SyncError):
    """The remote has no record with the requested identifier."""


class ConflictError(SyncError):
    """Local and remote versions diverged.

    ``server_snapshot`` is the remote version when the transport returned
    it with the conflict, otherwise None and the caller has to pull it.
    """

    def __init__(self, message: str = "Record changed on server", server_snapshot=None) -> None:
        self.server_snapshot = server_snapshot
        super().__init__(message)
