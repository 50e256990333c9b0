class BackupStoreError(Exception):
    """Base class for every error raised by the backupstore drivers."""
    pass


class InvalidDestination(BackupStoreError):
    """The destination URL is malformed or missing its bucket/container or path."""
    pass


class UnexpectedDispatch(InvalidDestination):
    """A URL was handed to a driver of a different kind.

    Selecting the driver is the registry's job, so this signals a bug in the
    caller rather than bad user input.
    """
    pass


class AuthenticationError(BackupStoreError):
    """Credentials are missing or were rejected by the backend."""
    pass


class BackendConnectionError(BackupStoreError):
    """The provider session could not be built or the endpoint could not be reached."""
    pass


class PartialDeleteFailure(BackupStoreError):
    """One or more objects could not be deleted during a prefix delete."""

    def __init__(self, failed):
        self.failed = list(failed)
        super().__init__(f"failed to delete objects {self.failed}")
