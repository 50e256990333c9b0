"""
Backup store drivers.

Each driver adapts one storage provider (S3-compatible object stores, Azure
Blob Storage, a mounted filesystem) to the BackupStoreDriver contract used by
the backup core. Drivers are registered with the core's registry through
`backupstore.storage.register_drivers`.
"""
from .exceptions import (
    AuthenticationError,
    BackendConnectionError,
    BackupStoreError,
    InvalidDestination,
    PartialDeleteFailure,
    UnexpectedDispatch,
)
from .interfaces.driver import BackupStoreDriver, BlobMetadata, ZERO_TIME

__all__ = [
    'AuthenticationError',
    'BackendConnectionError',
    'BackupStoreDriver',
    'BackupStoreError',
    'BlobMetadata',
    'InvalidDestination',
    'PartialDeleteFailure',
    'UnexpectedDispatch',
    'ZERO_TIME',
]
