import datetime
from abc import ABC, abstractmethod
from typing import BinaryIO, List, NamedTuple, Optional
from ..localfs import download_file, upload_file

ZERO_TIME = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)


class BlobMetadata(NamedTuple):
    """Result of a metadata probe on an existing object."""
    size: Optional[int]
    last_modified: Optional[datetime.datetime]


class BackupStoreDriver(ABC):
    """
    Abstract base class defining the contract the backup core uses to talk to a
    storage backend.
    This ensures backends can be swapped between S3, Azure Blob Storage and a
    mounted filesystem.

    All paths are relative to the root path of the destination URL the driver
    was built from. A path ending in '/' denotes a directory-style prefix.
    """

    @abstractmethod
    def kind(self) -> str:
        """Returns the URL scheme this driver serves (e.g. 's3')."""
        pass

    @abstractmethod
    def get_url(self) -> str:
        """Returns the canonical destination URL, for audit and logging."""
        pass

    @abstractmethod
    def list(self, path: str) -> List[str]:
        """
        Lists the immediate children of a directory-style path.

        Args:
            path (str): Directory relative to the root (e.g. 'backups/vol-1').

        Returns:
            Names of files and pseudo-directories, without the queried prefix
            and without trailing slashes. Empty when nothing is stored there.
        """
        pass

    def file_exists(self, path: str) -> bool:
        return self.file_size(path) >= 0

    @abstractmethod
    def file_size(self, path: str) -> int:
        """Returns the object size in bytes, or -1 when it does not exist."""
        pass

    @abstractmethod
    def file_time(self, path: str) -> datetime.datetime:
        """Returns the UTC last-modified time, or ZERO_TIME when the object does not exist."""
        pass

    @abstractmethod
    def remove(self, path: str) -> None:
        """
        Deletes the object at path, or every object under path when it is a prefix.
        Removing something that does not exist is not an error.
        """
        pass

    @abstractmethod
    def read(self, path: str) -> BinaryIO:
        """Opens the object for reading. The caller must close the returned stream."""
        pass

    @abstractmethod
    def write(self, path: str, stream: BinaryIO) -> None:
        """
        Stores the content of a seekable stream at path, replacing any existing object.

        Args:
            path (str): Destination relative to the root.
            stream (BinaryIO): Seekable binary source, read from its current position.
        """
        pass

    def upload(self, local_path: str, remote_path: str) -> None:
        """Copies a local file to remote_path."""
        upload_file(self, local_path, remote_path)

    def download(self, remote_path: str, local_path: str) -> None:
        """Copies remote_path to a local file, creating parent directories and replacing the file."""
        download_file(self, remote_path, local_path)
