import datetime
import logging
import os
import shutil
import tempfile
from typing import BinaryIO, List
from ..destination import parse_vfs_destination
from ..exceptions import InvalidDestination
from ..interfaces.driver import BackupStoreDriver, ZERO_TIME
from ..localfs import make_dirs
from ..paths import join_path

logger = logging.getLogger(__name__)

KIND = "vfs"


class VfsDriver(BackupStoreDriver):
    """
    Driver that stores backups in a directory of a mounted filesystem
    (local disk or network mount), addressed as vfs:///absolute/path.
    """

    def __init__(self, dest_url: str):
        self.path = parse_vfs_destination(dest_url, KIND)
        if not os.path.isdir(self.path):
            raise InvalidDestination(f"Backup directory {self.path} does not exist or is not a directory")

        # Test access
        try:
            self.list("")
        except OSError as e:
            logger.error(f"Failed to list backup directory {self.path}: {e}")
            raise

        self.dest_url = f"{KIND}://{self.path}"
        logger.info(f"Loaded driver for {self.dest_url}")

    def kind(self) -> str:
        return KIND

    def get_url(self) -> str:
        return self.dest_url

    def _update_path(self, path: str) -> str:
        return join_path(self.path, path)

    def list(self, path: str) -> List[str]:
        directory = self._update_path(path)
        try:
            return sorted(os.listdir(directory))
        except (FileNotFoundError, NotADirectoryError):
            return []

    def file_size(self, path: str) -> int:
        try:
            st = os.stat(self._update_path(path))
        except OSError:
            return -1
        return st.st_size

    def file_time(self, path: str) -> datetime.datetime:
        try:
            st = os.stat(self._update_path(path))
        except OSError:
            return ZERO_TIME
        return datetime.datetime.fromtimestamp(st.st_mtime, datetime.timezone.utc)

    def remove(self, path: str) -> None:
        """
        Deletes the file at path, or the whole directory tree if path is a directory.
        """
        target = self._update_path(path)
        try:
            if os.path.isdir(target) and not os.path.islink(target):
                shutil.rmtree(target)
                logger.info(f"vfs: Deleted directory {target}")
            elif os.path.lexists(target):
                os.remove(target)
        except OSError as e:
            logger.error(f"vfs: Error deleting {target}: {e}")
            raise

    def read(self, path: str) -> BinaryIO:
        return open(self._update_path(path), "rb")

    def write(self, path: str, stream: BinaryIO) -> None:
        """
        Writes to a temporary file next to the destination and moves it into
        place, so readers never observe a partially written file.
        """
        target = self._update_path(path)
        directory = os.path.dirname(target)
        make_dirs(directory)

        fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                shutil.copyfileobj(stream, f)
            os.replace(tmp_path, target)
        except BaseException:
            try:
                os.remove(tmp_path)
            except OSError:
                pass
            raise


def init_func(dest_url: str) -> VfsDriver:
    return VfsDriver(dest_url)


def register(registry) -> None:
    registry.register_driver(KIND, init_func)
