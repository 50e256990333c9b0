"""Helpers bridging local files and the objects behind a driver."""
import logging
import os
import shutil

logger = logging.getLogger(__name__)

DIRECTORY_MODE = 0o700


def make_dirs(path: str) -> None:
    """Creates path and any missing parents, each with owner-only permissions."""
    if not path or os.path.isdir(path):
        return
    make_dirs(os.path.dirname(path))
    try:
        os.mkdir(path, DIRECTORY_MODE)
    except FileExistsError:
        pass


def upload_file(driver, local_path: str, remote_path: str) -> None:
    """
    Streams a local file to remote_path through `driver.write`.

    A local file that cannot be opened is logged and skipped without raising.
    """
    try:
        src = open(local_path, "rb")
    except OSError as ex:
        logger.warning(f"Skipping upload of {local_path} to {remote_path}: {ex}")
        return
    with src:
        driver.write(remote_path, src)


def download_file(driver, remote_path: str, local_path: str) -> None:
    """
    Streams remote_path into local_path, replacing any existing content.

    Missing parent directories are created with owner-only permissions.
    Read and write errors propagate to the caller.
    """
    try:
        os.stat(local_path)
    except OSError:
        try:
            os.remove(local_path)
        except OSError:
            pass

    make_dirs(os.path.dirname(local_path))

    with open(local_path, "wb") as dest:
        with driver.read(remote_path) as src:
            shutil.copyfileobj(src, dest)
