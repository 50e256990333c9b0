import datetime
import logging
from abc import abstractmethod
from typing import BinaryIO, List, Optional
from ..destination import DestinationURL, parse_destination
from ..exceptions import PartialDeleteFailure
from ..interfaces.driver import BackupStoreDriver, BlobMetadata, ZERO_TIME
from ..paths import DELIMITER, ensure_trailing_delimiter, join_path, strip_prefix

logger = logging.getLogger(__name__)


class ObjectStoreDriver(BackupStoreDriver):
    """
    Driver façade shared by the object-store backends.

    Subclasses set KIND and implement `_connect`, which builds `self.service`
    for the parsed destination. The service exposes:

        ERRORS                          exceptions raised by the provider SDK
        list_objects(prefix, delimiter) -> (keys, common_prefixes)
        head_object(key)                -> BlobMetadata or None when missing
        get_object(key)                 -> closable byte stream
        put_object(key, stream)
        delete_object(key)

    Construction probes the backend with list(""); any failure aborts it.
    """

    KIND = None

    def __init__(self, dest_url: str, config):
        self.destination = parse_destination(dest_url, self.KIND)
        self.path = self.destination.path
        self.service = None
        self._connect(config)
        self.dest_url = self._canonical_url(self.destination)
        logger.info(f"Loaded driver for {self.dest_url}")

    @abstractmethod
    def _connect(self, config):
        pass

    def _canonical_url(self, destination: DestinationURL) -> str:
        return destination.geturl()

    def kind(self) -> str:
        return self.KIND

    def get_url(self) -> str:
        return self.dest_url

    def _update_path(self, path: str) -> str:
        return join_path(self.path, path)

    def list(self, path: str) -> List[str]:
        prefix = ensure_trailing_delimiter(self._update_path(path))
        try:
            keys, prefixes = self.service.list_objects(prefix, DELIMITER)
        except self.service.ERRORS as ex:
            logger.error(f"Failed to list {self.KIND} prefix {prefix}: {ex}")
            raise

        result = {}
        for key in keys:
            name = strip_prefix(key, prefix)
            if name:
                result[name] = None
        for common_prefix in prefixes:
            name = strip_prefix(common_prefix, prefix)
            if name.endswith(DELIMITER):
                name = name[:-len(DELIMITER)]
            if name:
                result[name] = None
        return list(result)

    def _head(self, path: str) -> Optional[BlobMetadata]:
        key = self._update_path(path)
        try:
            head = self.service.head_object(key)
        except self.service.ERRORS as ex:
            logger.warning(f"Failed to get properties of {key}: {ex}")
            return None
        if head is None or head.size is None:
            return None
        return head

    def file_size(self, path: str) -> int:
        head = self._head(path)
        if head is None:
            return -1
        return head.size

    def file_time(self, path: str) -> datetime.datetime:
        head = self._head(path)
        if head is None or head.last_modified is None:
            return ZERO_TIME
        modified = head.last_modified
        if modified.tzinfo is None:
            return modified.replace(tzinfo=datetime.timezone.utc)
        return modified.astimezone(datetime.timezone.utc)

    def remove(self, path: str) -> None:
        """
        Deletes every object whose key starts with the normalized path.

        Each matching object is deleted in turn, regardless of earlier
        failures. Objects that could not be deleted are reported together
        once all deletions have been attempted.

        Raises:
            PartialDeleteFailure: Naming every key whose deletion failed.
        """
        prefix = self._update_path(path)
        try:
            keys, _ = self.service.list_objects(prefix)
        except self.service.ERRORS as ex:
            logger.error(f"Failed to list objects with prefix {prefix} before removing them: {ex}")
            raise

        failed = []
        for key in keys:
            try:
                self.service.delete_object(key)
            except self.service.ERRORS as ex:
                logger.error(f"Failed to delete object {key}: {ex}")
                failed.append(key)

        if failed:
            raise PartialDeleteFailure(failed)
        if keys:
            logger.info(f"{self.KIND}: Deleted {len(keys)} objects with prefix {prefix}")

    def read(self, path: str) -> BinaryIO:
        return self.service.get_object(self._update_path(path))

    def write(self, path: str, stream: BinaryIO) -> None:
        self.service.put_object(self._update_path(path), stream)
