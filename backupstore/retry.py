import io
import logging
from typing import Callable, Iterable, Type
from .config import DEFAULT_READ_MAX_RETRIES

logger = logging.getLogger(__name__)


class RetryReader(io.RawIOBase):
    """
    Read-only stream over a remote object that survives transient interruptions.

    `opener(offset)` must return a readable positioned at `offset` bytes into
    the object. When a read fails with one of the `retriable` exceptions, the
    current stream is dropped and reopened at the number of bytes delivered so
    far. After `max_retries` reopen attempts over the life of the reader, the
    underlying error is raised as is.

    The first stream is opened eagerly, so a missing object fails at
    construction rather than on the first read.
    """

    def __init__(self,
                 opener: Callable[[int], object],
                 retriable: Iterable[Type[BaseException]],
                 max_retries: int = DEFAULT_READ_MAX_RETRIES,
                 name: str = ""):
        super().__init__()
        self._opener = opener
        self._retriable = tuple(retriable)
        self._max_retries = max_retries
        self._retries = 0
        self._offset = 0
        self.name = name
        self._stream = None
        self._stream = opener(0)

    def readable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._offset

    @property
    def retries(self) -> int:
        return self._retries

    def readinto(self, buffer) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        size = len(buffer)
        if size == 0:
            return 0
        while True:
            try:
                if self._stream is None:
                    self._stream = self._opener(self._offset)
                data = self._stream.read(size)
            except self._retriable as ex:
                if self._retries >= self._max_retries:
                    logger.error(f"Giving up reading {self.name} at offset {self._offset} after {self._retries} retries: {ex}")
                    raise
                self._retries += 1
                logger.warning(f"Read of {self.name} interrupted at offset {self._offset}, retry {self._retries}/{self._max_retries}: {ex}")
                self._drop_stream()
                continue
            n = len(data)
            buffer[:n] = data
            self._offset += n
            return n

    def _drop_stream(self):
        stream, self._stream = self._stream, None
        close = getattr(stream, "close", None)
        if close is not None:
            try:
                close()
            except self._retriable:
                pass

    def close(self):
        if not self.closed:
            self._drop_stream()
        super().close()
