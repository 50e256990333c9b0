from typing import Optional
from urllib.parse import urlsplit
from .exceptions import InvalidDestination, UnexpectedDispatch


class DestinationURL:
    """
    A parsed destination: <kind>://<bucket>[@<endpoint>]/<path>.

    For S3 the endpoint part carries the region, for Azure the blob service
    domain. `bucket` holds the bucket or container name.
    """

    def __init__(self, kind: str, bucket: str, endpoint: Optional[str], path: str):
        self.kind = kind
        self.bucket = bucket
        self.endpoint = endpoint
        self.path = path

    def geturl(self, endpoint: Optional[str] = None) -> str:
        """Rebuilds the canonical string, using `endpoint` in place of the parsed one when given."""
        endpoint = endpoint if endpoint is not None else self.endpoint
        url = f"{self.kind}://{self.bucket}"
        if endpoint:
            url += f"@{endpoint}"
        return f"{url}/{self.path}"

    def __repr__(self):
        return f"DestinationURL({self.geturl()!r})"


def _split(url: str, kind: str):
    try:
        parts = urlsplit(url)
    except ValueError as ex:
        raise InvalidDestination(f"Invalid URL {url}: {ex}") from ex
    if parts.scheme != kind:
        raise UnexpectedDispatch(f"BUG: Why dispatch {parts.scheme} to {kind}?")
    return parts


def parse_destination(url: str, kind: str) -> DestinationURL:
    """
    Parses an object-store destination URL for the driver of the given kind.

    The bucket comes from the user-info part when there is one, in which case
    the host part is the endpoint or region. Otherwise the host part is the
    bucket. Leading slashes are stripped from the path since backends
    resolve keys without them.

    Raises:
        UnexpectedDispatch: The URL scheme is not `kind`.
        InvalidDestination: The bucket or path is missing.
    """
    parts = _split(url, kind)
    user_info, at, host = parts.netloc.rpartition("@")
    if at:
        bucket = user_info.split(":", 1)[0]
        endpoint = host or None
    else:
        bucket = host
        endpoint = None

    path = parts.path.lstrip("/")
    if not bucket or not path:
        raise InvalidDestination(
            f"Invalid URL {url}. Must be either {kind}://bucket@endpoint/path/, or {kind}://bucket/path"
        )
    return DestinationURL(kind, bucket, endpoint, path)


def parse_vfs_destination(url: str, kind: str) -> str:
    """Returns the absolute directory named by a <kind>:///absolute/dir URL."""
    parts = _split(url, kind)
    if parts.netloc or not parts.path.startswith("/") or parts.path == "/":
        raise InvalidDestination(f"Invalid URL {url}. Must be {kind}:///absolute/path/")
    return parts.path
