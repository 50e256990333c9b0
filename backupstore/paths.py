import posixpath

DELIMITER = "/"


def join_path(root: str, path: str) -> str:
    """
    Joins the driver root with an operation-relative path.

    Redundant separators and '.' segments are collapsed and the trailing
    separator is dropped, unless the caller's path itself ends with one.
    Prefix queries rely on that trailing separator to list children instead
    of matching a literal key.

    Args:
        root (str): Driver root path, without a leading slash (e.g. 'backups').
        path (str): Path relative to the root (e.g. 'volumes/vol-1/').
    """
    joined = posixpath.normpath(root + DELIMITER + path) if path else posixpath.normpath(root)
    if joined == ".":
        joined = ""
    if path.endswith(DELIMITER) and not joined.endswith(DELIMITER):
        joined += DELIMITER
    return joined


def ensure_trailing_delimiter(prefix: str) -> str:
    if not prefix.endswith(DELIMITER):
        prefix += DELIMITER
    return prefix


def strip_prefix(name: str, prefix: str) -> str:
    if name.startswith(prefix):
        return name[len(prefix):]
    return name
