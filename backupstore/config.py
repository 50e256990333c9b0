"""
Configuration boundary for the backupstore drivers.

This is the only module that reads Django settings or the process
environment. Drivers receive the resulting config objects explicitly, so the
rest of the package can be exercised with plain values.

A setting defined in `django.conf.settings` wins over an environment variable
of the same name.
"""
import atexit
import base64
import binascii
import logging
import os
import tempfile
from typing import Optional
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_READ_MAX_RETRIES = 5

PEM_MARKER = "-----BEGIN"

# PEM bytes -> temporary bundle path, shared by every config in the process
_ca_bundles = {}


def get_setting(name: str, default=None):
    if settings.configured:
        value = getattr(settings, name, None)
        if value not in (None, ""):
            return value
    value = os.environ.get(name)
    if value in (None, ""):
        return default
    return value


def get_read_max_retries() -> int:
    value = get_setting("BACKUPSTORE_READ_MAX_RETRIES", DEFAULT_READ_MAX_RETRIES)
    try:
        retries = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid BACKUPSTORE_READ_MAX_RETRIES {value!r}, using {DEFAULT_READ_MAX_RETRIES}")
        return DEFAULT_READ_MAX_RETRIES
    return max(retries, 0)


def decode_certificate(cert: str) -> bytes:
    """
    Returns PEM bytes for a custom CA certificate given either as PEM text or
    as base64-encoded PEM text.
    """
    cert = cert.strip()
    if PEM_MARKER in cert:
        return cert.encode("utf-8")
    try:
        decoded = base64.b64decode("".join(cert.split()), validate=True)
    except (binascii.Error, ValueError) as ex:
        raise ValueError("Custom CA certificate is neither PEM nor base64-encoded PEM") from ex
    if PEM_MARKER.encode("ascii") not in decoded:
        raise ValueError("Custom CA certificate is neither PEM nor base64-encoded PEM")
    return decoded


def write_ca_bundle(pem: bytes) -> str:
    """
    Returns the path of a temporary PEM file holding `pem`, writing it on first
    use. Bundles are removed when the interpreter exits.
    """
    path = _ca_bundles.get(pem)
    if path is None or not os.path.exists(path):
        with tempfile.NamedTemporaryFile(prefix="backupstore-ca-", suffix=".pem", delete=False) as f:
            f.write(pem)
        path = _ca_bundles[pem] = f.name
        logger.info(f"Using custom CA certificate bundle {path}")
    return path


@atexit.register
def remove_ca_bundles() -> None:
    for path in _ca_bundles.values():
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
    _ca_bundles.clear()


class BackendConfig:
    """Settings shared by every remote backend."""

    def __init__(self, endpoint: Optional[str] = None, cert: Optional[str] = None,
                 read_max_retries: int = DEFAULT_READ_MAX_RETRIES):
        self.endpoint = endpoint or None
        self.cert = cert or None
        self.read_max_retries = read_max_retries

    def ca_bundle(self) -> Optional[str]:
        """Returns the path of the custom CA bundle, or None when no certificate is configured."""
        if self.cert is None:
            return None
        return write_ca_bundle(decode_certificate(self.cert))


class S3Config(BackendConfig):

    def __init__(self, access_key: Optional[str] = None, secret_key: Optional[str] = None,
                 session_token: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.access_key = access_key or None
        self.secret_key = secret_key or None
        self.session_token = session_token or None

    @classmethod
    def from_settings(cls) -> "S3Config":
        return cls(
            access_key=get_setting("AWS_ACCESS_KEY_ID"),
            secret_key=get_setting("AWS_SECRET_ACCESS_KEY"),
            session_token=get_setting("AWS_SESSION_TOKEN"),
            endpoint=get_setting("AWS_ENDPOINTS"),
            cert=get_setting("AWS_CERT"),
            read_max_retries=get_read_max_retries(),
        )


class AzureBlobConfig(BackendConfig):

    def __init__(self, account_name: Optional[str] = None, account_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.account_name = account_name or None
        self.account_key = account_key or None

    @classmethod
    def from_settings(cls) -> "AzureBlobConfig":
        return cls(
            account_name=get_setting("AZBLOB_ACCOUNT_NAME"),
            account_key=get_setting("AZBLOB_ACCOUNT_KEY"),
            endpoint=get_setting("AZBLOB_ENDPOINT"),
            cert=get_setting("AZBLOB_CERT"),
            read_max_retries=get_read_max_retries(),
        )
