import functools
import logging
from typing import BinaryIO, List, Optional, Tuple
from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    IncompleteReadError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobPrefix, BlobServiceClient
from ..config import AzureBlobConfig
from ..destination import DestinationURL
from ..exceptions import AuthenticationError, BackendConnectionError, InvalidDestination
from ..interfaces.driver import BlobMetadata
from ..retry import RetryReader
from .base import ObjectStoreDriver

logger = logging.getLogger(__name__)

KIND = "azblob"

AZURE_URL = "core.windows.net"

READ_RETRIABLE = (IncompleteReadError, ServiceResponseError)


def translate_azure_errors(cb):
    """Converts errors raised while building or probing an Azure session into backupstore errors."""

    @functools.wraps(cb)
    def _inner(*args, **kwargs):
        try:
            return cb(*args, **kwargs)
        except ClientAuthenticationError as ex:
            raise AuthenticationError(f"Azure: client authentication error: {ex}") from ex
        except ResourceNotFoundError as ex:
            raise InvalidDestination(f"Azure: container not found: {ex}") from ex
        except (ServiceRequestError, ServiceResponseError) as ex:
            raise BackendConnectionError(f"Azure: connection error: {ex.__class__.__name__}: {ex}") from ex
        except AzureError as ex:
            raise BackendConnectionError(f"Azure: {ex.__class__.__name__}: {ex}") from ex
        except ValueError as ex:
            raise BackendConnectionError(f"Azure: could not create blob service client: {ex}") from ex

    return _inner


def build_connection_string(account_name: str, account_key: str, service_url: str,
                            custom_endpoint: Optional[str] = None) -> str:
    """
    Builds the storage connection string for a shared-key account.

    A custom endpoint (e.g. an Azurite emulator) is addressed as
    <endpoint>/<account>. Otherwise a service URL outside the public
    core.windows.net domain is used as the endpoint suffix.
    """
    conn_str = f"DefaultEndpointsProtocol=https;AccountName={account_name};AccountKey={account_key};"
    if custom_endpoint:
        conn_str += f"BlobEndpoint={custom_endpoint.rstrip('/')}/{account_name};"
    elif AZURE_URL not in service_url:
        conn_str += f"EndpointSuffix={service_url};"
    return conn_str


def build_account_url(account_name: str, service_url: str, custom_endpoint: Optional[str] = None) -> str:
    if custom_endpoint:
        return f"{custom_endpoint.rstrip('/')}/{account_name}"
    if AZURE_URL not in service_url:
        return f"https://{account_name}.blob.{service_url}"
    return f"https://{account_name}.blob.{AZURE_URL}"


class AzureBlobService:
    """
    A container client for one Azure Blob Storage container.

    Uses a connection string when an account key is configured and falls back
    to DefaultAzureCredential otherwise.
    """

    ERRORS = (AzureError,)

    def __init__(self, destination: DestinationURL, config: AzureBlobConfig):
        self.container = destination.bucket
        self.service_url = destination.endpoint or AZURE_URL
        self.read_max_retries = config.read_max_retries

        if not config.account_name:
            raise AuthenticationError("Azure: AZBLOB_ACCOUNT_NAME is not configured")

        kwargs = {}
        ca_bundle = config.ca_bundle()
        if ca_bundle:
            kwargs["connection_verify"] = ca_bundle

        if config.account_key:
            conn_str = build_connection_string(config.account_name, config.account_key,
                                               self.service_url, config.endpoint)
            service_client = BlobServiceClient.from_connection_string(conn_str, **kwargs)
        else:
            account_url = build_account_url(config.account_name, self.service_url, config.endpoint)
            logger.info(f"Azure: no account key configured, using DefaultAzureCredential for {account_url}")
            service_client = BlobServiceClient(account_url=account_url, credential=DefaultAzureCredential(), **kwargs)

        self.container_client = service_client.get_container_client(self.container)
        logger.info(f"Azure client initialized. Container: {self.container}, service: {self.service_url}")

    def list_objects(self, prefix: str, delimiter: Optional[str] = None) -> Tuple[List[str], List[str]]:
        if delimiter:
            items = self.container_client.walk_blobs(name_starts_with=prefix, delimiter=delimiter)
        else:
            items = self.container_client.list_blobs(name_starts_with=prefix)
        keys = []
        prefixes = []
        for item in items:
            if isinstance(item, BlobPrefix):
                prefixes.append(item.name)
            else:
                keys.append(item.name)
        return keys, prefixes

    def head_object(self, key: str) -> Optional[BlobMetadata]:
        try:
            properties = self.container_client.get_blob_client(key).get_blob_properties()
        except ResourceNotFoundError:
            return None
        return BlobMetadata(properties.size, properties.last_modified)

    def get_object(self, key: str) -> RetryReader:
        blob_client = self.container_client.get_blob_client(key)

        def _open(offset: int):
            return blob_client.download_blob(offset=offset or None, max_concurrency=1)

        return RetryReader(_open, READ_RETRIABLE, self.read_max_retries, name=f"azblob://{self.container}/{key}")

    def put_object(self, key: str, stream: BinaryIO) -> None:
        self.container_client.get_blob_client(key).upload_blob(stream, overwrite=True)
        logger.debug(f"Azure: Uploaded {key}")

    def delete_object(self, key: str) -> None:
        self.container_client.delete_blob(key)


class AzureBlobDriver(ObjectStoreDriver):
    """Driver for azblob://container[@service-url]/path destinations."""

    KIND = KIND

    @translate_azure_errors
    def _connect(self, config: AzureBlobConfig):
        self.service = AzureBlobService(self.destination, config)
        self.list("")

    def _canonical_url(self, destination: DestinationURL) -> str:
        return destination.geturl(self.service.service_url)


def init_func(dest_url: str) -> AzureBlobDriver:
    return AzureBlobDriver(dest_url, AzureBlobConfig.from_settings())


def register(registry) -> None:
    registry.register_driver(KIND, init_func)
