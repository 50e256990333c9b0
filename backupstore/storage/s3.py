import functools
import logging
from typing import BinaryIO, List, Optional, Tuple
import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    IncompleteReadError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
    ResponseStreamingError,
)
from ..config import S3Config
from ..destination import DestinationURL
from ..exceptions import AuthenticationError, BackendConnectionError, InvalidDestination
from ..interfaces.driver import BlobMetadata
from ..retry import RetryReader
from .base import ObjectStoreDriver

logger = logging.getLogger(__name__)

KIND = "s3"

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

AUTH_ERROR_CODES = {
    "403",
    "AccessDenied",
    "ExpiredToken",
    "InvalidAccessKeyId",
    "InvalidToken",
    "SignatureDoesNotMatch",
}

READ_RETRIABLE = (
    ConnectionClosedError,
    EndpointConnectionError,
    IncompleteReadError,
    ReadTimeoutError,
    ResponseStreamingError,
)


def error_code(ex: ClientError) -> str:
    return str(ex.response.get("Error", {}).get("Code", ""))


def translate_s3_errors(cb):
    """Converts errors raised while building or probing an S3 session into backupstore errors."""

    @functools.wraps(cb)
    def _inner(*args, **kwargs):
        try:
            return cb(*args, **kwargs)
        except ClientError as ex:
            code = error_code(ex)
            if code in AUTH_ERROR_CODES:
                raise AuthenticationError(f"S3: credentials rejected: {code}: {ex}") from ex
            if code == "NoSuchBucket":
                raise InvalidDestination(f"S3: bucket does not exist: {ex}") from ex
            raise BackendConnectionError(f"S3: {code}: {ex}") from ex
        except (NoCredentialsError, PartialCredentialsError) as ex:
            raise AuthenticationError(f"S3: {ex}") from ex
        except BotoCoreError as ex:
            raise BackendConnectionError(f"S3: {ex.__class__.__name__}: {ex}") from ex
        except ValueError as ex:
            raise BackendConnectionError(f"S3: could not create client: {ex}") from ex

    return _inner


class S3Service:
    """
    A boto3 S3 client scoped to one bucket.

    The region comes from the destination URL. A custom endpoint from the
    config takes precedence over the AWS endpoint for that region and switches
    to path-style addressing, as MinIO and most S3-compatible stores expect.
    """

    ERRORS = (ClientError, BotoCoreError)

    def __init__(self, destination: DestinationURL, config: S3Config):
        self.bucket = destination.bucket
        self.region = destination.endpoint
        self.read_max_retries = config.read_max_retries

        if bool(config.access_key) != bool(config.secret_key):
            raise AuthenticationError("S3: AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together")

        client_config = {"retries": {"mode": "standard"}}
        kwargs = {"region_name": self.region}
        if config.endpoint:
            kwargs["endpoint_url"] = config.endpoint
            client_config["s3"] = {"addressing_style": "path"}
        if config.access_key:
            kwargs["aws_access_key_id"] = config.access_key
            kwargs["aws_secret_access_key"] = config.secret_key
            if config.session_token:
                kwargs["aws_session_token"] = config.session_token
        ca_bundle = config.ca_bundle()
        if ca_bundle:
            kwargs["verify"] = ca_bundle

        self.client = boto3.client("s3", config=Config(**client_config), **kwargs)
        logger.info(f"S3 client initialized. Bucket: {self.bucket}, region: {self.region or 'default'}, endpoint: {config.endpoint or 'default'}")

    def list_objects(self, prefix: str, delimiter: Optional[str] = None) -> Tuple[List[str], List[str]]:
        kwargs = {"Bucket": self.bucket, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        keys = []
        prefixes = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(**kwargs):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
            prefixes.extend(p["Prefix"] for p in page.get("CommonPrefixes", []))
        return keys, prefixes

    def head_object(self, key: str) -> Optional[BlobMetadata]:
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as ex:
            if error_code(ex) in NOT_FOUND_CODES:
                return None
            raise
        return BlobMetadata(response.get("ContentLength"), response.get("LastModified"))

    def get_object(self, key: str) -> RetryReader:

        def _open(offset: int):
            kwargs = {"Bucket": self.bucket, "Key": key}
            if offset:
                kwargs["Range"] = f"bytes={offset}-"
            return self.client.get_object(**kwargs)["Body"]

        return RetryReader(_open, READ_RETRIABLE, self.read_max_retries, name=f"s3://{self.bucket}/{key}")

    def put_object(self, key: str, stream: BinaryIO) -> None:
        self.client.put_object(Bucket=self.bucket, Key=key, Body=stream)
        logger.debug(f"S3: Uploaded {key}")

    def delete_object(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)


class S3Driver(ObjectStoreDriver):
    """Driver for s3://bucket[@region]/path destinations."""

    KIND = KIND

    @translate_s3_errors
    def _connect(self, config: S3Config):
        self.service = S3Service(self.destination, config)
        self.list("")


def init_func(dest_url: str) -> S3Driver:
    return S3Driver(dest_url, S3Config.from_settings())


def register(registry) -> None:
    registry.register_driver(KIND, init_func)
