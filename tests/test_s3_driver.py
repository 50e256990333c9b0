import datetime
import io
import logging
import os
import shutil
import tempfile
from unittest import mock
from botocore.exceptions import EndpointConnectionError, NoCredentialsError, ReadTimeoutError
from django.test import SimpleTestCase
from backupstore.config import S3Config
from backupstore.exceptions import (
    AuthenticationError,
    BackendConnectionError,
    InvalidDestination,
    PartialDeleteFailure,
    UnexpectedDispatch,
)
from backupstore.interfaces.driver import ZERO_TIME
from backupstore.storage.base import ObjectStoreDriver
from backupstore.storage.s3 import S3Driver
from tests.fakes import FakeS3Client, FakeStore, client_error

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('TestS3Driver')

DEST_URL = "s3://backups@us-east-1/longhorn"


class S3TestCase(SimpleTestCase):

    def setUp(self):
        self.store = FakeStore()
        self.client = FakeS3Client(self.store)
        patcher = mock.patch("backupstore.storage.s3.boto3.client", return_value=self.client)
        self.boto3_client = patcher.start()
        self.addCleanup(patcher.stop)

    def make_driver(self, dest_url=DEST_URL, **kwargs):
        kwargs.setdefault("access_key", "AKIAEXAMPLE")
        kwargs.setdefault("secret_key", "secret")
        return S3Driver(dest_url, S3Config(**kwargs))


class TestS3DriverInit(S3TestCase):

    def test_kind_and_url(self):
        driver = self.make_driver()
        self.assertEqual(driver.kind(), "s3")
        self.assertEqual(driver.get_url(), "s3://backups@us-east-1/longhorn")

    def test_doubled_slash_root(self):
        driver = self.make_driver("s3://backups//longhorn")
        self.assertEqual(driver.path, "longhorn")
        self.assertEqual(driver.get_url(), "s3://backups/longhorn")
        driver.write("volume.cfg", io.BytesIO(b"cfg"))
        self.assertEqual(list(self.store.objects), ["longhorn/volume.cfg"])

    def test_backend_must_connect(self):
        class Unconnected(ObjectStoreDriver):
            KIND = "s3"

        with self.assertRaises(TypeError):
            Unconnected(DEST_URL, S3Config())

    def test_url_without_region(self):
        driver = self.make_driver("s3://backups/longhorn/")
        self.assertEqual(driver.get_url(), "s3://backups/longhorn/")
        self.assertIsNone(self.boto3_client.call_args.kwargs["region_name"])

    def test_client_arguments(self):
        self.make_driver()
        args, kwargs = self.boto3_client.call_args
        self.assertEqual(args, ("s3",))
        self.assertEqual(kwargs["region_name"], "us-east-1")
        self.assertEqual(kwargs["aws_access_key_id"], "AKIAEXAMPLE")
        self.assertEqual(kwargs["aws_secret_access_key"], "secret")
        self.assertNotIn("endpoint_url", kwargs)
        self.assertNotIn("verify", kwargs)

    def test_custom_endpoint_uses_path_style(self):
        self.make_driver(endpoint="http://minio:9000")
        kwargs = self.boto3_client.call_args.kwargs
        self.assertEqual(kwargs["endpoint_url"], "http://minio:9000")
        self.assertEqual(kwargs["config"].s3, {"addressing_style": "path"})

    def test_default_credential_chain(self):
        S3Driver(DEST_URL, S3Config())
        kwargs = self.boto3_client.call_args.kwargs
        self.assertNotIn("aws_access_key_id", kwargs)

    def test_partial_credentials(self):
        with self.assertRaises(AuthenticationError):
            self.make_driver(secret_key=None)
        self.boto3_client.assert_not_called()

    def test_rejected_credentials(self):
        self.store.list_error = client_error("InvalidAccessKeyId", "ListObjectsV2")
        with self.assertRaises(AuthenticationError):
            self.make_driver()

    def test_no_credentials_found(self):
        self.store.list_error = NoCredentialsError()
        with self.assertRaises(AuthenticationError):
            S3Driver(DEST_URL, S3Config())

    def test_unreachable_endpoint(self):
        self.store.list_error = EndpointConnectionError(endpoint_url="http://minio:9000")
        with self.assertRaises(BackendConnectionError):
            self.make_driver(endpoint="http://minio:9000")

    def test_missing_bucket(self):
        self.store.list_error = client_error("NoSuchBucket", "ListObjectsV2")
        with self.assertRaises(InvalidDestination):
            self.make_driver()

    def test_invalid_certificate(self):
        with self.assertRaises(BackendConnectionError):
            self.make_driver(cert="not a certificate!")

    def test_wrong_scheme(self):
        with self.assertRaises(UnexpectedDispatch):
            self.make_driver("azblob://backups/longhorn")
        self.boto3_client.assert_not_called()


class TestS3DriverListing(S3TestCase):

    def test_empty_backend(self):
        driver = self.make_driver()
        self.assertEqual(driver.list(""), [])
        self.assertEqual(driver.list("volumes"), [])

    def test_immediate_children_only(self):
        self.store.put("longhorn/dir/x", b"x")
        self.store.put("longhorn/dir/sub/y", b"y")
        driver = self.make_driver()
        self.assertEqual(sorted(driver.list("dir/")), ["sub", "x"])
        self.assertEqual(sorted(driver.list("dir")), ["sub", "x"])
        self.assertEqual(driver.list(""), ["dir"])

    def test_object_and_prefix_with_same_name(self):
        self.store.put("longhorn/dir/sub", b"sub")
        self.store.put("longhorn/dir/sub/y", b"y")
        driver = self.make_driver()
        self.assertEqual(driver.list("dir/"), ["sub"])

    def test_prefix_itself_is_dropped(self):
        self.store.put("longhorn/dir/", b"")
        self.store.put("longhorn/dir/x", b"x")
        driver = self.make_driver()
        self.assertEqual(driver.list("dir"), ["x"])

    def test_multiple_pages(self):
        self.store.page_size = 2
        for i in range(5):
            self.store.put(f"longhorn/blocks/{i}.blk", b"data")
        self.store.put("longhorn/blocks/sub/0.blk", b"data")
        driver = self.make_driver()
        self.assertEqual(driver.list("blocks"), ["0.blk", "1.blk", "2.blk", "3.blk", "4.blk", "sub"])

    def test_listing_error_is_raised(self):
        driver = self.make_driver()
        self.store.list_error = client_error("InternalError", "ListObjectsV2")
        with self.assertRaises(Exception) as cm:
            driver.list("dir")
        self.assertEqual(cm.exception.response["Error"]["Code"], "InternalError")


class TestS3DriverObjects(S3TestCase):

    def test_metadata_of_missing_object(self):
        driver = self.make_driver()
        self.assertEqual(driver.file_size("missing"), -1)
        self.assertFalse(driver.file_exists("missing"))
        self.assertEqual(driver.file_time("missing"), ZERO_TIME)

    def test_metadata_of_existing_object(self):
        modified = datetime.datetime(2024, 3, 1, 12, 30, tzinfo=datetime.timezone(datetime.timedelta(hours=2)))
        self.store.put("longhorn/volume.cfg", b"12345", modified)
        driver = self.make_driver()
        self.assertEqual(driver.file_size("volume.cfg"), 5)
        self.assertTrue(driver.file_exists("volume.cfg"))
        self.assertEqual(driver.file_time("volume.cfg"), datetime.datetime(2024, 3, 1, 10, 30, tzinfo=datetime.timezone.utc))
        self.assertEqual(driver.file_time("volume.cfg").tzinfo, datetime.timezone.utc)

    def test_probe_failure_is_absence(self):
        self.store.put("longhorn/volume.cfg", b"12345")
        driver = self.make_driver()
        with mock.patch.object(self.client, "head_object", side_effect=client_error("500", "HeadObject")):
            self.assertEqual(driver.file_size("volume.cfg"), -1)
            self.assertEqual(driver.file_time("volume.cfg"), ZERO_TIME)

    def test_exists_matches_size(self):
        self.store.put("longhorn/a", b"")
        self.store.put("longhorn/b", b"bbb")
        driver = self.make_driver()
        for path in ("a", "b", "c", "dir/"):
            with self.subTest(path=path):
                self.assertEqual(driver.file_exists(path), driver.file_size(path) >= 0)

    def test_write_read_round_trip(self):
        driver = self.make_driver()
        for size in (0, 1, 10 * 1024 * 1024 + 7):
            with self.subTest(size=size):
                data = os.urandom(size)
                driver.write(f"blocks/{size}.blk", io.BytesIO(data))
                self.assertEqual(self.store.data(f"longhorn/blocks/{size}.blk"), data)
                with driver.read(f"blocks/{size}.blk") as stream:
                    self.assertEqual(stream.read(), data)

    def test_write_overwrites(self):
        driver = self.make_driver()
        driver.write("volume.cfg", io.BytesIO(b"old content"))
        driver.write("volume.cfg", io.BytesIO(b"new"))
        self.assertEqual(self.store.data("longhorn/volume.cfg"), b"new")

    def test_read_missing_object(self):
        driver = self.make_driver()
        with self.assertRaises(Exception) as cm:
            driver.read("missing")
        self.assertEqual(cm.exception.response["Error"]["Code"], "NoSuchKey")

    def test_read_retries_with_range(self):
        self.store.put("longhorn/blob", b"0123456789")
        self.store.interruptions = 2
        driver = self.make_driver()
        with driver.read("blob") as stream:
            self.assertEqual(stream.read(), b"0123456789")
            self.assertEqual(stream.retries, 2)
        self.assertEqual(self.store.read_offsets, [0, 3, 6])

    def test_read_gives_up(self):
        self.store.put("longhorn/blob", b"0123456789")
        self.store.interruptions = 10
        driver = self.make_driver(read_max_retries=1)
        with driver.read("blob") as stream:
            with self.assertRaises(ReadTimeoutError):
                stream.read()


class TestS3DriverRemove(S3TestCase):

    def setUp(self):
        super().setUp()
        for name in ("a/1", "a/2", "a/3", "b/1"):
            self.store.put(f"longhorn/{name}", b"data")

    def test_remove_prefix(self):
        driver = self.make_driver()
        driver.remove("a")
        self.assertEqual(driver.list("a"), [])
        self.assertEqual(driver.list(""), ["b"])

    def test_remove_single_object(self):
        driver = self.make_driver()
        driver.remove("a/2")
        self.assertEqual(driver.list("a"), ["1", "3"])

    def test_remove_absent(self):
        driver = self.make_driver()
        driver.remove("nothing/here")
        driver.remove("a/4")
        self.assertEqual(self.store.deleted, [])

    def test_partial_failure(self):
        self.store.failing_deletes.add("longhorn/a/2")
        driver = self.make_driver()
        with self.assertRaises(PartialDeleteFailure) as cm:
            driver.remove("a")
        self.assertEqual(cm.exception.failed, ["longhorn/a/2"])
        self.assertIn("longhorn/a/2", str(cm.exception))
        self.assertEqual(self.store.deleted, ["longhorn/a/1", "longhorn/a/3"])
        self.assertFalse(driver.file_exists("a/1"))
        self.assertFalse(driver.file_exists("a/3"))
        self.assertTrue(driver.file_exists("a/2"))


class TestS3DriverLocalFiles(S3TestCase):

    def setUp(self):
        super().setUp()
        self.tmp_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmp_dir)

    def test_upload(self):
        local = os.path.join(self.tmp_dir, "volume.cfg")
        with open(local, "wb") as f:
            f.write(b"volume config")
        driver = self.make_driver()
        driver.upload(local, "volumes/vol-1/volume.cfg")
        self.assertEqual(self.store.data("longhorn/volumes/vol-1/volume.cfg"), b"volume config")

    def test_upload_missing_local_file_is_ignored(self):
        driver = self.make_driver()
        driver.upload(os.path.join(self.tmp_dir, "missing"), "volume.cfg")
        self.assertFalse(driver.file_exists("volume.cfg"))

    def test_download_creates_parents_and_truncates(self):
        self.store.put("longhorn/volume.cfg", b"short")
        local = os.path.join(self.tmp_dir, "restore", "nested", "volume.cfg")
        os.makedirs(os.path.dirname(local))
        with open(local, "wb") as f:
            f.write(b"a much longer previous content")
        driver = self.make_driver()
        driver.download("volume.cfg", local)
        with open(local, "rb") as f:
            self.assertEqual(f.read(), b"short")

    def test_download_into_new_directory(self):
        self.store.put("longhorn/volume.cfg", b"content")
        local = os.path.join(self.tmp_dir, "a", "b", "volume.cfg")
        driver = self.make_driver()
        driver.download("volume.cfg", local)
        with open(local, "rb") as f:
            self.assertEqual(f.read(), b"content")
        self.assertEqual(os.stat(os.path.join(self.tmp_dir, "a")).st_mode & 0o777, 0o700 & ~self._umask())

    def test_download_missing_object(self):
        driver = self.make_driver()
        with self.assertRaises(Exception):
            driver.download("missing", os.path.join(self.tmp_dir, "missing"))

    @staticmethod
    def _umask():
        mask = os.umask(0)
        os.umask(mask)
        return mask
