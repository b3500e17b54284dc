import unittest
from datetime import datetime

from botocore.exceptions import ClientError, EndpointConnectionError

from s3_explorer import services
from s3_explorer.errors import ErrorKind, NotConnectedError, RemoteError, TransferCancelledError
from s3_explorer.services import FOLDER_CONTENT_TYPE, S3Service


class FakeBody:
    def __init__(self, data):
        self._data = data

    def read(self):
        return self._data


class FakeS3Client:
    def __init__(
        self,
        buckets=None,
        object_responses=None,
        head_object_responses=None,
        get_object_responses=None,
        download_errors=None,
        upload_errors=None,
        delete_errors=None,
        transfer_sequences=None,
        list_buckets_error=None,
    ):
        self.buckets = buckets or []
        self.object_responses = {name: iter(responses) for name, responses in (object_responses or {}).items()}
        self.list_objects_calls = []
        self.list_objects_kwargs = []
        self.head_object_calls = []
        self.head_object_responses = head_object_responses or {}
        self.get_object_responses = get_object_responses or {}
        self.put_object_calls = []
        self.copy_object_calls = []
        self.download_file_calls = []
        self.download_file_errors = download_errors or {}
        self.upload_file_calls = []
        self.upload_file_errors = upload_errors or {}
        self.upload_file_configs = []
        self.delete_object_calls = []
        self.delete_object_errors = delete_errors or {}
        self.transfer_sequences = transfer_sequences or {}
        self.list_buckets_error = list_buckets_error

    def list_buckets(self):
        if self.list_buckets_error:
            raise self.list_buckets_error
        return {"Buckets": [{"Name": name} for name in self.buckets]}

    def list_objects_v2(self, **kwargs):
        bucket = kwargs["Bucket"]
        continuation = kwargs.get("ContinuationToken")
        self.list_objects_calls.append((bucket, continuation))
        self.list_objects_kwargs.append(kwargs)

        response = next(self.object_responses[bucket])
        if isinstance(response, Exception):
            raise response
        return response

    def head_object(self, **kwargs):
        self.head_object_calls.append(kwargs)
        response = self.head_object_responses.get((kwargs["Bucket"], kwargs["Key"]), {})
        if isinstance(response, Exception):
            raise response
        return response

    def get_object(self, **kwargs):
        response = self.get_object_responses[(kwargs["Bucket"], kwargs["Key"])]
        if isinstance(response, Exception):
            raise response
        return {"Body": FakeBody(response)}

    def put_object(self, **kwargs):
        self.put_object_calls.append(kwargs)

    def copy_object(self, **kwargs):
        self.copy_object_calls.append(kwargs)

    def download_file(self, bucket, key, filename, Callback=None):
        self.download_file_calls.append((bucket, key, filename))
        error = self.download_file_errors.get((bucket, key))
        if isinstance(error, Exception):
            raise error
        if Callback:
            for amount in self.transfer_sequences.get(("download", bucket, key), []):
                Callback(amount)

    def upload_file(self, filename, bucket, key, Callback=None, ExtraArgs=None, Config=None):
        self.upload_file_calls.append((filename, bucket, key))
        self.upload_file_configs.append(Config)
        error = self.upload_file_errors.get((bucket, key))
        if isinstance(error, Exception):
            raise error
        if Callback:
            for amount in self.transfer_sequences.get(("upload", bucket, key), []):
                Callback(amount)

    def delete_object(self, **kwargs):
        bucket = kwargs["Bucket"]
        key = kwargs["Key"]
        self.delete_object_calls.append((bucket, key))
        error = self.delete_object_errors.get((bucket, key))
        if isinstance(error, Exception):
            raise error


def connected_service(fake_client):
    service = S3Service(client_factory=lambda *_, **__: fake_client)
    service.connect(endpoint_url="https://example.com", access_key="access", secret_key="secret")
    return service


class ConnectionTests(unittest.TestCase):
    def test_connect_returns_bucket_names_and_passes_credentials(self):
        created = {}
        fake_client = FakeS3Client(["bucket-one", "bucket-two"])

        def factory(*args, **kwargs):
            created["args"] = args
            created["kwargs"] = kwargs
            return fake_client

        service = S3Service(client_factory=factory)
        buckets = service.connect(
            endpoint_url="",
            access_key="access",
            secret_key="secret",
            region="",
            force_path_style=True,
        )

        self.assertEqual(["bucket-one", "bucket-two"], buckets)
        self.assertTrue(service.is_connected)
        self.assertEqual(("s3",), created["args"])
        self.assertIsNone(created["kwargs"]["endpoint_url"])
        self.assertIsNone(created["kwargs"]["region_name"])
        self.assertEqual("access", created["kwargs"]["aws_access_key_id"])
        self.assertEqual("secret", created["kwargs"]["aws_secret_access_key"])
        self.assertIsNotNone(created["kwargs"]["config"])

    def test_failed_connect_leaves_service_disconnected(self):
        error = ClientError({"Error": {"Code": "InvalidAccessKeyId", "Message": "bad"}}, "ListBuckets")
        service = S3Service(client_factory=lambda *_, **__: FakeS3Client(list_buckets_error=error))

        with self.assertRaises(RemoteError) as ctx:
            service.connect(endpoint_url="https://example.com", access_key="a", secret_key="b")

        self.assertEqual(ErrorKind.UNAUTHORIZED, ctx.exception.kind)
        self.assertFalse(service.is_connected)

    def test_operations_require_connection(self):
        service = S3Service(client_factory=lambda *_, **__: FakeS3Client())

        with self.assertRaises(NotConnectedError):
            service.list_objects("bucket-one")
        with self.assertRaises(NotConnectedError):
            service.list_buckets()

    def test_close_drops_client(self):
        service = connected_service(FakeS3Client(["bucket-one"]))

        service.close()

        self.assertFalse(service.is_connected)


class ListObjectsTests(unittest.TestCase):
    def test_returns_one_page_with_objects_prefixes_and_token(self):
        modified = datetime(2024, 1, 1, 12, 0, 0)
        fake_client = FakeS3Client(
            ["bucket-one"],
            {
                "bucket-one": [
                    {
                        "Contents": [{"Key": "a.txt", "Size": 5, "LastModified": modified, "ETag": '"e"'}],
                        "CommonPrefixes": [{"Prefix": "folder/"}],
                        "IsTruncated": True,
                        "NextContinuationToken": "token-1",
                    }
                ]
            },
        )
        service = connected_service(fake_client)

        result = service.list_objects("bucket-one", max_keys=10)

        self.assertEqual(["a.txt"], [o.key for o in result.objects])
        self.assertEqual(5, result.objects[0].size)
        self.assertEqual(modified, result.objects[0].last_modified)
        self.assertEqual(["folder/"], [p.prefix for p in result.prefixes])
        self.assertTrue(result.is_truncated)
        self.assertEqual("token-1", result.continuation_token)
        kwargs = fake_client.list_objects_kwargs[0]
        self.assertEqual("/", kwargs["Delimiter"])
        self.assertEqual(10, kwargs["MaxKeys"])
        self.assertNotIn("Prefix", kwargs)
        self.assertNotIn("ContinuationToken", kwargs)

    def test_passes_prefix_and_continuation_token(self):
        fake_client = FakeS3Client(
            ["bucket-one"],
            {"bucket-one": [{"Contents": [{"Key": "folder/b.txt"}], "IsTruncated": False}]},
        )
        service = connected_service(fake_client)

        result = service.list_objects("bucket-one", "folder/", "token-1")

        self.assertFalse(result.is_truncated)
        self.assertIsNone(result.continuation_token)
        kwargs = fake_client.list_objects_kwargs[0]
        self.assertEqual("folder/", kwargs["Prefix"])
        self.assertEqual("token-1", kwargs["ContinuationToken"])
        self.assertEqual(services.PAGE_SIZE, kwargs["MaxKeys"])

    def test_omits_folder_marker_for_requested_prefix(self):
        fake_client = FakeS3Client(
            ["bucket-one"],
            {
                "bucket-one": [
                    {
                        "Contents": [{"Key": "folder/"}, {"Key": "folder/a.txt"}],
                        "IsTruncated": False,
                    }
                ]
            },
        )
        service = connected_service(fake_client)

        result = service.list_objects("bucket-one", "folder/")

        self.assertEqual(["folder/a.txt"], [o.key for o in result.objects])

    def test_skips_empty_pages_that_are_still_truncated(self):
        fake_client = FakeS3Client(
            ["bucket-one"],
            {
                "bucket-one": [
                    {"Contents": [], "IsTruncated": True, "NextContinuationToken": "token-1"},
                    {"Contents": [{"Key": "b.txt"}], "IsTruncated": False},
                ]
            },
        )
        service = connected_service(fake_client)

        result = service.list_objects("bucket-one")

        self.assertEqual(["b.txt"], [o.key for o in result.objects])
        self.assertEqual([("bucket-one", None), ("bucket-one", "token-1")], fake_client.list_objects_calls)

    def test_empty_listing_is_not_an_error(self):
        fake_client = FakeS3Client(["bucket-one"], {"bucket-one": [{"IsTruncated": False}]})
        service = connected_service(fake_client)

        result = service.list_objects("bucket-one", "empty/")

        self.assertEqual([], result.objects)
        self.assertEqual([], result.prefixes)
        self.assertFalse(result.is_truncated)

    def test_wraps_client_errors(self):
        list_error = ClientError({"Error": {"Code": "NoSuchBucket", "Message": "missing"}}, "ListObjectsV2")
        fake_client = FakeS3Client(["bucket-one"], {"bucket-one": [list_error]})
        service = connected_service(fake_client)

        with self.assertRaises(RemoteError) as ctx:
            service.list_objects("bucket-one")

        self.assertEqual(ErrorKind.NOT_FOUND, ctx.exception.kind)
        self.assertIs(list_error, ctx.exception.__cause__)

    def test_rejected_token_is_classified(self):
        list_error = ClientError({"Error": {"Code": "InvalidArgument", "Message": "bad token"}}, "ListObjectsV2")
        fake_client = FakeS3Client(["bucket-one"], {"bucket-one": [list_error]})
        service = connected_service(fake_client)

        with self.assertRaises(RemoteError) as ctx:
            service.list_objects("bucket-one", continuation_token="stale")

        self.assertEqual(ErrorKind.INVALID_CONTINUATION_TOKEN, ctx.exception.kind)

    def test_wraps_network_errors(self):
        fake_client = FakeS3Client(
            ["bucket-one"],
            {"bucket-one": [EndpointConnectionError(endpoint_url="https://example.com")]},
        )
        service = connected_service(fake_client)

        with self.assertRaises(RemoteError) as ctx:
            service.list_objects("bucket-one")

        self.assertEqual(ErrorKind.NETWORK, ctx.exception.kind)


class SearchObjectsTests(unittest.TestCase):
    def test_scans_nested_keys_across_pages(self):
        fake_client = FakeS3Client(
            ["bucket-one"],
            {
                "bucket-one": [
                    {
                        "Contents": [{"Key": "docs/"}, {"Key": "docs/Report.pdf", "Size": 3}, {"Key": "docs/a.txt"}],
                        "IsTruncated": True,
                        "NextContinuationToken": "token-1",
                    },
                    {"Contents": [{"Key": "docs/2024/report-final.pdf"}], "IsTruncated": False},
                ]
            },
        )
        service = connected_service(fake_client)

        results = service.search_objects("bucket-one", "REPORT", "docs/")

        self.assertEqual(["docs/Report.pdf", "docs/2024/report-final.pdf"], [o.key for o in results])
        self.assertEqual(3, results[0].size)
        first, second = fake_client.list_objects_kwargs
        self.assertNotIn("Delimiter", first)
        self.assertEqual("docs/", first["Prefix"])
        self.assertEqual(services.SEARCH_PAGE_SIZE, first["MaxKeys"])
        self.assertEqual("token-1", second["ContinuationToken"])

    def test_stops_once_limit_is_reached(self):
        fake_client = FakeS3Client(
            ["bucket-one"],
            {
                "bucket-one": [
                    {
                        "Contents": [{"Key": "a1"}, {"Key": "a2"}, {"Key": "a3"}],
                        "IsTruncated": True,
                        "NextContinuationToken": "token-1",
                    }
                ]
            },
        )
        service = connected_service(fake_client)

        results = service.search_objects("bucket-one", "a", limit=2)

        self.assertEqual(["a1", "a2"], [o.key for o in results])
        self.assertEqual(1, len(fake_client.list_objects_calls))

    def test_wraps_client_errors(self):
        list_error = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "ListObjectsV2")
        fake_client = FakeS3Client(["bucket-one"], {"bucket-one": [list_error]})
        service = connected_service(fake_client)

        with self.assertRaises(RemoteError) as ctx:
            service.search_objects("bucket-one", "a")

        self.assertEqual(ErrorKind.FORBIDDEN, ctx.exception.kind)


class ObjectOperationTests(unittest.TestCase):
    def test_head_object_returns_metadata(self):
        last_modified = datetime(2024, 1, 1, 12, 0, 0)
        head_responses = {
            ("bucket-one", "a.txt"): {
                "ContentLength": 123,
                "LastModified": last_modified,
                "StorageClass": "STANDARD",
                "ETag": '"abc123"',
                "ContentType": "text/plain",
                "Metadata": {"custom": "value"},
            }
        }
        fake_client = FakeS3Client(["bucket-one"], head_object_responses=head_responses)
        service = connected_service(fake_client)

        details = service.head_object("bucket-one", "a.txt")

        self.assertEqual(123, details.size)
        self.assertEqual(last_modified, details.last_modified)
        self.assertEqual("STANDARD", details.storage_class)
        self.assertEqual('"abc123"', details.etag)
        self.assertEqual("text/plain", details.content_type)
        self.assertEqual({"custom": "value"}, details.metadata)

    def test_head_object_missing_key_is_not_found(self):
        error = ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        fake_client = FakeS3Client(["bucket-one"], head_object_responses={("bucket-one", "gone"): error})
        service = connected_service(fake_client)

        with self.assertRaises(RemoteError) as ctx:
            service.head_object("bucket-one", "gone")

        self.assertEqual(ErrorKind.NOT_FOUND, ctx.exception.kind)

    def test_get_object_reads_body(self):
        fake_client = FakeS3Client(["bucket-one"], get_object_responses={("bucket-one", "a.txt"): b"hello"})
        service = connected_service(fake_client)

        self.assertEqual(b"hello", service.get_object("bucket-one", "a.txt"))

    def test_create_folder_writes_marker(self):
        fake_client = FakeS3Client(["bucket-one"])
        service = connected_service(fake_client)

        service.create_folder("bucket-one", "docs")

        self.assertEqual(
            [{"Bucket": "bucket-one", "Key": "docs/", "Body": b"", "ContentType": FOLDER_CONTENT_TYPE}],
            fake_client.put_object_calls,
        )

    def test_copy_object_is_server_side(self):
        fake_client = FakeS3Client(["bucket-one"])
        service = connected_service(fake_client)

        service.copy_object("bucket-one", "a.txt", "b.txt")

        self.assertEqual(
            [{"Bucket": "bucket-one", "Key": "b.txt", "CopySource": {"Bucket": "bucket-one", "Key": "a.txt"}}],
            fake_client.copy_object_calls,
        )

    def test_delete_object_removes_target_file(self):
        fake_client = FakeS3Client(["bucket-one"])
        service = connected_service(fake_client)

        service.delete_object("bucket-one", "folder/a.txt")

        self.assertEqual([("bucket-one", "folder/a.txt")], fake_client.delete_object_calls)

    def test_delete_object_wraps_errors(self):
        error = ClientError({"Error": {"Code": "AccessDenied", "Message": "Denied"}}, "DeleteObject")
        fake_client = FakeS3Client(["bucket-one"], delete_errors={("bucket-one", "a.txt"): error})
        service = connected_service(fake_client)

        with self.assertRaises(RemoteError) as ctx:
            service.delete_object("bucket-one", "a.txt")

        self.assertTrue(ctx.exception.is_auth_error)


class TransferTests(unittest.TestCase):
    def test_download_object_saves_to_destination(self):
        fake_client = FakeS3Client(["bucket-one"])
        service = connected_service(fake_client)

        service.download_object(bucket_name="bucket-one", key="a.txt", destination="/tmp/a.txt")

        self.assertEqual([("bucket-one", "a.txt", "/tmp/a.txt")], fake_client.download_file_calls)

    def test_download_object_reports_progress_and_supports_cancel(self):
        transfer_sequences = {("download", "bucket-one", "a.txt"): [1024, 2048, 1024]}
        fake_client = FakeS3Client(["bucket-one"], transfer_sequences=transfer_sequences)
        service = connected_service(fake_client)

        reported = []
        cancel_flag = {"value": False}

        def progress(total):
            reported.append(total)
            if len(reported) == 2:
                cancel_flag["value"] = True

        with self.assertRaises(TransferCancelledError):
            service.download_object(
                bucket_name="bucket-one",
                key="a.txt",
                destination="/tmp/a.txt",
                progress_callback=progress,
                cancel_requested=lambda: cancel_flag["value"],
            )

        self.assertEqual([1024, 3072], reported)

    def test_upload_object_reports_progress(self):
        transfer_sequences = {("upload", "bucket-one", "folder/a.txt"): [512, 512, 256]}
        fake_client = FakeS3Client(["bucket-one"], transfer_sequences=transfer_sequences)
        service = connected_service(fake_client)

        reported = []

        service.upload_object(
            bucket_name="bucket-one",
            key="folder/a.txt",
            source_path="/tmp/local.txt",
            progress_callback=reported.append,
        )

        self.assertEqual([("/tmp/local.txt", "bucket-one", "folder/a.txt")], fake_client.upload_file_calls)
        self.assertEqual([512, 1024, 1280], reported)

    def test_upload_object_passes_transfer_config(self):
        class FakeTransferConfig:
            def __init__(self, **kwargs):
                self.kwargs = kwargs

        fake_client = FakeS3Client(["bucket-one"])
        service = connected_service(fake_client)

        original_config = services.TransferConfig
        services.TransferConfig = FakeTransferConfig
        try:
            service.upload_object(
                bucket_name="bucket-one",
                key="folder/a.txt",
                source_path="/tmp/local.txt",
                multipart_threshold=1024,
                multipart_chunk_size=-5,
                max_concurrency=3,
            )
        finally:
            services.TransferConfig = original_config

        self.assertEqual(
            {
                "multipart_threshold": 1024,
                "multipart_chunksize": services.DEFAULT_MULTIPART_CHUNK_SIZE,
                "max_concurrency": 3,
            },
            fake_client.upload_file_configs[0].kwargs,
        )


if __name__ == "__main__":
    unittest.main()
