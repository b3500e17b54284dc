from __future__ import annotations
"""Business logic for interacting with S3."""
import logging
from typing import Callable, Optional

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import NotConnectedError, TransferCancelledError, classify_error
from .models import ListingResult, ObjectDetails, ObjectEntry, PrefixEntry

PAGE_SIZE = 200
DELIMITER = "/"
FOLDER_CONTENT_TYPE = "application/x-directory"
SEARCH_LIMIT = 1000
SEARCH_PAGE_SIZE = 1000

DEFAULT_MULTIPART_THRESHOLD = 8 * 1024 * 1024
DEFAULT_MULTIPART_CHUNK_SIZE = 8 * 1024 * 1024
DEFAULT_MAX_CONCURRENCY = 10

LOGGER = logging.getLogger(__name__)


class S3Service:
    """Thin wrapper over a boto3 S3 client, independent of any UI technology.

    Every botocore failure is re-raised as :class:`~s3_explorer.errors.RemoteError`.
    """

    def __init__(self, client_factory: Callable[..., object] | None = None):
        self._client_factory = client_factory or boto3.client
        self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def connect(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        region: str | None = None,
        force_path_style: bool = False,
    ) -> list[str]:
        """Create a client and verify it by listing buckets."""

        client = self._create_client(endpoint_url, access_key, secret_key, region, force_path_style)
        buckets = self._list_buckets(client)
        self._client = client
        return buckets

    def close(self) -> None:
        self._client = None

    def list_buckets(self) -> list[str]:
        return self._list_buckets(self._require_client())

    def list_objects(
        self,
        bucket_name: str,
        prefix: str = "",
        continuation_token: str | None = None,
        *,
        max_keys: int = PAGE_SIZE,
    ) -> ListingResult:
        """Return one delimited page of ``bucket_name`` below ``prefix``.

        Empty pages that still report more results are skipped so the caller
        never receives a page with nothing to show and a token to follow. The
        folder marker object whose key equals ``prefix`` is left out.
        """

        client = self._require_client()
        request_token = continuation_token
        while True:
            list_params = {
                "Bucket": bucket_name,
                "MaxKeys": max(int(max_keys), 1),
                "Delimiter": DELIMITER,
            }
            if prefix:
                list_params["Prefix"] = prefix
            if request_token:
                list_params["ContinuationToken"] = request_token

            try:
                response = client.list_objects_v2(**list_params)
            except (ClientError, BotoCoreError) as exc:
                raise classify_error(exc, continuation_token=request_token) from exc

            objects = [
                _object_entry(item)
                for item in response.get("Contents", [])
                if not prefix or item["Key"] != prefix
            ]
            prefixes = [PrefixEntry(prefix=common["Prefix"]) for common in response.get("CommonPrefixes", [])]
            truncated = bool(response.get("IsTruncated", False))
            next_token = response.get("NextContinuationToken") if truncated else None

            if not objects and not prefixes and truncated and next_token:
                request_token = next_token
                continue

            LOGGER.debug(
                "Listed %d object(s), %d prefix(es) in %s:%s (truncated=%s)",
                len(objects),
                len(prefixes),
                bucket_name,
                prefix,
                truncated,
            )
            return ListingResult(
                objects=objects,
                prefixes=prefixes,
                is_truncated=truncated and bool(next_token),
                continuation_token=next_token,
            )

    def search_objects(
        self,
        bucket_name: str,
        term: str,
        prefix: str = "",
        *,
        limit: int = SEARCH_LIMIT,
    ) -> list[ObjectEntry]:
        """Scan every key below ``prefix`` for ``term``, ignoring case.

        The scan is not delimited, so nested folders are searched too. Folder
        markers never match. At most ``limit`` matches are returned.
        """

        client = self._require_client()
        needle = term.lower()
        matches: list[ObjectEntry] = []
        token = None
        while len(matches) < limit:
            list_params = {"Bucket": bucket_name, "MaxKeys": SEARCH_PAGE_SIZE}
            if prefix:
                list_params["Prefix"] = prefix
            if token:
                list_params["ContinuationToken"] = token

            try:
                response = client.list_objects_v2(**list_params)
            except (ClientError, BotoCoreError) as exc:
                raise classify_error(exc, continuation_token=token) from exc

            for item in response.get("Contents", []):
                key = item["Key"]
                if key.endswith(DELIMITER) or needle not in key.lower():
                    continue
                matches.append(_object_entry(item))

            token = response.get("NextContinuationToken")
            if not response.get("IsTruncated") or not token:
                break

        LOGGER.debug("Search for '%s' in %s:%s found %d object(s)", term, bucket_name, prefix, len(matches))
        return matches[:limit]

    def head_object(self, bucket_name: str, key: str) -> ObjectDetails:
        """Fetch metadata about a single object."""

        client = self._require_client()
        try:
            response = client.head_object(Bucket=bucket_name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise classify_error(exc) from exc
        return ObjectDetails(
            bucket=bucket_name,
            key=key,
            size=response.get("ContentLength"),
            last_modified=response.get("LastModified"),
            storage_class=response.get("StorageClass"),
            etag=response.get("ETag"),
            content_type=response.get("ContentType"),
            metadata=dict(response.get("Metadata") or {}),
        )

    def get_object(self, bucket_name: str, key: str) -> bytes:
        client = self._require_client()
        try:
            response = client.get_object(Bucket=bucket_name, Key=key)
            return response["Body"].read()
        except (ClientError, BotoCoreError) as exc:
            raise classify_error(exc) from exc

    def put_object(
        self,
        bucket_name: str,
        key: str,
        body: bytes = b"",
        content_type: str | None = None,
    ) -> None:
        client = self._require_client()
        params = {"Bucket": bucket_name, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        try:
            client.put_object(**params)
        except (ClientError, BotoCoreError) as exc:
            raise classify_error(exc) from exc

    def create_folder(self, bucket_name: str, folder_key: str) -> None:
        """Write the zero-byte marker object that represents an empty folder."""

        key = folder_key if folder_key.endswith(DELIMITER) else f"{folder_key}{DELIMITER}"
        self.put_object(bucket_name, key, b"", FOLDER_CONTENT_TYPE)

    def delete_object(self, bucket_name: str, key: str) -> None:
        client = self._require_client()
        try:
            client.delete_object(Bucket=bucket_name, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise classify_error(exc) from exc

    def copy_object(self, bucket_name: str, source_key: str, destination_key: str) -> None:
        """Server-side copy within one bucket."""

        client = self._require_client()
        try:
            client.copy_object(
                Bucket=bucket_name,
                Key=destination_key,
                CopySource={"Bucket": bucket_name, "Key": source_key},
            )
        except (ClientError, BotoCoreError) as exc:
            raise classify_error(exc) from exc

    def download_object(
        self,
        *,
        bucket_name: str,
        key: str,
        destination: str,
        progress_callback: Optional[Callable[[int], None]] = None,
        cancel_requested: Optional[Callable[[], bool]] = None,
    ) -> None:
        """Download an S3 object to the provided destination path."""

        client = self._require_client()
        callback = self._build_transfer_callback(progress_callback, cancel_requested)
        try:
            client.download_file(bucket_name, key, destination, Callback=callback)
        except (ClientError, BotoCoreError) as exc:
            raise classify_error(exc) from exc

    def upload_object(
        self,
        *,
        bucket_name: str,
        key: str,
        source_path: str,
        multipart_threshold: int | None = None,
        multipart_chunk_size: int | None = None,
        max_concurrency: int | None = None,
        progress_callback: Optional[Callable[[int], None]] = None,
        cancel_requested: Optional[Callable[[], bool]] = None,
    ) -> None:
        """Upload a local file; multipart handling is left to boto3."""

        client = self._require_client()
        callback = self._build_transfer_callback(progress_callback, cancel_requested)
        transfer_config = TransferConfig(
            multipart_threshold=_positive_or_default(multipart_threshold, DEFAULT_MULTIPART_THRESHOLD),
            multipart_chunksize=_positive_or_default(multipart_chunk_size, DEFAULT_MULTIPART_CHUNK_SIZE),
            max_concurrency=_positive_or_default(max_concurrency, DEFAULT_MAX_CONCURRENCY),
        )
        try:
            client.upload_file(
                source_path,
                bucket_name,
                key,
                Callback=callback,
                Config=transfer_config,
            )
        except (ClientError, BotoCoreError) as exc:
            raise classify_error(exc) from exc

    def _require_client(self):
        if self._client is None:
            raise NotConnectedError("Not connected to S3")
        return self._client

    def _list_buckets(self, client) -> list[str]:
        try:
            buckets_response = client.list_buckets()
        except (ClientError, BotoCoreError) as exc:
            raise classify_error(exc) from exc
        return [bucket["Name"] for bucket in buckets_response.get("Buckets", [])]

    def _create_client(
        self,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        region: str | None,
        force_path_style: bool,
    ):
        config_kwargs = {"signature_version": "s3v4"}
        if force_path_style:
            config_kwargs["s3"] = {"addressing_style": "path"}
        return self._client_factory(
            "s3",
            endpoint_url=endpoint_url or None,
            region_name=region or None,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=Config(**config_kwargs),
        )

    def _build_transfer_callback(
        self,
        progress_callback: Optional[Callable[[int], None]],
        cancel_requested: Optional[Callable[[], bool]],
    ):
        if not progress_callback and not cancel_requested:
            return None

        transferred = 0

        def _callback(bytes_amount: int) -> None:
            nonlocal transferred
            if cancel_requested and cancel_requested():
                raise TransferCancelledError("Transfer cancelled by user")
            transferred += bytes_amount
            if progress_callback:
                progress_callback(transferred)
            if cancel_requested and cancel_requested():
                raise TransferCancelledError("Transfer cancelled by user")

        return _callback


def _positive_or_default(value: int | None, default: int) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _object_entry(item: dict) -> ObjectEntry:
    return ObjectEntry(
        key=item["Key"],
        size=int(item.get("Size") or 0),
        last_modified=item.get("LastModified"),
        etag=item.get("ETag"),
        storage_class=item.get("StorageClass"),
    )
