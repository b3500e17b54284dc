from __future__ import annotations
"""Path-addressed virtual filesystem over ``s3x://bucket/key`` URIs."""
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum, IntEnum
import logging
import time
from typing import Callable

from .cache import S3Cache
from .errors import (
    ErrorKind,
    FileSystemError,
    FileTooLargeError,
    IsDirectoryError,
    PermissionDeniedError,
    RemoteError,
    ResourceExistsError,
    ResourceNotFoundError,
    UnavailableError,
)
from .models import CacheEntry, DisplayNode, FolderNode
from .nodes import direct_children, materialize
from .paths import create_s3x_uri, ensure_trailing_slash, get_parent_prefix, parse_s3x_uri
from .services import PAGE_SIZE, S3Service

DEFAULT_MAX_PREVIEW_SIZE = 10 * 1024 * 1024

LOGGER = logging.getLogger(__name__)


class FileType(IntEnum):
    FILE = 1
    DIRECTORY = 2


@dataclass(frozen=True)
class FileStat:
    type: FileType
    ctime: float
    mtime: float
    size: int


class FileChangeType(Enum):
    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"


@dataclass(frozen=True)
class FileChangeEvent:
    type: FileChangeType
    uri: str


FileChangeListener = Callable[[list[FileChangeEvent]], None]


class S3FileSystem:
    """Exposes buckets as directories and objects as files.

    Directory listings share the :class:`S3Cache` with the browse tree. Every
    successful mutation invalidates the touched key (and so its ancestors)
    before change events are delivered.
    """

    def __init__(
        self,
        service: S3Service,
        cache: S3Cache,
        *,
        page_size: int = PAGE_SIZE,
        max_preview_size_bytes: int = DEFAULT_MAX_PREVIEW_SIZE,
        clock: Callable[[], float] | None = None,
    ):
        self._service = service
        self._cache = cache
        self.page_size = page_size
        self.max_preview_size_bytes = max_preview_size_bytes
        self._clock = clock or time.time
        self._listeners: list[FileChangeListener] = []

    def subscribe(self, listener: FileChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def stat(self, uri: str) -> FileStat:
        bucket, key = parse_s3x_uri(uri)
        if not key or key.endswith("/"):
            return self._directory_stat()

        try:
            details = self._service.head_object(bucket, key)
        except RemoteError as exc:
            if exc.kind is not ErrorKind.NOT_FOUND:
                raise self._translate(uri, exc) from exc
            with self._translated(uri):
                is_folder = self._has_folder(bucket, key)
            if is_folder:
                return self._directory_stat()
            raise ResourceNotFoundError(f"No such object: {key}", uri) from exc

        mtime = details.last_modified.timestamp() if details.last_modified else self._clock()
        return FileStat(FileType.FILE, mtime, mtime, details.size or 0)

    def read_directory(self, uri: str) -> list[tuple[str, FileType]]:
        bucket, key = parse_s3x_uri(uri)
        prefix = ensure_trailing_slash(key) if key else ""
        with self._translated(uri):
            nodes = self._list_all(bucket, prefix)

        entries: list[tuple[str, FileType]] = []
        for node in direct_children(prefix, nodes):
            if isinstance(node, FolderNode):
                entries.append((node.name, FileType.DIRECTORY))
            else:
                entries.append((node.name, FileType.FILE))
        return entries

    def create_directory(self, uri: str) -> None:
        bucket, key = parse_s3x_uri(uri)
        if not key:
            raise PermissionDeniedError("Cannot create buckets through the filesystem", uri)

        folder_key = ensure_trailing_slash(key)
        with self._translated(uri):
            self._service.create_folder(bucket, folder_key)
        self._cache.invalidate(bucket, folder_key)
        self._fire(FileChangeEvent(FileChangeType.CREATED, uri))

    def read_file(self, uri: str, *, allow_large: bool = False) -> bytes:
        bucket, key = parse_s3x_uri(uri)
        if not key or key.endswith("/"):
            raise IsDirectoryError(f"{uri} is a directory", uri)

        with self._translated(uri):
            details = self._service.head_object(bucket, key)
            size = details.size or 0
            if size > self.max_preview_size_bytes and not allow_large:
                raise FileTooLargeError(
                    f"{key} is {size} bytes, over the {self.max_preview_size_bytes} byte preview limit",
                    uri,
                    size=size,
                    limit=self.max_preview_size_bytes,
                )
            return self._service.get_object(bucket, key)

    def write_file(self, uri: str, content: bytes, *, create: bool = True, overwrite: bool = True) -> None:
        bucket, key = parse_s3x_uri(uri)
        if not key or key.endswith("/"):
            raise IsDirectoryError(f"{uri} is a directory", uri)

        with self._translated(uri):
            exists = None
            if not (create and overwrite):
                exists = self._exists(bucket, key)
            if exists and not overwrite:
                raise ResourceExistsError(f"{key} already exists", uri)
            if exists is False and not create:
                raise ResourceNotFoundError(f"No such object: {key}", uri)
            self._service.put_object(bucket, key, content)

        self._cache.invalidate(bucket, key)
        change = FileChangeType.CREATED if exists is False else FileChangeType.CHANGED
        self._fire(FileChangeEvent(change, uri))

    def delete(self, uri: str, *, recursive: bool = False) -> None:
        bucket, key = parse_s3x_uri(uri)
        if not key:
            raise PermissionDeniedError("Cannot delete buckets through the filesystem", uri)

        if self.stat(uri).type is FileType.DIRECTORY:
            folder_key = ensure_trailing_slash(key)
            if self.read_directory(uri):
                if recursive:
                    raise PermissionDeniedError("Recursive folder deletion is not supported", uri)
                raise PermissionDeniedError("Directory not empty", uri)
            with self._translated(uri):
                # an empty folder only exists through its marker object
                if not self._exists(bucket, folder_key):
                    raise ResourceNotFoundError(f"No such folder: {folder_key}", uri)
                self._service.delete_object(bucket, folder_key)
            self._cache.invalidate(bucket, folder_key)
        else:
            with self._translated(uri):
                self._service.delete_object(bucket, key)
            self._cache.invalidate(bucket, key)
        self._fire(FileChangeEvent(FileChangeType.DELETED, uri))

    def rename(self, old_uri: str, new_uri: str, *, overwrite: bool = False) -> None:
        old_bucket, old_key = parse_s3x_uri(old_uri)
        new_bucket, new_key = parse_s3x_uri(new_uri)
        if not old_key or not new_key:
            raise PermissionDeniedError("Cannot rename buckets", old_uri)
        if old_bucket != new_bucket:
            raise PermissionDeniedError("Cannot rename across buckets", old_uri)

        if self.stat(old_uri).type is FileType.DIRECTORY:
            raise PermissionDeniedError("Folder rename is not supported", old_uri)

        with self._translated(old_uri):
            if not overwrite and self._exists(new_bucket, new_key):
                raise ResourceExistsError(f"{new_key} already exists", new_uri)
            self._service.copy_object(old_bucket, old_key, new_key)
            self._cache.invalidate(new_bucket, new_key)
            self._service.delete_object(old_bucket, old_key)
            self._cache.invalidate(old_bucket, old_key)

        self._fire(
            FileChangeEvent(FileChangeType.DELETED, old_uri),
            FileChangeEvent(FileChangeType.CREATED, new_uri),
        )

    def _list_all(self, bucket: str, prefix: str) -> list[DisplayNode]:
        """Return the complete listing of ``prefix``, following continuation pages.

        A rejected continuation token restarts the listing once from the first
        page; the reset is reported to subscribers as a ``CHANGED`` event on
        the directory.
        """

        entry = self._cache.get(bucket, prefix)
        if entry is None:
            entry = self._fetch_first_page(bucket, prefix)
        restarted = False
        while entry.is_truncated and entry.continuation_token:
            try:
                result = self._service.list_objects(
                    bucket,
                    prefix,
                    entry.continuation_token,
                    max_keys=self.page_size,
                )
            except RemoteError as exc:
                if exc.kind is not ErrorKind.INVALID_CONTINUATION_TOKEN or restarted:
                    raise
                LOGGER.warning("Continuation token rejected for %s:%s, reloading", bucket, prefix)
                restarted = True
                entry = self._fetch_first_page(bucket, prefix)
                continue
            entry = self._cache.append(
                bucket,
                result.objects,
                result.prefixes,
                result.is_truncated,
                result.continuation_token,
                prefix,
            )
        if restarted:
            self._fire(FileChangeEvent(FileChangeType.CHANGED, create_s3x_uri(bucket, prefix)))
        return materialize(bucket, prefix, entry)

    def _fetch_first_page(self, bucket: str, prefix: str) -> CacheEntry:
        try:
            result = self._service.list_objects(bucket, prefix, max_keys=self.page_size)
        except RemoteError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                self._cache.invalidate(bucket, prefix or None)
            raise
        return self._cache.set(
            bucket,
            result.objects,
            result.prefixes,
            result.is_truncated,
            result.continuation_token,
            prefix,
        )

    def _has_folder(self, bucket: str, key: str) -> bool:
        folder_key = ensure_trailing_slash(key)
        return any(
            isinstance(node, FolderNode) and node.prefix == folder_key
            for node in self._list_all(bucket, get_parent_prefix(key))
        )

    def _exists(self, bucket: str, key: str) -> bool:
        try:
            self._service.head_object(bucket, key)
        except RemoteError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                return False
            raise
        return True

    def _directory_stat(self) -> FileStat:
        now = self._clock()
        return FileStat(FileType.DIRECTORY, now, now, 0)

    @contextmanager
    def _translated(self, uri: str):
        try:
            yield
        except RemoteError as exc:
            raise self._translate(uri, exc) from exc

    def _translate(self, uri: str, exc: RemoteError) -> FileSystemError:
        if exc.kind is ErrorKind.NOT_FOUND:
            return ResourceNotFoundError(str(exc), uri)
        if exc.is_auth_error:
            return PermissionDeniedError(str(exc), uri)
        LOGGER.error("S3 request for %s failed: %s", uri, exc)
        return UnavailableError(str(exc), uri)

    def _fire(self, *events: FileChangeEvent) -> None:
        batch = list(events)
        for listener in list(self._listeners):
            listener(batch)
