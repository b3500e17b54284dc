from __future__ import annotations
"""Composition root: owns the cache and wires it to the S3 consumers."""
import logging
import os
from typing import Callable, Iterable, Optional

from .cache import S3Cache
from .errors import NotConnectedError, UnsupportedOperationError
from .explorer import S3Explorer
from .filesystem import S3FileSystem
from .models import CacheStats, DisplayNode, LoadMoreNode, ObjectDetails, ObjectEntry
from .paths import ensure_trailing_slash, join_path, parse_s3x_uri
from .profiles import ConnectionProfile, ProfileStorage
from .progress import CancellationToken, ProgressTracker, run_batch
from .services import SEARCH_LIMIT, S3Service
from .settings import AppSettings

LOGGER = logging.getLogger(__name__)


class S3ExplorerController:
    """Coordinates user actions with the :class:`S3Service` and the listing cache.

    The controller creates the one :class:`S3Cache` both the tree and the
    filesystem read through, and invalidates it after every successful
    mutation it performs.
    """

    def __init__(
        self,
        service: S3Service | None = None,
        storage: ProfileStorage | None = None,
        settings: AppSettings | None = None,
        cache: S3Cache | None = None,
    ):
        self._service = service or S3Service()
        self._storage = storage or ProfileStorage()
        self._settings = settings or AppSettings()
        self._cache = cache or S3Cache(ttl=self._settings.cache_ttl_seconds)
        self._profiles: list[ConnectionProfile] = self._storage.load()
        self._selected_profile: str | None = None
        self.explorer = S3Explorer(self._service, self._cache, page_size=self._settings.page_size)
        self.filesystem = S3FileSystem(
            self._service,
            self._cache,
            page_size=self._settings.page_size,
            max_preview_size_bytes=self._settings.max_preview_size_bytes,
        )

    @property
    def is_connected(self) -> bool:
        return self._service.is_connected

    @property
    def selected_profile(self) -> str | None:
        return self._selected_profile

    @property
    def cache(self) -> S3Cache:
        return self._cache

    def apply_settings(self, settings: AppSettings) -> None:
        self._settings = settings
        self._cache.ttl = settings.cache_ttl_seconds
        self.explorer.page_size = settings.page_size
        self.filesystem.page_size = settings.page_size
        self.filesystem.max_preview_size_bytes = settings.max_preview_size_bytes

    def list_profiles(self) -> list[ConnectionProfile]:
        return list(self._profiles)

    def save_profile(self, profile: ConnectionProfile, *, original_name: str | None = None) -> None:
        if original_name and original_name != profile.name:
            self._profiles = [p for p in self._profiles if p.name != original_name]
        self._upsert_profile(profile)
        self._persist_profiles()

    def delete_profile(self, name: str) -> None:
        before = len(self._profiles)
        self._profiles = [p for p in self._profiles if p.name != name]
        if len(self._profiles) == before:
            raise ValueError(f"Profile '{name}' does not exist")
        if self._selected_profile == name:
            self._selected_profile = None
        self._persist_profiles()

    def get_profile(self, name: str) -> ConnectionProfile:
        for profile in self._profiles:
            if profile.name == name:
                return profile
        raise ValueError(f"Profile '{name}' does not exist")

    def connect_with_profile(self, name: str) -> list[str]:
        profile = self.get_profile(name)
        buckets = self.connect(
            endpoint_url=profile.endpoint_url,
            access_key=profile.access_key,
            secret_key=profile.secret_key,
            region=profile.region or None,
            force_path_style=profile.force_path_style,
        )
        self._selected_profile = name
        return buckets

    def connect(
        self,
        *,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        region: str | None = None,
        force_path_style: bool = False,
    ) -> list[str]:
        buckets = self._service.connect(
            endpoint_url=endpoint_url,
            access_key=access_key,
            secret_key=secret_key,
            region=region,
            force_path_style=force_path_style,
        )
        # listings from a previous endpoint must never leak into this one
        self._cache.invalidate_all()
        LOGGER.debug("Connected to %s (%d buckets)", endpoint_url or "AWS", len(buckets))
        return buckets

    def disconnect(self) -> None:
        self._cache.invalidate_all()
        self._service.close()
        self._selected_profile = None

    def refresh_buckets(self) -> list[str]:
        self._require_connection()
        return self._service.list_buckets()

    def list_children(self, node: DisplayNode | None = None) -> list[DisplayNode]:
        self._require_connection()
        return self.explorer.get_children(node)

    def load_more(self, node: LoadMoreNode) -> list[DisplayNode]:
        self._require_connection()
        return self.explorer.load_more(node)

    def refresh(self, node: DisplayNode | None = None) -> None:
        self.explorer.refresh(node)

    def search_objects(
        self,
        bucket_name: str,
        term: str,
        prefix: str | None = None,
        *,
        cached_only: bool = False,
        limit: int = SEARCH_LIMIT,
    ) -> list[ObjectEntry]:
        """Find objects whose key contains ``term``, ignoring case.

        A fresh, complete cached listing of ``prefix`` with no sub-folders
        answers without a request. ``cached_only`` searches whatever the cache
        holds for the bucket instead of scanning it.
        """

        needle = term.strip()
        if not needle:
            raise ValueError("Search term cannot be empty")
        scope = prefix or ""
        if cached_only:
            lowered = needle.lower()
            return [
                obj
                for obj in self._cache.get_all_cached_objects(bucket_name)
                if obj.key.startswith(scope) and lowered in obj.key.lower()
            ][:limit]

        cached = self._cache.get(bucket_name, scope)
        if cached is not None and not cached.is_truncated and not cached.prefixes:
            LOGGER.debug("Answering search in %s:%s from cache", bucket_name, scope)
            return self._cache.search(bucket_name, needle, scope)[:limit]

        self._require_connection()
        return self._service.search_objects(bucket_name, needle, scope, limit=limit)

    def get_object_details(self, *, bucket_name: str, key: str) -> ObjectDetails:
        self._require_connection()
        return self._service.head_object(bucket_name, key)

    def create_folder(self, *, bucket_name: str, prefix: str, name: str) -> str:
        self._require_connection()
        folder_name = name.strip().strip("/")
        if not folder_name:
            raise ValueError("Folder name cannot be empty")
        folder_key = ensure_trailing_slash(join_path(prefix, folder_name))
        self._service.create_folder(bucket_name, folder_key)
        self._cache.invalidate(bucket_name, folder_key)
        return folder_key

    def upload_files(
        self,
        *,
        bucket_name: str,
        prefix: str,
        source_paths: Iterable[str],
        token: CancellationToken | None = None,
        tracker: ProgressTracker | None = None,
    ) -> list[str]:
        """Upload local files below ``prefix``; returns the uploaded source paths.

        Directories are rejected. Files uploaded before a cancellation stay in
        the bucket.
        """

        self._require_connection()
        paths = list(source_paths)
        for path in paths:
            if os.path.isdir(path):
                raise UnsupportedOperationError(f"Folder upload is not supported: {path}")

        def upload(path: str) -> None:
            key = join_path(prefix, os.path.basename(path))
            self._service.upload_object(
                bucket_name=bucket_name,
                key=key,
                source_path=path,
                multipart_threshold=self._settings.upload_multipart_threshold,
                multipart_chunk_size=self._settings.upload_chunk_size,
                max_concurrency=self._settings.upload_max_concurrency,
                cancel_requested=token,
            )
            self._cache.invalidate(bucket_name, key)

        return run_batch(paths, upload, tracker=tracker, token=token)

    def download_object(
        self,
        *,
        bucket_name: str,
        key: str,
        destination: str,
        progress_callback: Optional[Callable[[int], None]] = None,
        cancel_requested: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._require_connection()
        self._service.download_object(
            bucket_name=bucket_name,
            key=key,
            destination=destination,
            progress_callback=progress_callback,
            cancel_requested=cancel_requested,
        )

    def delete_objects(
        self,
        *,
        bucket_name: str,
        keys: Iterable[str],
        token: CancellationToken | None = None,
        tracker: ProgressTracker | None = None,
    ) -> list[str]:
        """Delete each key in turn; stops issuing deletes once cancelled.

        Keys deleted before the cancellation are not restored.
        """

        self._require_connection()
        targets = list(keys)
        for key in targets:
            if key.endswith("/"):
                raise UnsupportedOperationError(f"Folder deletion is not supported: {key}")

        def delete(key: str) -> None:
            self._service.delete_object(bucket_name, key)
            self._cache.invalidate(bucket_name, key)

        return run_batch(targets, delete, tracker=tracker, token=token)

    def copy_object(self, *, bucket_name: str, source_key: str, destination_key: str) -> None:
        self._require_connection()
        self._check_single_object(source_key, destination_key)
        self._service.copy_object(bucket_name, source_key, destination_key)
        self._cache.invalidate(bucket_name, destination_key)

    def rename_object(self, *, bucket_name: str, source_key: str, destination_key: str) -> None:
        self._require_connection()
        self._check_single_object(source_key, destination_key)
        self._service.copy_object(bucket_name, source_key, destination_key)
        self._cache.invalidate(bucket_name, destination_key)
        self._service.delete_object(bucket_name, source_key)
        self._cache.invalidate(bucket_name, source_key)

    def move_between(self, source_uri: str, destination_uri: str) -> None:
        """Move an object addressed by ``s3x://`` URIs within one bucket."""

        source_bucket, source_key = parse_s3x_uri(source_uri)
        destination_bucket, destination_key = parse_s3x_uri(destination_uri)
        if source_bucket != destination_bucket:
            raise UnsupportedOperationError("Moving objects across buckets is not supported")
        if not destination_key or destination_key.endswith("/"):
            destination_key = join_path(destination_key, source_key.rsplit("/", 1)[-1])
        if source_key == destination_key:
            return
        self.rename_object(bucket_name=source_bucket, source_key=source_key, destination_key=destination_key)

    def sweep_cache(self) -> int:
        removed = self._cache.cleanup()
        if removed:
            LOGGER.debug("Swept %d stale listing(s)", removed)
        return removed

    def cache_stats(self) -> CacheStats:
        return self._cache.get_stats()

    def _check_single_object(self, source_key: str, destination_key: str) -> None:
        if not source_key or not destination_key:
            raise ValueError("Object keys cannot be empty")
        if source_key.endswith("/") or destination_key.endswith("/"):
            raise UnsupportedOperationError("Folder copy and move are not supported")

    def _require_connection(self) -> None:
        if not self._service.is_connected:
            raise NotConnectedError("Not connected to S3")

    def _upsert_profile(self, profile: ConnectionProfile) -> None:
        for idx, existing in enumerate(self._profiles):
            if existing.name == profile.name:
                self._profiles[idx] = profile
                break
        else:
            self._profiles.append(profile)

    def _persist_profiles(self) -> None:
        self._storage.save(self._profiles)
