from __future__ import annotations
"""Browse-tree consumer of the listing cache."""
import logging
from typing import Callable, Optional

from .cache import S3Cache
from .errors import ErrorKind, ListingReloadedError, RemoteError
from .models import BucketNode, DisplayNode, FolderNode, LoadMoreNode, ObjectNode
from .nodes import bucket_nodes, materialize
from .paths import get_path_segments
from .services import PAGE_SIZE, S3Service
from .ui_utils import TreeItem, build_tree_item

ChangeListener = Callable[[Optional[DisplayNode]], None]

LOGGER = logging.getLogger(__name__)


class S3Explorer:
    """Resolves tree children through the cache, fetching on a miss."""

    def __init__(self, service: S3Service, cache: S3Cache, *, page_size: int = PAGE_SIZE):
        self._service = service
        self._cache = cache
        self._page_size = page_size
        self._listeners: list[ChangeListener] = []

    @property
    def page_size(self) -> int:
        return self._page_size

    @page_size.setter
    def page_size(self, value: int) -> None:
        self._page_size = max(int(value), 1)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def refresh(self, node: DisplayNode | None = None) -> None:
        if node is None:
            self._cache.invalidate_all()
        elif isinstance(node, BucketNode):
            self._cache.invalidate(node.bucket)
        elif isinstance(node, FolderNode):
            self._cache.invalidate(node.bucket, node.prefix)
        self._fire(node)

    def get_tree_item(self, node: DisplayNode) -> TreeItem:
        return build_tree_item(node)

    def get_children(self, node: DisplayNode | None = None) -> list[DisplayNode]:
        if node is None:
            return bucket_nodes(self._service.list_buckets())
        if isinstance(node, BucketNode):
            return self._get_contents(node.bucket, "")
        if isinstance(node, FolderNode):
            return self._get_contents(node.bucket, node.prefix)
        if isinstance(node, (ObjectNode, LoadMoreNode)):
            return []
        raise TypeError(f"Unsupported node type: {type(node).__name__}")

    def load_more(self, node: LoadMoreNode) -> list[DisplayNode]:
        """Fetch the page behind ``node`` and return the merged listing.

        If the token is rejected the listing is reloaded from its first page,
        listeners are notified and :class:`ListingReloadedError` is raised.
        """

        try:
            nodes = self._get_contents(node.bucket, node.prefix, node.continuation_token)
        except ListingReloadedError:
            self._fire(None)
            raise
        self._fire(None)
        return nodes

    def find_node(self, bucket: str, key: str | None = None) -> DisplayNode | None:
        """Locate the node for ``bucket`` or ``bucket/key`` by walking listings."""

        if not key:
            for candidate in self.get_children(None):
                if candidate.bucket == bucket:
                    return candidate
            return None

        parent = ""
        segments = get_path_segments(key)
        for depth in range(len(segments)):
            is_last = depth == len(segments) - 1
            target = "/".join(segments[: depth + 1])
            found = None
            for child in self._all_children(bucket, parent):
                if isinstance(child, FolderNode) and child.prefix == f"{target}/":
                    found = child
                elif is_last and isinstance(child, ObjectNode) and child.key == target:
                    found = child
                if found is not None:
                    break
            if found is None:
                return None
            if is_last:
                return found
            parent = f"{target}/"
        return None

    def _all_children(self, bucket: str, prefix: str) -> list[DisplayNode]:
        nodes = self._get_contents(bucket, prefix)
        while nodes and isinstance(nodes[-1], LoadMoreNode):
            nodes = self._get_contents(bucket, prefix, nodes[-1].continuation_token)
        return nodes

    def _get_contents(
        self,
        bucket: str,
        prefix: str,
        continuation_token: str | None = None,
        *,
        use_cache: bool = True,
    ) -> list[DisplayNode]:
        if continuation_token is None and use_cache:
            cached = self._cache.get(bucket, prefix)
            if cached is not None:
                LOGGER.debug("Cache hit for %s:%s", bucket, prefix)
                return materialize(bucket, prefix, cached)

        try:
            result = self._service.list_objects(
                bucket,
                prefix,
                continuation_token,
                max_keys=self._page_size,
            )
        except RemoteError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                self._cache.invalidate(bucket, prefix or None)
            elif exc.kind is ErrorKind.INVALID_CONTINUATION_TOKEN and continuation_token:
                LOGGER.warning(
                    "Continuation token rejected for %s:%s, reloading first page",
                    bucket,
                    prefix,
                )
                nodes = self._get_contents(bucket, prefix, use_cache=False)
                raise ListingReloadedError(bucket, prefix, nodes, exc) from exc
            raise

        if continuation_token:
            entry = self._cache.append(
                bucket,
                result.objects,
                result.prefixes,
                result.is_truncated,
                result.continuation_token,
                prefix,
            )
        else:
            entry = self._cache.set(
                bucket,
                result.objects,
                result.prefixes,
                result.is_truncated,
                result.continuation_token,
                prefix,
            )
        return materialize(bucket, prefix, entry)

    def _fire(self, node: DisplayNode | None) -> None:
        for listener in list(self._listeners):
            listener(node)
