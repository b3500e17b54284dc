from __future__ import annotations
"""In-memory, TTL-bound cache of delimited S3 listings."""
import logging
import threading
import time
from typing import Callable, Iterable, Optional

from .models import CacheEntry, CacheStats, ListingKey, ObjectEntry, PrefixEntry
from .paths import ancestor_prefixes

DEFAULT_TTL = 5 * 60.0

LOGGER = logging.getLogger(__name__)


def _unique_by(items: Iterable, identity: Callable) -> list:
    seen = set()
    unique = []
    for item in items:
        marker = identity(item)
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(item)
    return unique


class S3Cache:
    """Stores the last fetched page(s) of each ``(bucket, prefix)`` listing.

    Entries expire lazily: staleness is only checked when :meth:`get` is
    called, or when :meth:`cleanup` is invoked explicitly. The cache never
    talks to S3 itself; callers fetch and then :meth:`set` or :meth:`append`.

    Each operation runs under a lock so it is atomic with respect to worker
    threads. Concurrent fetches of the same key are not coalesced and the
    last writer wins.
    """

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] | None = None):
        self._ttl = ttl
        self._clock = clock or time.monotonic
        self._entries: dict[ListingKey, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    @ttl.setter
    def ttl(self, value: float) -> None:
        """Applies to existing entries too, on their next read."""

        with self._lock:
            self._ttl = max(float(value), 0.0)

    def get(self, bucket: str, prefix: str | None = None) -> Optional[CacheEntry]:
        key = self._make_key(bucket, prefix)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_stale(entry):
                del self._entries[key]
                LOGGER.debug("Evicted stale listing for %s:%s", key.bucket, key.prefix)
                return None
            return entry

    def set(
        self,
        bucket: str,
        objects: Iterable[ObjectEntry],
        prefixes: Iterable[PrefixEntry],
        is_truncated: bool,
        continuation_token: str | None = None,
        prefix: str | None = None,
    ) -> CacheEntry:
        key = self._make_key(bucket, prefix)
        entry = CacheEntry(
            objects=list(objects),
            prefixes=list(prefixes),
            last_fetched=self._clock(),
            is_truncated=is_truncated,
            continuation_token=continuation_token,
        )
        with self._lock:
            self._entries[key] = entry
        return entry

    def append(
        self,
        bucket: str,
        objects: Iterable[ObjectEntry],
        prefixes: Iterable[PrefixEntry],
        is_truncated: bool,
        continuation_token: str | None = None,
        prefix: str | None = None,
    ) -> CacheEntry:
        """Merge a continuation page into the entry for ``(bucket, prefix)``.

        Duplicates are dropped by object key / folder prefix, keeping the
        first occurrence, so replaying the same page is harmless. Truncation
        state always comes from the new page.
        """

        key = self._make_key(bucket, prefix)
        with self._lock:
            existing = self._entries.get(key)
            if existing is None:
                merged_objects = _unique_by(objects, lambda obj: obj.key)
                merged_prefixes = _unique_by(prefixes, lambda pref: pref.prefix)
            else:
                merged_objects = _unique_by([*existing.objects, *objects], lambda obj: obj.key)
                merged_prefixes = _unique_by([*existing.prefixes, *prefixes], lambda pref: pref.prefix)
            entry = CacheEntry(
                objects=merged_objects,
                prefixes=merged_prefixes,
                last_fetched=self._clock(),
                is_truncated=is_truncated,
                continuation_token=continuation_token,
            )
            self._entries[key] = entry
        return entry

    def invalidate(self, bucket: str, prefix: str | None = None) -> None:
        """Drop cached listings affected by a change at ``prefix``.

        With a prefix (folder or object key) the exact key and every ancestor
        folder up to the bucket root are removed; siblings and descendants
        stay. Without one, every entry of ``bucket`` is removed.
        """

        self._validate_bucket(bucket)
        with self._lock:
            if prefix:
                targets = [ListingKey(bucket, prefix)]
                targets.extend(ListingKey(bucket, parent) for parent in ancestor_prefixes(prefix))
            else:
                targets = [key for key in self._entries if key.bucket == bucket]
            removed = 0
            for key in targets:
                if self._entries.pop(key, None) is not None:
                    removed += 1
        LOGGER.debug("Invalidated %d listing(s) for %s:%s", removed, bucket, prefix or "")

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        """Remove every stale entry and return how many were dropped."""

        with self._lock:
            stale = [key for key, entry in self._entries.items() if self._is_stale(entry)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def search(self, bucket: str, term: str, prefix: str | None = None) -> list[ObjectEntry]:
        entry = self.get(bucket, prefix)
        if entry is None:
            return []
        needle = term.lower()
        return [obj for obj in entry.objects if needle in obj.key.lower()]

    def get_all_cached_objects(self, bucket: str) -> list[ObjectEntry]:
        self._validate_bucket(bucket)
        with self._lock:
            collected = [
                obj
                for key, entry in self._entries.items()
                if key.bucket == bucket
                for obj in entry.objects
            ]
        return _unique_by(collected, lambda obj: obj.key)

    def get_stats(self) -> CacheStats:
        with self._lock:
            keys = list(self._entries)
        return CacheStats(size=len(keys), keys=keys)

    def _is_stale(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.last_fetched > self._ttl

    def _make_key(self, bucket: str, prefix: str | None) -> ListingKey:
        self._validate_bucket(bucket)
        return ListingKey(bucket, prefix or "")

    @staticmethod
    def _validate_bucket(bucket: str) -> None:
        if not bucket:
            raise ValueError("bucket must be a non-empty string")
