from __future__ import annotations
"""Data models representing S3 listings, cache entries and display nodes."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union


@dataclass(frozen=True)
class ListingKey:
    """Identifies one cached listing: a bucket plus an optional folder prefix."""

    bucket: str
    prefix: str = ""


@dataclass(frozen=True)
class ObjectEntry:
    """A single remote object. Identity is ``key``."""

    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    storage_class: Optional[str] = None


@dataclass(frozen=True)
class PrefixEntry:
    """A virtual folder synthesized by a delimited listing."""

    prefix: str


@dataclass
class ListingResult:
    """One page returned by a ``list_objects`` call."""

    objects: list[ObjectEntry] = field(default_factory=list)
    prefixes: list[PrefixEntry] = field(default_factory=list)
    is_truncated: bool = False
    continuation_token: Optional[str] = None


@dataclass
class CacheEntry:
    """Last known listing state for a :class:`ListingKey`."""

    objects: list[ObjectEntry] = field(default_factory=list)
    prefixes: list[PrefixEntry] = field(default_factory=list)
    last_fetched: float = 0.0
    is_truncated: bool = False
    continuation_token: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.is_truncated:
            self.continuation_token = None


@dataclass(frozen=True)
class CacheStats:
    size: int
    keys: list[ListingKey]


@dataclass
class ObjectDetails:
    """Metadata about a single S3 object."""

    bucket: str
    key: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
    storage_class: Optional[str] = None
    etag: Optional[str] = None
    content_type: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


class NodeKind(Enum):
    BUCKET = "bucket"
    FOLDER = "folder"
    OBJECT = "object"
    LOAD_MORE = "load_more"


@dataclass(frozen=True)
class BucketNode:
    bucket: str

    kind = NodeKind.BUCKET

    @property
    def name(self) -> str:
        return self.bucket


@dataclass(frozen=True)
class FolderNode:
    bucket: str
    prefix: str
    name: str = ""

    kind = NodeKind.FOLDER


@dataclass(frozen=True)
class ObjectNode:
    bucket: str
    key: str
    name: str = ""
    size: int = 0
    last_modified: Optional[datetime] = None

    kind = NodeKind.OBJECT


@dataclass(frozen=True)
class LoadMoreNode:
    """Sentinel asking for the next page of ``(bucket, prefix)``."""

    bucket: str
    continuation_token: str
    prefix: str = ""

    kind = NodeKind.LOAD_MORE

    @property
    def name(self) -> str:
        return "Load more..."


DisplayNode = Union[BucketNode, FolderNode, ObjectNode, LoadMoreNode]
