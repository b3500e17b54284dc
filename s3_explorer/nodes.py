from __future__ import annotations
"""Turns cached or freshly fetched listings into display nodes."""
from typing import Iterable, Sequence, Union

from .models import (
    BucketNode,
    CacheEntry,
    DisplayNode,
    FolderNode,
    ListingResult,
    LoadMoreNode,
    ObjectNode,
)
from .paths import create_s3x_uri, get_relative_path, remove_trailing_slash

Listing = Union[CacheEntry, ListingResult]


def bucket_nodes(names: Iterable[str]) -> list[BucketNode]:
    return [BucketNode(bucket=name) for name in names]


def materialize(bucket: str, prefix: str | None, listing: Listing) -> list[DisplayNode]:
    """Render a listing as folders, then objects, then an optional load-more node.

    The same input always yields the same nodes, whether it came from the
    cache or straight from the network.
    """

    parent = prefix or ""
    nodes: list[DisplayNode] = []
    for prefix_entry in listing.prefixes:
        nodes.append(
            FolderNode(
                bucket=bucket,
                prefix=prefix_entry.prefix,
                name=remove_trailing_slash(get_relative_path(prefix_entry.prefix, parent)),
            )
        )
    for obj in listing.objects:
        nodes.append(
            ObjectNode(
                bucket=bucket,
                key=obj.key,
                name=get_relative_path(obj.key, parent),
                size=obj.size,
                last_modified=obj.last_modified,
            )
        )
    if listing.is_truncated and listing.continuation_token:
        nodes.append(
            LoadMoreNode(bucket=bucket, continuation_token=listing.continuation_token, prefix=parent)
        )
    return nodes


def _is_single_segment(name: str) -> bool:
    return bool(name) and "/" not in name


def direct_children(prefix: str | None, nodes: Sequence[DisplayNode]) -> list[DisplayNode]:
    """Keep only nodes that sit exactly one path segment below ``prefix``."""

    parent = prefix or ""
    children: list[DisplayNode] = []
    for node in nodes:
        if isinstance(node, FolderNode):
            if not node.prefix.startswith(parent):
                continue
            if _is_single_segment(remove_trailing_slash(node.prefix[len(parent):])):
                children.append(node)
        elif isinstance(node, ObjectNode):
            if not node.key.startswith(parent):
                continue
            if _is_single_segment(node.key[len(parent):]):
                children.append(node)
    return children


def node_label(node: DisplayNode) -> str:
    if isinstance(node, (BucketNode, LoadMoreNode)):
        return node.name
    if isinstance(node, FolderNode):
        return node.name or remove_trailing_slash(node.prefix)
    if isinstance(node, ObjectNode):
        return node.name or node.key
    raise TypeError(f"Unsupported node type: {type(node).__name__}")


def node_uri(node: DisplayNode) -> str | None:
    if isinstance(node, BucketNode):
        return create_s3x_uri(node.bucket)
    if isinstance(node, FolderNode):
        return create_s3x_uri(node.bucket, node.prefix)
    if isinstance(node, ObjectNode):
        return create_s3x_uri(node.bucket, node.key)
    if isinstance(node, LoadMoreNode):
        return None
    raise TypeError(f"Unsupported node type: {type(node).__name__}")
