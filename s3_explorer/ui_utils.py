from __future__ import annotations
"""UI-agnostic helpers for formatting nodes and package metadata."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from importlib.metadata import PackageNotFoundError, metadata, version

from .models import BucketNode, DisplayNode, FolderNode, LoadMoreNode, ObjectNode
from .nodes import node_label, node_uri

DIST_NAME = "pys3x"


@dataclass(frozen=True)
class PackageInfo:
    name: str
    version: str
    summary: str
    homepage: str | None
    repository: str | None
    author: str | None


class Collapsible(Enum):
    NONE = "none"
    COLLAPSED = "collapsed"


@dataclass(frozen=True)
class TreeItem:
    """Everything a tree widget needs to render one node."""

    label: str
    collapsible: Collapsible
    context_value: str
    description: str = ""
    tooltip: str = ""
    uri: str | None = None
    command: str | None = None


def load_package_info(dist_name: str = DIST_NAME) -> PackageInfo:
    try:
        distribution_metadata = metadata(dist_name)
        package_version = version(dist_name)
    except PackageNotFoundError:
        return PackageInfo(
            name="S3 Explorer",
            version="",
            summary="Browse buckets and objects in S3-compatible object stores.",
            homepage=None,
            repository=None,
            author=None,
        )
    summary = distribution_metadata.get("Summary") or ""
    author = distribution_metadata.get("Author") or distribution_metadata.get("Author-email")
    homepage = distribution_metadata.get("Home-page")
    repository = None
    for entry in distribution_metadata.get_all("Project-URL") or []:
        label, _, link = entry.partition(",")
        label = label.strip().lower()
        url = link.strip()
        if label == "repository":
            repository = url
        elif label == "homepage" and not homepage:
            homepage = url
    return PackageInfo(
        name=distribution_metadata.get("Name"),
        version=package_version,
        summary=summary,
        homepage=homepage or None,
        repository=repository,
        author=author or None,
    )


def format_size(size: int | None) -> str:
    if size is None:
        return "-"
    suffixes = ["B", "KB", "MB", "GB", "TB"]
    value = float(max(size, 0))
    for suffix in suffixes:
        if value < 1024 or suffix == suffixes[-1]:
            return f"{value:.1f} {suffix}" if suffix != "B" else f"{int(value)} {suffix}"
        value /= 1024
    return f"{size} B"


def format_last_modified(last_modified: object) -> str:
    if not last_modified:
        return "-"
    if isinstance(last_modified, datetime):
        return last_modified.strftime("%Y-%m-%d %H:%M:%S %Z").strip() or last_modified.isoformat()
    try:
        return last_modified.strftime("%Y-%m-%d %H:%M:%S %Z").strip() or str(last_modified)
    except AttributeError:
        return str(last_modified)


def build_tree_item(node: DisplayNode) -> TreeItem:
    label = node_label(node)
    uri = node_uri(node)
    if isinstance(node, BucketNode):
        return TreeItem(label, Collapsible.COLLAPSED, "bucket", tooltip=f"Bucket: {node.bucket}", uri=uri)
    if isinstance(node, FolderNode):
        return TreeItem(label, Collapsible.COLLAPSED, "prefix", tooltip=f"{node.bucket}/{node.prefix}", uri=uri)
    if isinstance(node, ObjectNode):
        tooltip = "\n".join(
            [
                f"{node.bucket}/{node.key}",
                f"Size: {format_size(node.size)}",
                f"Modified: {format_last_modified(node.last_modified)}",
            ]
        )
        return TreeItem(
            label,
            Collapsible.NONE,
            "object",
            description=format_size(node.size),
            tooltip=tooltip,
            uri=uri,
            command="open",
        )
    if isinstance(node, LoadMoreNode):
        return TreeItem(
            label,
            Collapsible.NONE,
            "loadMore",
            tooltip="Fetch the next page of results",
            command="loadMore",
        )
    raise TypeError(f"Unsupported node type: {type(node).__name__}")
