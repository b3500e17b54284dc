from __future__ import annotations
"""Helpers for S3 keys, folder prefixes and ``s3x://`` URIs."""
import re

URI_SCHEME = "s3x"
MAX_KEY_LENGTH = 1024

TEXT_EXTENSIONS = {
    "txt", "md", "markdown", "rst", "csv", "tsv", "log", "json", "jsonl", "yaml", "yml",
    "toml", "ini", "cfg", "conf", "xml", "html", "htm", "css", "scss", "js", "mjs", "ts",
    "tsx", "jsx", "py", "rb", "go", "rs", "java", "kt", "c", "h", "cpp", "hpp", "cs",
    "php", "sh", "bash", "zsh", "sql", "env", "properties", "svg",
}
IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "bmp", "webp", "svg", "ico", "tif", "tiff"}

_URI_PATTERN = re.compile(rf"^{URI_SCHEME}://([^/]+)/?(.*)$")


def normalize_key(key: str) -> str:
    """Strip a single leading slash."""
    return key[1:] if key.startswith("/") else key


def join_path(*parts: str) -> str:
    cleaned = [part.strip("/") for part in parts if part and part.strip("/")]
    return "/".join(cleaned)


def ensure_trailing_slash(path: str) -> str:
    return path if path.endswith("/") else f"{path}/"


def remove_trailing_slash(path: str) -> str:
    return path[:-1] if path.endswith("/") else path


def is_folder(key: str) -> bool:
    return key.endswith("/")


def get_path_segments(key: str) -> list[str]:
    return [segment for segment in key.split("/") if segment]


def get_path_depth(key: str) -> int:
    return len(get_path_segments(key))


def get_parent_prefix(key: str) -> str:
    segments = get_path_segments(key)
    if len(segments) <= 1:
        return ""
    return "/".join(segments[:-1]) + "/"


def get_file_name(key: str) -> str:
    if key.endswith("/"):
        return ""
    segments = get_path_segments(key)
    return segments[-1] if segments else ""


def ancestor_prefixes(key: str) -> list[str]:
    """Return the folder prefixes above ``key``, nearest first, ending at the root.

    ``a/b/c.txt`` yields ``["a/b/", "a/", ""]`` and ``a/b/`` yields ``["a/", ""]``.
    """

    segments = get_path_segments(key)
    return ["/".join(segments[:depth]) + "/" if depth else "" for depth in range(len(segments) - 1, -1, -1)]


def is_child_of(key: str, parent: str) -> bool:
    if not parent:
        return True
    return key.startswith(ensure_trailing_slash(parent))


def get_relative_path(key: str, parent: str) -> str:
    if not parent or not is_child_of(key, parent):
        return key
    return key[len(ensure_trailing_slash(parent)):]


def create_s3x_uri(bucket: str, key: str = "") -> str:
    return f"{URI_SCHEME}://{bucket}/{normalize_key(key)}"


def parse_s3x_uri(uri: str) -> tuple[str, str]:
    """Split ``s3x://bucket/key`` into ``(bucket, key)``."""

    match = _URI_PATTERN.match(uri)
    if not match:
        raise ValueError(f"Invalid S3X URI: {uri}")
    return match.group(1), match.group(2)


def generate_unique_key(key: str, existing_keys) -> str:
    existing = set(existing_keys)
    if key not in existing:
        return key
    folder = get_parent_prefix(key)
    name = get_file_name(key)
    stem, dot, extension = name.rpartition(".")
    if not stem:
        stem, dot, extension = name, "", ""
    counter = 1
    while True:
        candidate = f"{folder}{stem} ({counter}){dot}{extension}"
        if candidate not in existing:
            return candidate
        counter += 1


def get_file_extension(key: str) -> str:
    name = get_file_name(key)
    stem, dot, extension = name.rpartition(".")
    if not dot or not stem:
        return ""
    return extension.lower()


def is_text_file(key: str) -> bool:
    return get_file_extension(key) in TEXT_EXTENSIONS


def is_image_file(key: str) -> bool:
    return get_file_extension(key) in IMAGE_EXTENSIONS


def is_valid_s3_key(key: str) -> bool:
    if not key or len(key.encode("utf-8")) > MAX_KEY_LENGTH:
        return False
    if key.startswith("/") or "//" in key:
        return False
    return True


def sanitize_s3_key(key: str) -> str:
    cleaned = re.sub(r"/{2,}", "/", key).lstrip("/")
    if len(cleaned) <= MAX_KEY_LENGTH:
        return cleaned
    extension = get_file_extension(cleaned)
    if extension and len(extension) + 1 < MAX_KEY_LENGTH:
        return cleaned[: MAX_KEY_LENGTH - len(extension) - 1] + "." + extension
    return cleaned[:MAX_KEY_LENGTH]
