from __future__ import annotations
"""Application settings persistence helpers."""

from dataclasses import asdict, dataclass
import json
import logging
from pathlib import Path

LOGGER = logging.getLogger(__name__)


@dataclass
class AppSettings:
    """Simple container for persistent app settings."""

    page_size: int = 200
    cache_ttl_seconds: int = 300
    max_preview_size_bytes: int = 10 * 1024 * 1024
    upload_multipart_threshold: int = 8 * 1024 * 1024
    upload_chunk_size: int = 8 * 1024 * 1024
    upload_max_concurrency: int = 10
    remember_last_bucket: bool = False
    last_bucket: str = ""
    last_connection: str = ""


_POSITIVE_INT_FIELDS = (
    "page_size",
    "cache_ttl_seconds",
    "max_preview_size_bytes",
    "upload_multipart_threshold",
    "upload_chunk_size",
    "upload_max_concurrency",
)


def _positive_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


class SettingsStorage:
    """JSON-backed persistence for :class:`AppSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pys3x_settings.json"
        self._path = Path(storage_path)

    def load(self) -> AppSettings:
        if not self._path.exists():
            return AppSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            LOGGER.warning("Ignoring unreadable settings file %s", self._path)
            return AppSettings()
        if not isinstance(data, dict):
            return AppSettings()

        defaults = AppSettings()
        values = {
            name: _positive_int(data.get(name), getattr(defaults, name))
            for name in _POSITIVE_INT_FIELDS
        }
        remember = data.get("remember_last_bucket", defaults.remember_last_bucket)
        values["remember_last_bucket"] = remember if isinstance(remember, bool) else defaults.remember_last_bucket
        for name in ("last_bucket", "last_connection"):
            value = data.get(name)
            values[name] = value if isinstance(value, str) else ""
        return AppSettings(**values)

    def save(self, settings: AppSettings) -> None:
        payload = asdict(settings)
        for name in _POSITIVE_INT_FIELDS:
            payload[name] = max(int(payload[name]), 1)
        payload["remember_last_bucket"] = bool(settings.remember_last_bucket)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            # Persist best-effort; ignore filesystem issues.
            LOGGER.warning("Could not write settings file %s", self._path)
            return
