from __future__ import annotations
"""Connection profile models and persistence."""
from dataclasses import dataclass
import json
import logging
from pathlib import Path

import keyring
from keyring.errors import KeyringError

SERVICE_NAME = "pys3x"

LOGGER = logging.getLogger(__name__)


@dataclass
class ConnectionProfile:
    """A saved endpoint for AWS S3, Cloudflare R2, MinIO or similar stores."""

    name: str
    endpoint_url: str
    access_key: str
    secret_key: str
    region: str = ""
    force_path_style: bool = False

    def public_fields(self) -> dict[str, object]:
        return {
            "name": self.name,
            "endpoint_url": self.endpoint_url,
            "access_key": self.access_key,
            "region": self.region,
            "force_path_style": self.force_path_style,
        }


class KeychainStore:
    """Keeps secret keys in the OS keychain, never on disk."""

    def __init__(self, service_name: str = SERVICE_NAME):
        self._service_name = service_name

    def get_secret(self, profile_name: str) -> str:
        if not profile_name:
            return ""
        try:
            return keyring.get_password(self._service_name, profile_name) or ""
        except KeyringError:
            LOGGER.warning("Keychain lookup failed for profile '%s'", profile_name)
            return ""

    def set_secret(self, profile_name: str, secret_key: str) -> None:
        if not profile_name:
            return
        if not secret_key:
            self.delete_secret(profile_name)
            return
        try:
            keyring.set_password(self._service_name, profile_name, secret_key)
        except KeyringError:
            LOGGER.warning("Keychain write failed for profile '%s'", profile_name)

    def delete_secret(self, profile_name: str) -> None:
        if not profile_name:
            return
        try:
            keyring.delete_password(self._service_name, profile_name)
        except KeyringError:
            return


class ProfileStorage:
    """JSON file of profiles; secrets live in :class:`KeychainStore`."""

    def __init__(self, storage_path: str | Path | None = None, keychain: KeychainStore | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".pys3x_connections.json"
        self._path = Path(storage_path)
        self._keychain = keychain or KeychainStore()

    def load(self) -> list[ConnectionProfile]:
        data = self._read_data()
        profiles: list[ConnectionProfile] = []
        saw_plaintext = False
        for entry in data:
            try:
                name = entry["name"]
                endpoint_url = entry["endpoint_url"]
                access_key = entry["access_key"]
            except (KeyError, TypeError):
                continue
            secret_key = entry.get("secret_key", "")
            if secret_key:
                # migrate secrets written by older versions into the keychain
                saw_plaintext = True
                self._keychain.set_secret(name, secret_key)
            else:
                secret_key = self._keychain.get_secret(name)
            profiles.append(
                ConnectionProfile(
                    name=name,
                    endpoint_url=endpoint_url,
                    access_key=access_key,
                    secret_key=secret_key,
                    region=str(entry.get("region") or ""),
                    force_path_style=bool(entry.get("force_path_style", False)),
                )
            )
        if saw_plaintext:
            self._write_data([profile.public_fields() for profile in profiles])
        return profiles

    def save(self, profiles: list[ConnectionProfile]) -> None:
        existing_names = {
            entry.get("name") for entry in self._read_data() if isinstance(entry, dict) and entry.get("name")
        }
        for profile in profiles:
            self._keychain.set_secret(profile.name, profile.secret_key)
        for name in existing_names - {profile.name for profile in profiles}:
            self._keychain.delete_secret(name)
        self._write_data([profile.public_fields() for profile in profiles])

    def _read_data(self) -> list:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        return data if isinstance(data, list) else []

    def _write_data(self, data: list[dict[str, object]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
