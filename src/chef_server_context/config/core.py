"""Core configuration store

This module provides the ChefConfig model and the ConfigStore handle that
holds the live configuration. A store is swapped wholesale through
snapshot/restore rather than edited key by key, so the live state always
equals either the baseline, a parsed file merged onto it, or a snapshot that
was taken earlier.
"""

import copy
import json
import os
import threading
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import ConfigLoadError, ConfigurationError
from ..logging_base import get_logger
from ..protocols import ConfigSource

logger = get_logger(__name__)

# Keys whose relative values are resolved against the config file's directory
PATH_KEYS = ("client_key", "encrypted_data_bag_secret")


class ChefConfig(BaseModel):
    """Connection and credential settings for acting as a Chef client

    Unknown keys found in a config file are kept as extra fields so that a
    snapshot reproduces the file exactly.
    """

    model_config = ConfigDict(
        extra="allow",
        str_strip_whitespace=True,
    )

    chef_server_url: str = Field(default="https://localhost:443")
    node_name: str | None = Field(default=None)
    client_key: str | None = Field(default="/etc/chef/client.pem")
    encrypted_data_bag_secret: str | None = Field(
        default="/etc/chef/encrypted_data_bag_secret"
    )
    data_bag_decrypt_minimum_version: int = Field(default=0, ge=0, le=3)


class ConfigSnapshot(Mapping):
    """Read-only, deep-copied view of a store's contents at one instant"""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any]):
        self._data = copy.deepcopy(dict(data))

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ConfigSnapshot({self._data!r})"

    def to_dict(self) -> dict[str, Any]:
        """Return a mutable deep copy of the snapshot"""
        return copy.deepcopy(self._data)


def _load_config_file(config_path: Path) -> dict[str, Any]:
    """Load configuration data from a JSON or YAML file

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration data dictionary

    Raises:
        ConfigLoadError: If the file is missing, unreadable or malformed
    """
    context = {"config_file": str(config_path)}

    if not config_path.is_file():
        raise ConfigLoadError(
            f"Configuration file not found: {config_path}", context
        )

    suffix = config_path.suffix.lower()
    if suffix not in (".json", ".yaml", ".yml"):
        raise ConfigLoadError(
            f"Unsupported configuration file format: {config_path.suffix}", context
        )

    try:
        with open(config_path, encoding="utf-8") as f:
            if suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigLoadError(
            f"Failed to read configuration file {config_path}: {e}", context
        ) from e
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigLoadError(
            f"Failed to parse configuration file {config_path}: {e}", context
        ) from e

    if not isinstance(data, dict):
        raise ConfigLoadError(
            f"Configuration file {config_path} must contain a mapping", context
        )

    return data


def _resolve_relative_paths(data: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    """Resolve relative key/secret paths against the config file's directory"""
    resolved = dict(data)
    for key in PATH_KEYS:
        value = resolved.get(key)
        if not isinstance(value, str) or not value.strip():
            continue
        value = value.strip()
        # Inline PEM material and URLs are left alone
        if value.startswith("-----BEGIN") or "://" in value:
            continue
        expanded = Path(os.path.expanduser(value))
        if not expanded.is_absolute():
            expanded = base_dir / expanded
        resolved[key] = os.path.normpath(str(expanded))
    return resolved


class ConfigStore(ConfigSource):
    """Mutable configuration handle

    The default process-wide instance lives in
    ``chef_server_context.config.chef_config``. Every mutation holds
    ``lock``, which is re-entrant so a caller can hold it across a
    switch-in/switch-out cycle. Reads take no lock: the live model is only
    ever rebound, never edited in place, so a reader sees one whole state.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self._config = ChefConfig()

    def reset(self) -> None:
        """Replace the live state with the baseline defaults"""
        with self.lock:
            self._config = ChefConfig()

    def from_file(self, config_file: str | os.PathLike) -> None:
        """Merge a JSON/YAML config file into the live state

        The file is parsed and validated before the live state is replaced,
        so a failure leaves the store as it was.

        Raises:
            ConfigLoadError: If the file cannot be loaded or fails validation
        """
        config_path = Path(config_file)
        data = _resolve_relative_paths(
            _load_config_file(config_path), config_path.parent
        )

        with self.lock:
            merged = {**self._config.model_dump(), **data}
            try:
                config = ChefConfig.model_validate(merged)
            except ValidationError as e:
                raise ConfigLoadError(
                    f"Invalid configuration in {config_path}: {e}",
                    {"config_file": str(config_path)},
                ) from e
            self._config = config

        logger.debug(f"Loaded {len(data)} keys from {config_path}")

    def save(self) -> ConfigSnapshot:
        """Take a snapshot of the live state"""
        with self.lock:
            return ConfigSnapshot(self._config.model_dump())

    def restore(self, snapshot: Mapping[str, Any]) -> None:
        """Replace the live state wholesale with a snapshot

        Raises:
            ConfigurationError: If the snapshot does not validate
        """
        data = copy.deepcopy(dict(snapshot))
        try:
            config = ChefConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration snapshot: {e}", {"keys": sorted(data)}
            ) from e
        with self.lock:
            self._config = config

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.model_dump().get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self._config.model_dump()[key]

    def __setitem__(self, key: str, value: Any) -> None:
        with self.lock:
            try:
                self._config = ChefConfig.model_validate(
                    {**self._config.model_dump(), key: value}
                )
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid value for {key}: {e}", {"key": key}
                ) from e

    def __contains__(self, key: object) -> bool:
        return key in self._config.model_dump()

    def __repr__(self) -> str:
        return f"ConfigStore(chef_server_url={self.get('chef_server_url')!r})"
