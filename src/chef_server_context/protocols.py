"""
Protocol interfaces for chef-server-context

This module defines the narrow interfaces ChefServer depends on, so the
context-switch logic can be exercised against fakes without a real
filesystem, crypto library or network.
"""

import os
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any


class ConfigSource(ABC):
    """Protocol for a swappable configuration store

    Implementations also expose a re-entrant ``lock`` attribute that callers
    hold across a switch-in/switch-out cycle.
    """

    @abstractmethod
    def reset(self) -> None:
        """Clear the live state to its baseline"""
        pass

    @abstractmethod
    def from_file(self, config_file: str | os.PathLike) -> None:
        """Parse a config file into the live state"""
        pass

    @abstractmethod
    def save(self) -> Mapping[str, Any]:
        """Snapshot the live state"""
        pass

    @abstractmethod
    def restore(self, snapshot: Mapping[str, Any]) -> None:
        """Replace the live state with a snapshot"""
        pass

    @abstractmethod
    def __getitem__(self, key: str) -> Any:
        pass


class SecretStore(ABC):
    """Protocol for loading secrets and decrypting data bag items"""

    @abstractmethod
    def load_secret(self, path: str | os.PathLike) -> Any:
        """Load an opaque secret handle from a key file"""
        pass

    @abstractmethod
    def load(self, bag_name: str, item_id: str, secret: Any) -> Any:
        """Fetch and decrypt a data bag item"""
        pass


class RestClient(ABC):
    """Protocol for an authenticated Chef API client"""

    @abstractmethod
    def request(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        data: Any = None,
    ) -> Any:
        """Issue a signed request and return the response body"""
        pass

    def close(self) -> None:
        """Release any held connections"""
        pass

