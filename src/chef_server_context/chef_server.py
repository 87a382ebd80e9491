"""Act as a Chef server's client from outside its execution context

ChefServer loads a server's config file into the configuration store,
captures it, and puts the caller's configuration back. Later it can switch
that configuration in for the duration of a block, or use it directly to
issue signed API requests and decrypt encrypted data bag items.

Usage:
    server = ChefServer("/path/to/knife.yml")

    with server.server_config_context() as config:
        run_tool_that_reads(config)

    jobs = server.rest("GET", "/pushy/jobs")
    secrets = server.encrypted_data_bag_item("delivery-secrets", "ent-org-proj")
"""

import os
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar
from urllib.parse import quote

from .config import ConfigSnapshot, ConfigStore, get_config
from .data_bag import EncryptedDataBagItem
from .exceptions import ConfigLoadError, ConfigurationError
from .logging_base import get_logger
from .protocols import RestClient, SecretStore
from .rest import ChefRESTClient

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_CONFIG_FILE = "/var/opt/delivery/workspace/.chef/knife.yml"


class ChefServer:
    """Server configuration captured from a config file

    Construction runs one full switch-in/switch-out cycle: afterwards the
    store holds exactly what it held before, and ``server_config`` holds the
    parsed server configuration.

    Args:
        config_file: Path of the server's config file
        config: Store to switch; defaults to the process-wide store
        rest_client_factory: Called as ``factory(url, node_name, client_key)``
        secret_store: Loads secrets and decrypts data bag items

    Raises:
        ConfigLoadError: If the config file cannot be loaded
    """

    def __init__(
        self,
        config_file: str | os.PathLike = DEFAULT_CONFIG_FILE,
        *,
        config: ConfigStore | None = None,
        rest_client_factory: Callable[..., RestClient] | None = None,
        secret_store: SecretStore | None = None,
    ):
        self.config_file = config_file
        self.config = config if config is not None else get_config()
        self.rest_client_factory = rest_client_factory or ChefRESTClient
        self.stored_config: ConfigSnapshot | None = None
        self.server_config: ConfigSnapshot | None = None

        self.load_server_config()
        self.unload_server_config()

        if secret_store is None:
            secret_store = EncryptedDataBagItem(
                self._fetch_data_bag_item,
                minimum_version=self.server_config.get(
                    "data_bag_decrypt_minimum_version"
                )
                or 0,
            )
        self.secret_store = secret_store

        logger.info(f"Captured Chef server configuration from {config_file}")

    def __repr__(self) -> str:
        return f"ChefServer(config_file={str(self.config_file)!r})"

    def load_server_config(self) -> None:
        """Switch the server configuration in

        Saves the live store into ``stored_config``, resets it, loads the
        config file and captures the result into ``server_config``. If the
        file fails to load, the store is rolled back to what it held before
        and neither snapshot changes.
        """
        with self.config.lock:
            stored = self.config.save()
            self.config.reset()
            try:
                self.config.from_file(self.config_file)
            except ConfigLoadError:
                logger.warning(
                    f"Failed to load {self.config_file}; restoring previous configuration"
                )
                self.config.restore(stored)
                raise
            self.server_config = self.config.save()
            self.stored_config = stored

        logger.debug(f"Switched in server configuration from {self.config_file}")

    def unload_server_config(self) -> None:
        """Switch the caller's configuration back in from ``stored_config``"""
        if self.stored_config is None:
            raise ConfigurationError(
                "No stored configuration to restore; load_server_config() has not run",
                {"config_file": str(self.config_file)},
            )

        self.config.restore(self.stored_config)
        logger.debug("Restored stored configuration")

    @contextmanager
    def server_config_context(self) -> Iterator[ConfigStore]:
        """Hold the server configuration active for the body of a with block

        The store's lock is held for the whole block, so other switchers wait,
        while plain reads from any thread see the server configuration. The
        caller's configuration is restored on every exit path. Exceptions raised in
        the block propagate unchanged once restoration is done.
        """
        with self.config.lock:
            self.load_server_config()
            # Nested scopes on the same object overwrite stored_config
            stored = self.stored_config
            try:
                yield self.config
            finally:
                self.stored_config = stored
                self.unload_server_config()

    def with_server_config(self, block: Callable[..., T], *args, **kwargs) -> T:
        """Run ``block(*args, **kwargs)`` with the server configuration active

        Returns:
            Whatever the block returns
        """
        with self.server_config_context():
            return block(*args, **kwargs)

    def rest(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        data: Any = None,
    ) -> Any:
        """Issue an authenticated request as the server's client

        Raises:
            RequestError: Passed through from the REST client
        """
        client = self.rest_client_factory(
            self.server_config.get("chef_server_url"),
            self.server_config.get("node_name"),
            self.server_config.get("client_key"),
        )
        try:
            return client.request(method, path, headers, data)
        finally:
            # close() is optional for duck-typed clients
            close = getattr(client, "close", None)
            if close is not None:
                close()

    def encrypted_data_bag_item(
        self,
        bag_name: str,
        item_id: str,
        secret_key_path: str | os.PathLike | None = None,
    ) -> Any:
        """Load and decrypt an encrypted data bag item

        Args:
            bag_name: Data bag name
            item_id: Item id within the bag
            secret_key_path: Secret file; defaults to the server's
                ``encrypted_data_bag_secret``

        Raises:
            SecretLoadError: If the secret file cannot be read
            DecryptionError: If the item cannot be decrypted with the secret
        """
        if secret_key_path is None:
            secret_key_path = self.server_config.get("encrypted_data_bag_secret")

        secret = self.secret_store.load_secret(secret_key_path)
        return self.secret_store.load(bag_name, item_id, secret)

    def cheffish_details(self) -> dict[str, Any]:
        """Connection details in the shape Cheffish resources expect"""
        return {
            "chef_server_url": self.server_config.get("chef_server_url"),
            "options": {
                "client_name": self.server_config.get("node_name"),
                "signing_key_filename": self.server_config.get("client_key"),
            },
        }

    def _fetch_data_bag_item(self, bag_name: str, item_id: str) -> Any:
        return self.rest(
            "GET", f"/data/{quote(bag_name, safe='')}/{quote(item_id, safe='')}"
        )
