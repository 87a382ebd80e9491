"""
chef-server-context
Borrow a Chef server's client configuration from outside its execution context
"""

from .chef_server import DEFAULT_CONFIG_FILE, ChefServer
from .config import ChefConfig, ConfigSnapshot, ConfigStore, chef_config, get_config
from .data_bag import EncryptedDataBagItem
from .exceptions import (
    ChefServerContextError,
    ConfigLoadError,
    ConfigurationError,
    DecryptionError,
    NetworkError,
    RequestError,
    SecretLoadError,
    SecurityError,
)
from .rest import ChefRESTClient

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ChefConfig",
    "ChefRESTClient",
    "ChefServer",
    "ChefServerContextError",
    "ConfigLoadError",
    "ConfigSnapshot",
    "ConfigStore",
    "ConfigurationError",
    "DecryptionError",
    "EncryptedDataBagItem",
    "NetworkError",
    "RequestError",
    "SecretLoadError",
    "SecurityError",
    "chef_config",
    "get_config",
]
