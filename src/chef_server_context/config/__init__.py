"""Process-wide Chef configuration

The global store plays the role knife and chef-client give to their global
config object: code that does not receive an explicit ConfigStore reads
this one.

Usage:
    from chef_server_context.config import get_config

    config = get_config()
    server_url = config["chef_server_url"]
"""

from .core import ChefConfig, ConfigSnapshot, ConfigStore

__all__ = [
    "ChefConfig",
    "ConfigSnapshot",
    "ConfigStore",
    "chef_config",
    "get_config",
]

# Global configuration instance
chef_config = ConfigStore()


def get_config() -> ConfigStore:
    """Get the process-wide configuration store"""
    return chef_config
