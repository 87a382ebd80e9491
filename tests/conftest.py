"""Shared fixtures for the chef-server-context test suite"""

import os
import sys  # noqa: E402
from pathlib import Path

import pytest
import yaml
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# Add src directory to Python path for imports
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))  # noqa: E402

from chef_server_context.config import ConfigStore, chef_config  # noqa: E402
from chef_server_context.settings import get_settings  # noqa: E402

SERVER_URL = "https://172.31.6.129/organizations/chef_delivery"
DATA_BAG_SECRET = "c2VjcmV0LWtleS1mb3ItZGVsaXZlcnktZGF0YS1iYWdz"


@pytest.fixture(autouse=True)
def reset_global_config_state():
    """Reset the global configuration store before and after each test"""
    chef_config.reset()

    yield

    chef_config.reset()


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Rebuild ambient settings without any CHEF_CONTEXT_ overrides"""
    for name in list(os.environ):
        if name.startswith("CHEF_CONTEXT_"):
            monkeypatch.delenv(name)
    get_settings(reload=True)

    yield

    get_settings(reload=True)


@pytest.fixture(scope="session")
def rsa_private_key():
    """RSA key pair standing in for the delivery client's key"""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def client_key_pem(rsa_private_key):
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture
def client_key_file(tmp_path, client_key_pem):
    key_file = tmp_path / "delivery.pem"
    key_file.write_bytes(client_key_pem)
    return key_file


@pytest.fixture
def data_bag_secret_file(tmp_path):
    secret_file = tmp_path / "encrypted_data_bag_secret"
    secret_file.write_text(DATA_BAG_SECRET + "\n")
    return secret_file


@pytest.fixture
def example_knife_yml(tmp_path, client_key_file, data_bag_secret_file):
    """A delivery workspace config file with relative key paths"""
    config_file = tmp_path / "knife.yml"
    config_file.write_text(
        yaml.safe_dump(
            {
                "chef_server_url": SERVER_URL,
                "node_name": "delivery",
                "client_key": "delivery.pem",
                "encrypted_data_bag_secret": "encrypted_data_bag_secret",
                "cookbook_path": ["cookbooks"],
                "log_level": "info",
            }
        )
    )
    return config_file


@pytest.fixture
def example_config(example_knife_yml):
    """What loading the example file onto a clean store produces"""
    store = ConfigStore()
    store.from_file(example_knife_yml)
    return store.save()
