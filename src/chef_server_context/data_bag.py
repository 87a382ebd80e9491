"""Encrypted data bag items

Loads data bag secrets and decrypts encrypted data bag items in the formats
Chef writes (versions 1, 2 and 3). Each encrypted value holds a JSON document
of the form ``{"json_wrapper": <value>}``; the item's ``id`` is stored in the
clear.

Format summary:
- 1: AES-256-CBC, key = sha256(secret), PKCS#7 padding
- 2: version 1 plus HMAC-SHA256(secret, encrypted_data) in ``hmac``
- 3: AES-256-GCM, key = sha256(secret), tag in ``auth_tag``
"""

import base64
import binascii
import hashlib
import hmac
import json
import os
from collections.abc import Callable, Mapping
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import DecryptionError, SecretLoadError
from .logging_base import get_logger
from .protocols import SecretStore

logger = get_logger(__name__)

SUPPORTED_VERSIONS = (1, 2, 3)


def _b64decode(value: Any, field: str) -> bytes:
    if not isinstance(value, str):
        raise DecryptionError(f"Encrypted value field '{field}' is missing")
    try:
        # Chef wraps base64 at 60 columns; embedded newlines are ignored
        return base64.b64decode(value)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"Encrypted value field '{field}' is not base64") from e


def _decrypt_cbc(value: Mapping[str, Any], key: bytes) -> bytes:
    iv = _b64decode(value.get("iv"), "iv")
    ciphertext = _b64decode(value.get("encrypted_data"), "encrypted_data")
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = sym_padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionError(
            "Error decrypting data bag value: bad padding or wrong secret"
        ) from e


def _verify_hmac(value: Mapping[str, Any], secret: str) -> None:
    expected = _b64decode(value.get("hmac"), "hmac")
    encrypted_data = value.get("encrypted_data")
    if not isinstance(encrypted_data, str):
        raise DecryptionError("Encrypted value field 'encrypted_data' is missing")
    candidate = hmac.new(
        secret.encode("utf-8"), encrypted_data.encode("utf-8"), hashlib.sha256
    ).digest()
    if not hmac.compare_digest(candidate, expected):
        raise DecryptionError("Error decrypting data bag value: invalid hmac")


def _decrypt_gcm(value: Mapping[str, Any], key: bytes) -> bytes:
    iv = _b64decode(value.get("iv"), "iv")
    ciphertext = _b64decode(value.get("encrypted_data"), "encrypted_data")
    tag = _b64decode(value.get("auth_tag"), "auth_tag")
    try:
        return AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except (InvalidTag, ValueError) as e:
        raise DecryptionError(
            "Error decrypting data bag value: authentication tag mismatch"
        ) from e


def decrypt_value(value: Any, secret: str, minimum_version: int = 0) -> Any:
    """Decrypt one encrypted data bag value

    Args:
        value: Mapping with ``encrypted_data``, ``iv``, ``version`` and,
            depending on version, ``hmac`` or ``auth_tag``
        secret: Shared data bag secret
        minimum_version: Reject formats older than this

    Returns:
        The unwrapped plaintext value

    Raises:
        DecryptionError: If the value cannot be decrypted with this secret
    """
    if not isinstance(value, Mapping) or "encrypted_data" not in value:
        raise DecryptionError("Data bag value is not encrypted")

    version = value.get("version")
    # JSON true would otherwise compare equal to 1
    if isinstance(version, bool) or version not in SUPPORTED_VERSIONS:
        raise DecryptionError(
            f"Unsupported encrypted data bag format version: {version!r}"
        )
    if version < minimum_version:
        raise DecryptionError(
            f"Encrypted data bag format version {version} is below the "
            f"required minimum {minimum_version}"
        )

    key = hashlib.sha256(secret.encode("utf-8")).digest()
    if version == 3:
        plaintext = _decrypt_gcm(value, key)
    else:
        if version == 2:
            _verify_hmac(value, secret)
        plaintext = _decrypt_cbc(value, key)

    try:
        return json.loads(plaintext.decode("utf-8"))["json_wrapper"]
    except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
        raise DecryptionError(
            "Decrypted data bag value is not a wrapped JSON document"
        ) from e


def decrypt_item(
    raw_item: Mapping[str, Any], secret: str, minimum_version: int = 0
) -> dict[str, Any]:
    """Decrypt every value of a data bag item except its id"""
    if not isinstance(raw_item, Mapping):
        raise DecryptionError("Data bag item is not a mapping")

    item = {}
    for key, value in raw_item.items():
        if key == "id":
            item[key] = value
            continue
        try:
            item[key] = decrypt_value(value, secret, minimum_version)
        except DecryptionError as e:
            e.security_context.setdefault("key", key)
            raise
    return item


class EncryptedDataBagItem(SecretStore):
    """Secret store backed by encrypted data bag items on a Chef server

    Args:
        fetch_item: Callable returning the raw item for (bag_name, item_id)
        minimum_version: Oldest encrypted format accepted
    """

    def __init__(
        self,
        fetch_item: Callable[[str, str], Mapping[str, Any]],
        minimum_version: int = 0,
    ):
        self.fetch_item = fetch_item
        self.minimum_version = minimum_version

    def load_secret(self, path: str | os.PathLike | None) -> str:
        """Read a data bag secret from a key file

        Raises:
            SecretLoadError: If no path is given, or the file is missing,
                unreadable or empty
        """
        if not path:
            raise SecretLoadError("No encrypted data bag secret path configured")

        context = {"secret_path": str(path)}
        try:
            with open(path, encoding="utf-8") as f:
                secret = f.read().strip()
        except (OSError, UnicodeDecodeError) as e:
            raise SecretLoadError(
                f"Failed to read encrypted data bag secret {path}: {e}", context
            ) from e

        if not secret:
            raise SecretLoadError(
                f"Encrypted data bag secret {path} is empty", context
            )

        return secret

    def load(self, bag_name: str, item_id: str, secret: str) -> dict[str, Any]:
        """Fetch a data bag item and decrypt it"""
        raw_item = self.fetch_item(bag_name, item_id)
        try:
            item = decrypt_item(raw_item, secret, self.minimum_version)
        except DecryptionError as e:
            e.security_context.update({"bag": bag_name, "item": item_id})
            raise
        logger.debug(f"Decrypted data bag item {bag_name}/{item_id}")
        return item
