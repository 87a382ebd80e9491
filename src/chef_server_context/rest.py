"""Signed Chef API client

ChefRESTClient issues requests against a Chef server as a given client,
signing each one with the Chef authentication protocol (version 1.3,
SHA-256 with RSA PKCS#1 v1.5). Transport and TLS are handled by httpx,
RSA by cryptography.
"""

import base64
import hashlib
import json
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .exceptions import RequestError
from .logging_base import get_logger
from .protocols import RestClient
from .settings import ContextSettings, get_settings

logger = get_logger(__name__)

SIGN_VERSION = "1.3"
SIGN_ALGORITHM = "sha256"
AUTHORIZATION_LINE_LENGTH = 60


def _hash_b64(data: bytes) -> str:
    return base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")


def canonical_path(path: str) -> str:
    """Squeeze repeated slashes and drop a trailing slash"""
    path = re.sub(r"/+", "/", path or "/")
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def canonical_time(when: datetime) -> str:
    return when.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def load_private_key(client_key: str | None) -> rsa.RSAPrivateKey:
    """Load an RSA private key from a PEM file path or inline PEM text

    Raises:
        RequestError: If the key is missing, unreadable or not an RSA key
    """
    if not client_key:
        raise RequestError("No client key configured")

    context = {"client_key": "<inline>"}
    if client_key.lstrip().startswith("-----BEGIN"):
        pem = client_key.encode("utf-8")
    else:
        context = {"client_key": client_key}
        try:
            with open(client_key, "rb") as f:
                pem = f.read()
        except OSError as e:
            raise RequestError(
                f"Failed to read client key {client_key}: {e}", context
            ) from e

    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise RequestError(f"Invalid client key: {e}", context) from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise RequestError("Client key is not an RSA private key", context)

    return key


def sign_request(
    private_key: rsa.RSAPrivateKey,
    user_id: str,
    method: str,
    path: str,
    body: bytes,
    timestamp: datetime,
    server_api_version: str,
) -> dict[str, str]:
    """Build the X-Ops-* authentication headers for one request

    Args:
        private_key: The client's RSA key
        user_id: Client (node) name
        method: HTTP method
        path: URL path, including any organization prefix
        body: Exact request body bytes
        timestamp: Request time
        server_api_version: Value of X-Ops-Server-API-Version

    Returns:
        Header mapping to merge into the request
    """
    content_hash = _hash_b64(body)
    signed_at = canonical_time(timestamp)
    canonical_request = "\n".join(
        [
            f"Method:{method.upper()}",
            f"Path:{canonical_path(path)}",
            f"X-Ops-Content-Hash:{content_hash}",
            f"X-Ops-Sign:version={SIGN_VERSION}",
            f"X-Ops-Timestamp:{signed_at}",
            f"X-Ops-UserId:{user_id}",
            f"X-Ops-Server-API-Version:{server_api_version}",
        ]
    )

    signature = private_key.sign(
        canonical_request.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256()
    )
    encoded = base64.b64encode(signature).decode("ascii")

    headers = {
        "X-Ops-Sign": f"algorithm={SIGN_ALGORITHM};version={SIGN_VERSION};",
        "X-Ops-Userid": user_id,
        "X-Ops-Timestamp": signed_at,
        "X-Ops-Content-Hash": content_hash,
        "X-Ops-Server-API-Version": server_api_version,
    }
    for index in range(0, len(encoded), AUTHORIZATION_LINE_LENGTH):
        line_number = index // AUTHORIZATION_LINE_LENGTH + 1
        headers[f"X-Ops-Authorization-{line_number}"] = encoded[
            index : index + AUTHORIZATION_LINE_LENGTH
        ]

    return headers


class ChefRESTClient(RestClient):
    """Authenticated client for a single Chef server organization

    Usage:
        with ChefRESTClient(url, "delivery", "/path/to/delivery.pem") as api:
            jobs = api.request("GET", "/pushy/jobs")
    """

    def __init__(
        self,
        chef_server_url: str,
        node_name: str | None,
        client_key: str | None,
        *,
        settings: ContextSettings | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        if not chef_server_url:
            raise RequestError("No chef_server_url configured")
        if not node_name:
            raise RequestError(
                "No node_name configured", {"chef_server_url": chef_server_url}
            )

        self.chef_server_url = chef_server_url.rstrip("/")
        self.node_name = node_name
        self.settings = settings or get_settings()
        self._private_key = load_private_key(client_key)
        self._client = httpx.Client(
            timeout=self.settings.request_timeout_seconds,
            verify=self.settings.verify_ssl,
            transport=transport,
        )

    def build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path or path == "/":
            return self.chef_server_url
        return f"{self.chef_server_url}/{path.lstrip('/')}"

    @staticmethod
    def _encode_body(data: Any) -> bytes:
        if data is None or data is False:
            return b""
        if isinstance(data, bytes):
            return data
        if isinstance(data, str):
            return data.encode("utf-8")
        return json.dumps(data).encode("utf-8")

    @staticmethod
    def _decode_response(response: httpx.Response) -> Any:
        if not response.content:
            return None
        if "json" in response.headers.get("content-type", ""):
            try:
                return response.json()
            except ValueError:
                logger.debug("Response declared JSON but did not parse")
        return response.text

    def request(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        data: Any = None,
    ) -> Any:
        """Issue a signed request

        Args:
            method: HTTP method, any case (GET, post, ...)
            path: Path relative to chef_server_url, or an absolute URL
            headers: Extra headers; signing headers always win
            data: Request body; dicts and lists are sent as JSON

        Returns:
            Decoded JSON body, the text body, or None when empty

        Raises:
            RequestError: On transport failure or a non-2xx status
        """
        method = str(method).upper()
        url = self.build_url(path)
        body = self._encode_body(data)
        context = {"method": method, "url": url}

        request_headers = {
            "Accept": "application/json",
            "X-Chef-Version": self.settings.chef_version,
        }
        if body:
            request_headers["Content-Type"] = "application/json"
        request_headers.update(headers or {})
        request_headers.update(
            sign_request(
                self._private_key,
                self.node_name,
                method,
                urlsplit(url).path,
                body,
                datetime.now(UTC),
                self.settings.server_api_version,
            )
        )

        logger.debug(f"{method} {url}")
        try:
            response = self._client.request(
                method, url, headers=request_headers, content=body or None
            )
        except httpx.HTTPError as e:
            raise RequestError(f"{method} {url} failed: {e}", context) from e

        if response.is_error:
            raise RequestError(
                f"{method} {url} returned {response.status_code}",
                context,
                status_code=response.status_code,
            )

        return self._decode_response(response)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ChefRESTClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
