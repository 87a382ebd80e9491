"""Tests for the signed Chef API client"""

import base64
import hashlib
import json
from datetime import UTC, datetime

import httpx
import pytest
from chef_server_context.exceptions import RequestError
from chef_server_context.rest import (
    ChefRESTClient,
    canonical_path,
    load_private_key,
    sign_request,
)
from chef_server_context.settings import ContextSettings
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding

SERVER_URL = "https://172.31.6.129/organizations/chef_delivery"


def _signature_from_headers(headers) -> bytes:
    lines = []
    index = 1
    while f"X-Ops-Authorization-{index}" in headers:
        lines.append(headers[f"X-Ops-Authorization-{index}"])
        index += 1
    return base64.b64decode("".join(lines))


def _canonical_request(method, path, headers) -> bytes:
    return "\n".join(
        [
            f"Method:{method}",
            f"Path:{path}",
            f"X-Ops-Content-Hash:{headers['X-Ops-Content-Hash']}",
            "X-Ops-Sign:version=1.3",
            f"X-Ops-Timestamp:{headers['X-Ops-Timestamp']}",
            f"X-Ops-UserId:{headers['X-Ops-Userid']}",
            f"X-Ops-Server-API-Version:{headers['X-Ops-Server-API-Version']}",
        ]
    ).encode("utf-8")


class RecordingTransport(httpx.MockTransport):
    """Mock transport that keeps every request it answers"""

    def __init__(self, status_code=200, json_body=None, text_body=None):
        self.requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if json_body is not None:
                return httpx.Response(status_code, json=json_body)
            return httpx.Response(status_code, text=text_body or "")

        super().__init__(handler)


@pytest.fixture
def settings():
    return ContextSettings(server_api_version="1", chef_version="18.0.0")


def make_client(client_key_file, settings, transport):
    return ChefRESTClient(
        SERVER_URL,
        "delivery",
        str(client_key_file),
        settings=settings,
        transport=transport,
    )


class TestSigning:
    """Test the authentication header helpers"""

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("/organizations/acme/nodes/", "/organizations/acme/nodes"),
            ("//organizations//acme///nodes", "/organizations/acme/nodes"),
            ("/", "/"),
            ("", "/"),
        ],
    )
    def test_canonical_path(self, path, expected):
        """Test slash squeezing and trailing slash removal"""
        assert canonical_path(path) == expected

    def test_sign_request_headers_verify(self, rsa_private_key):
        """Test that the signature verifies against the canonical request"""
        when = datetime(2024, 3, 5, 22, 11, 14, tzinfo=UTC)
        body = b'{"name":"web01"}'

        headers = sign_request(
            rsa_private_key, "delivery", "post", "/organizations/acme/nodes/", body, when, "1"
        )

        assert headers["X-Ops-Sign"] == "algorithm=sha256;version=1.3;"
        assert headers["X-Ops-Userid"] == "delivery"
        assert headers["X-Ops-Timestamp"] == "2024-03-05T22:11:14Z"
        assert headers["X-Ops-Content-Hash"] == base64.b64encode(
            hashlib.sha256(body).digest()
        ).decode("ascii")
        assert all(
            len(value) <= 60
            for name, value in headers.items()
            if name.startswith("X-Ops-Authorization-")
        )

        rsa_private_key.public_key().verify(
            _signature_from_headers(headers),
            _canonical_request("POST", "/organizations/acme/nodes", headers),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )


class TestLoadPrivateKey:
    """Test client key loading"""

    def test_loads_from_file_and_inline(self, client_key_file, client_key_pem):
        """Test both key sources"""
        assert load_private_key(str(client_key_file)).key_size == 2048
        assert load_private_key(client_key_pem.decode("ascii")).key_size == 2048

    def test_missing_key_file(self, tmp_path):
        """Test that an unreadable key raises RequestError"""
        with pytest.raises(RequestError) as exc_info:
            load_private_key(str(tmp_path / "missing.pem"))

        assert isinstance(exc_info.value.__cause__, OSError)

    def test_no_key(self):
        """Test that an absent key raises RequestError"""
        with pytest.raises(RequestError):
            load_private_key(None)

    def test_non_rsa_key(self):
        """Test that only RSA keys are accepted"""
        from cryptography.hazmat.primitives import serialization

        pem = ec.generate_private_key(ec.SECP256R1()).private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

        with pytest.raises(RequestError, match="not an RSA"):
            load_private_key(pem.decode("ascii"))


class TestChefRESTClient:
    """Test requests made through ChefRESTClient"""

    def test_get_request_signed_and_decoded(
        self, client_key_file, settings, rsa_private_key
    ):
        """Test a GET against a path relative to the organization URL"""
        transport = RecordingTransport(json_body={"jobs": []})

        with make_client(client_key_file, settings, transport) as client:
            result = client.request("get", "/pushy/jobs", {"X-Custom": "1"}, None)

        assert result == {"jobs": []}
        (request,) = transport.requests
        assert request.method == "GET"
        assert str(request.url) == f"{SERVER_URL}/pushy/jobs"
        assert request.headers["X-Custom"] == "1"
        assert request.headers["Accept"] == "application/json"
        assert request.headers["X-Chef-Version"] == "18.0.0"
        assert request.content == b""

        rsa_private_key.public_key().verify(
            _signature_from_headers(request.headers),
            _canonical_request(
                "GET", "/organizations/chef_delivery/pushy/jobs", request.headers
            ),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )

    def test_post_sends_json_body(self, client_key_file, settings):
        """Test that dict bodies are JSON encoded and hashed"""
        transport = RecordingTransport(json_body={"uri": "x"})
        data = {"command": "chef-client", "nodes": ["web01"]}

        with make_client(client_key_file, settings, transport) as client:
            client.request("POST", "pushy/jobs", None, data)

        (request,) = transport.requests
        assert json.loads(request.content) == data
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["X-Ops-Content-Hash"] == base64.b64encode(
            hashlib.sha256(request.content).digest()
        ).decode("ascii")

    def test_caller_cannot_override_signing_headers(self, client_key_file, settings):
        """Test that signing headers win over caller headers"""
        transport = RecordingTransport(json_body={})

        with make_client(client_key_file, settings, transport) as client:
            client.request("GET", "/nodes", {"X-Ops-Userid": "admin"})

        assert transport.requests[0].headers["X-Ops-Userid"] == "delivery"

    def test_absolute_url_used_as_is(self, client_key_file, settings):
        """Test that absolute URLs bypass the base URL"""
        transport = RecordingTransport(text_body="pong")

        with make_client(client_key_file, settings, transport) as client:
            result = client.request("GET", "https://other.example.com/_status")

        assert result == "pong"
        assert str(transport.requests[0].url) == "https://other.example.com/_status"

    def test_error_status_raises_request_error(self, client_key_file, settings):
        """Test that non-2xx responses raise RequestError"""
        transport = RecordingTransport(status_code=401, json_body={"error": ["no"]})

        with make_client(client_key_file, settings, transport) as client:
            with pytest.raises(RequestError) as exc_info:
                client.request("GET", "/nodes")

        assert exc_info.value.status_code == 401
        assert exc_info.value.network_context == {
            "method": "GET",
            "url": f"{SERVER_URL}/nodes",
        }

    def test_transport_error_raises_request_error(self, client_key_file, settings):
        """Test that transport failures raise RequestError"""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with make_client(
            client_key_file, settings, httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(RequestError) as exc_info:
                client.request("GET", "/nodes")

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_requires_node_name(self, client_key_file, settings):
        """Test that a client identity is required"""
        with pytest.raises(RequestError, match="node_name"):
            ChefRESTClient(SERVER_URL, None, str(client_key_file), settings=settings)
