from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime, timezone
import json
import time
from urllib.parse import urlparse

from azure.core.credentials import AccessToken
from azure.core.exceptions import ResourceNotFoundError, ServiceResponseTimeoutError
from azure.identity import CredentialUnavailableError
from azure.keyvault.keys import JsonWebKey, KeyCurveName, KeyType
from cryptography.hazmat.primitives.asymmetric import ec, rsa
import pytest
import requests

from azurekms.adapters.key_vault import AzureVaultClient, public_key_from_jwk, remote_operation
from azurekms.domain.models import KeyCreationParams
from azurekms.errors import CredentialError, DeadlineExceededError, NotFoundError, RemoteError


@dataclass
class _FakeSignResult:
    signature: bytes


class _FakeCryptographyClient:
    def __init__(self, name: str, version: str | None) -> None:
        self.name = name
        self.version = version
        self.sign_calls: list[tuple] = []

    def sign(self, algorithm, digest: bytes, **kwargs) -> _FakeSignResult:
        self.sign_calls.append((algorithm, digest, kwargs))
        return _FakeSignResult(signature=b"\x01\x02")


class _FakeKeyClient:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.crypto_clients: list[_FakeCryptographyClient] = []

    def get_key(self, name: str, **kwargs) -> str:
        self.calls.append(("get_key", name, kwargs))
        return "key"

    def create_key(self, name: str, key_type: str, **kwargs) -> str:
        self.calls.append(("create_key", name, key_type, kwargs))
        return "created"

    def get_cryptography_client(self, key_name: str, *, key_version: str | None = None) -> _FakeCryptographyClient:
        crypto = _FakeCryptographyClient(key_name, key_version)
        self.crypto_clients.append(crypto)
        return crypto


def _int_bytes(value: int, length: int) -> bytes:
    return value.to_bytes(length, "big")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def test_get_key_passes_version_and_deadline() -> None:
    keys = _FakeKeyClient()
    client = AzureVaultClient("https://v.vault.azure.net", credential=object(), key_client=keys)

    client.get_key("k", "", timeout=4.0)
    client.get_key("k", "abc", timeout=4.0)

    assert keys.calls == [
        ("get_key", "k", {"version": None, "timeout": 4.0, "read_timeout": 4.0}),
        ("get_key", "k", {"version": "abc", "timeout": 4.0, "read_timeout": 4.0}),
    ]


def test_create_key_sends_mapped_parameters() -> None:
    keys = _FakeKeyClient()
    client = AzureVaultClient("https://v.vault.azure.net", credential=object(), key_client=keys)
    not_before = datetime(2024, 1, 1, tzinfo=timezone.utc)

    client.create_key(
        "k",
        KeyCreationParams(key_type="RSA-HSM", size=4096),
        not_before=not_before,
        timeout=6.0,
    )

    _op, name, key_type, kwargs = keys.calls[0]
    assert (name, key_type) == ("k", "RSA-HSM")
    assert kwargs == {
        "size": 4096,
        "curve": None,
        "key_operations": ["sign", "verify"],
        "enabled": True,
        "not_before": not_before,
        "timeout": 6.0,
        "read_timeout": 6.0,
    }


def test_sign_reuses_one_cryptography_client_per_key_version() -> None:
    keys = _FakeKeyClient()
    client = AzureVaultClient("https://v.vault.azure.net", credential=object(), key_client=keys)

    assert client.sign("k", "v1", "ES256", b"d" * 32, timeout=2.0) == b"\x01\x02"
    client.sign("k", "v1", "ES256", b"e" * 32, timeout=2.0)
    client.sign("k", "", "RS256", b"d" * 32, timeout=2.0)

    first, second = keys.crypto_clients
    assert (first.name, first.version) == ("k", "v1")
    assert (second.name, second.version) == ("k", None)
    assert len(first.sign_calls) == 2
    algorithm, digest, kwargs = first.sign_calls[0]
    assert algorithm.value == "ES256"
    assert kwargs == {"timeout": 2.0, "read_timeout": 2.0}


_STUB_VAULT = "https://stubvault.vault.azure.net"
_CHALLENGE = (
    'Bearer authorization="https://login.microsoftonline.com/00000000-0000-0000-0000-000000000000", '
    'resource="https://vault.azure.net"'
)


class _StubCredential:
    def get_token(self, *scopes: str, **kwargs) -> AccessToken:
        return AccessToken("stub-token", int(time.time()) + 3600)


class _StubRaw:
    enforce_content_length = False


class _StubVaultService:
    """Answers Key Vault requests at the ``requests`` session layer."""

    def __init__(self, public_key: ec.EllipticCurvePublicKey) -> None:
        numbers = public_key.public_numbers()
        self.sessions: set[int] = set()
        self.authenticated: list[str] = []
        self.key_bundle = {
            "key": {
                "kid": f"{_STUB_VAULT}/keys/k/1",
                "kty": "EC",
                "crv": "P-256",
                "key_ops": ["sign", "verify"],
                "x": _b64url(_int_bytes(numbers.x, 32)),
                "y": _b64url(_int_bytes(numbers.y, 32)),
            },
            "attributes": {"enabled": True, "recoveryLevel": "Recoverable+Purgeable"},
        }

    def send(self, session: requests.Session, request: requests.PreparedRequest, **_kwargs) -> requests.Response:
        self.sessions.add(id(session))
        if "Authorization" not in request.headers:
            return self._response(request, 401, None, {"WWW-Authenticate": _CHALLENGE})
        path = urlparse(request.url).path
        self.authenticated.append(f"{request.method} {path}")
        if request.method == "GET":
            return self._response(request, 200, self.key_bundle)
        return self._response(request, 200, {"kid": f"{_STUB_VAULT}/keys/k/1", "value": _b64url(b"\x01" * 64)})

    def _response(self, request, status: int, body, headers: dict[str, str] | None = None) -> requests.Response:
        response = requests.Response()
        response.status_code = status
        response.reason = "OK" if status == 200 else "Unauthorized"
        response.headers.update(headers or {})
        response._content = b""
        if body is not None:
            response.headers["Content-Type"] = "application/json"
            response._content = json.dumps(body).encode()
        response._content_consumed = True
        response.raw = _StubRaw()
        response.request = request
        response.url = request.url
        return response


def test_repeated_signs_share_one_authenticated_session(monkeypatch: pytest.MonkeyPatch) -> None:
    service = _StubVaultService(ec.generate_private_key(ec.SECP256R1()).public_key())
    monkeypatch.setattr(requests.Session, "send", lambda session, request, **kwargs: service.send(session, request))
    client = AzureVaultClient(_STUB_VAULT, _StubCredential())

    signatures = [client.sign("k", "1", "ES256", b"d" * 32, timeout=5.0) for _ in range(3)]

    assert signatures == [b"\x01" * 64] * 3
    assert len(service.sessions) == 1
    assert service.authenticated.count("GET /keys/k/1") <= 1
    assert service.authenticated.count("POST /keys/k/1/sign") == 3


def test_public_key_from_sdk_rsa_jwk() -> None:
    numbers = rsa.generate_private_key(public_exponent=65537, key_size=2048).public_key().public_numbers()
    jwk = JsonWebKey(kty=KeyType.rsa_hsm, n=_int_bytes(numbers.n, 256), e=_int_bytes(numbers.e, 3))

    public_key = public_key_from_jwk(jwk)

    assert isinstance(public_key, rsa.RSAPublicKey)
    assert public_key.public_numbers() == numbers


def test_public_key_from_sdk_ec_jwk() -> None:
    numbers = ec.generate_private_key(ec.SECP521R1()).public_key().public_numbers()
    jwk = JsonWebKey(
        kty=KeyType.ec,
        crv=KeyCurveName.p_521,
        x=_int_bytes(numbers.x, 66),
        y=_int_bytes(numbers.y, 66),
    )

    public_key = public_key_from_jwk(jwk)

    assert isinstance(public_key, ec.EllipticCurvePublicKey)
    assert public_key.public_numbers() == numbers


@pytest.mark.parametrize(
    "jwk",
    [
        None,
        JsonWebKey(kty=KeyType.oct, k=b"secret"),
        JsonWebKey(kty=KeyType.ec, crv=KeyCurveName.p_256_k, x=b"\x01", y=b"\x02"),
        JsonWebKey(kty=KeyType.ec, crv=KeyCurveName.p_256, x=b"\x01", y=b"\x02"),
        JsonWebKey(kty=KeyType.rsa, n=b"\x01"),
    ],
)
def test_public_key_from_unusable_jwk(jwk) -> None:
    with pytest.raises(RemoteError):
        public_key_from_jwk(jwk)


def test_remote_operation_translates_sdk_errors() -> None:
    with pytest.raises(NotFoundError) as not_found:
        with remote_operation("get_key", 1.0, key_name="k"):
            raise ResourceNotFoundError("gone")
    assert "gone" in str(not_found.value)

    with pytest.raises(DeadlineExceededError) as deadline:
        with remote_operation("sign", 1.5):
            raise ServiceResponseTimeoutError("read timed out")
    assert deadline.value.timeout == 1.5

    with pytest.raises(CredentialError):
        with remote_operation("sign", 1.0):
            raise CredentialUnavailableError("no credential in the chain could authenticate")

    with pytest.raises(KeyError):
        with remote_operation("sign", 1.0):
            raise KeyError("not an sdk error")
