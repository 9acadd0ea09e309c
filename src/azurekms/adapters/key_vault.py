from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
import logging
from threading import Lock
from time import perf_counter
from typing import Any, Generator

from azure.core.credentials import TokenCredential
from azure.core.exceptions import (
    AzureError,
    ResourceNotFoundError,
    ServiceRequestTimeoutError,
    ServiceResponseTimeoutError,
)
from azure.identity import CredentialUnavailableError
from azure.keyvault.keys import KeyClient
from azure.keyvault.keys.crypto import CryptographyClient, SignatureAlgorithm as KeyVaultSignatureAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from opentelemetry.trace import Span

from azurekms.domain.interfaces import VaultClient
from azurekms.domain.models import KeyCreationParams, PublicKey
from azurekms.errors import CredentialError, DeadlineExceededError, NotFoundError, RemoteError
from azurekms.telemetry import span_record_error, span_set_attributes, start_span, telemetry_tags

_logger = logging.getLogger(__name__)

_CURVES: dict[str, ec.EllipticCurve] = {
    "P-256": ec.SECP256R1(),
    "P-384": ec.SECP384R1(),
    "P-521": ec.SECP521R1(),
}


def _call_options(timeout: float) -> dict[str, Any]:
    # ``timeout`` caps the whole pipeline run, ``read_timeout`` the socket read.
    return {"timeout": timeout, "read_timeout": timeout}


class AzureVaultClient(VaultClient):
    """Key Vault keys client bound to a single vault URL.

    Clients are built with retries disabled: every call makes one attempt and
    surfaces the failure to the caller. Signing goes through one cryptography
    client per key version, created on first use from the keys client.
    """

    def __init__(
        self,
        vault_url: str,
        credential: TokenCredential,
        *,
        key_client: KeyClient | None = None,
    ) -> None:
        self.vault_url = vault_url
        self._crypto: dict[tuple[str, str], CryptographyClient] = {}
        self._crypto_lock = Lock()
        self._keys = key_client or KeyClient(vault_url=vault_url, credential=credential, retry_total=0)

    def get_key(self, name: str, version: str, *, timeout: float) -> Any:
        return self._keys.get_key(name, version=version or None, **_call_options(timeout))

    def create_key(
        self,
        name: str,
        params: KeyCreationParams,
        *,
        not_before: datetime,
        timeout: float,
    ) -> Any:
        return self._keys.create_key(
            name,
            params.key_type,
            size=params.size,
            curve=params.curve,
            key_operations=params.key_operations,
            enabled=True,
            not_before=not_before,
            **_call_options(timeout),
        )

    def sign(self, name: str, version: str, algorithm: str, digest: bytes, *, timeout: float) -> bytes:
        crypto = self._cryptography_client(name, version)
        result = crypto.sign(KeyVaultSignatureAlgorithm(algorithm), digest, **_call_options(timeout))
        return bytes(result.signature)

    def _cryptography_client(self, name: str, version: str) -> CryptographyClient:
        # Built from the key client so every signature reuses its pipeline and auth session.
        key = (name, version)
        with self._crypto_lock:
            crypto = self._crypto.get(key)
            if crypto is None:
                crypto = self._keys.get_cryptography_client(name, key_version=version or None)
                self._crypto[key] = crypto
            return crypto


def _enum_value(value: Any) -> str:
    return str(getattr(value, "value", value) or "")


def _as_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int.from_bytes(bytes(value), "big")


def public_key_from_jwk(jwk: Any) -> PublicKey:
    """Convert a Key Vault ``JsonWebKey`` into a ``cryptography`` public key."""
    if jwk is None:
        raise RemoteError("key conversion", "response did not include key material")

    kty = _enum_value(getattr(jwk, "kty", ""))
    if kty in ("RSA", "RSA-HSM"):
        n = getattr(jwk, "n", None)
        e = getattr(jwk, "e", None)
        if not n or not e:
            raise RemoteError("key conversion", "RSA key is missing its modulus or exponent")
        return rsa.RSAPublicNumbers(_as_int(e), _as_int(n)).public_key()

    if kty in ("EC", "EC-HSM"):
        crv = _enum_value(getattr(jwk, "crv", ""))
        curve = _CURVES.get(crv)
        if curve is None:
            raise RemoteError("key conversion", f"unsupported elliptic curve {crv!r}")
        x = getattr(jwk, "x", None)
        y = getattr(jwk, "y", None)
        if not x or not y:
            raise RemoteError("key conversion", "EC key is missing its coordinates")
        try:
            return ec.EllipticCurvePublicNumbers(_as_int(x), _as_int(y), curve).public_key()
        except ValueError as err:
            raise RemoteError("key conversion", f"invalid {crv} point") from err

    raise RemoteError("key conversion", f"unsupported key type {kty!r}")


@contextmanager
def remote_operation(operation: str, timeout: float, **tags: Any) -> Generator[Span, None, None]:
    """Trace one Key Vault call and translate SDK failures into connector errors."""
    attributes = telemetry_tags(operation=operation, timeout_seconds=timeout, **tags)
    started = perf_counter()
    with start_span(f"azurekms.{operation}", attributes) as span:
        try:
            yield span
        except ResourceNotFoundError as err:
            span_record_error(span, err, failure_type="not_found")
            raise NotFoundError(operation, _describe(err)) from err
        except (ServiceRequestTimeoutError, ServiceResponseTimeoutError) as err:
            span_record_error(span, err, failure_type="timeout")
            raise DeadlineExceededError(f"key vault {operation}", timeout) from err
        except CredentialUnavailableError as err:
            span_record_error(span, err, failure_type="credential_unavailable")
            raise CredentialError(f"no azure credential available for {operation}: {err}") from err
        except AzureError as err:
            span_record_error(span, err, failure_type=err.__class__.__name__)
            _logger.exception("key_vault_call_failed operation=%s", operation)
            raise RemoteError(operation, _describe(err)) from err
        finally:
            span_set_attributes(span, {"latency_ms": int((perf_counter() - started) * 1000)})


def _describe(err: AzureError) -> str:
    return str(getattr(err, "message", None) or err)
