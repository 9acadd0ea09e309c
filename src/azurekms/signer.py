from __future__ import annotations

from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from azurekms.adapters.client_cache import ClientCache
from azurekms.adapters.key_vault import remote_operation
from azurekms.config import DEFAULT_TIMEOUT_SECONDS, deadline_after, resolve_timeout, time_remaining
from azurekms.domain.interfaces import Signer
from azurekms.domain.models import PublicKey, SignatureAlgorithm
from azurekms.errors import RemoteError, UnsupportedAlgorithmError
from azurekms.policies.addressing import ConnectorDefaults, resolve_key_name
from azurekms.policies.algorithms import signing_algorithm


class KeyVaultSigner(Signer):
    """Signs digests with a Key Vault key without exposing the private key.

    Every call to :meth:`sign` resolves the key name and looks up the vault
    client again; only the public key is kept from construction.
    """

    def __init__(
        self,
        cache: ClientCache,
        signing_key: str,
        defaults: ConnectorDefaults,
        public_key: PublicKey,
        *,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._cache = cache
        self._signing_key = signing_key
        self._defaults = defaults
        self._public_key = public_key
        self._default_timeout = default_timeout

    @property
    def signing_key(self) -> str:
        return self._signing_key

    def public_key(self) -> PublicKey:
        return self._public_key

    def sign(
        self,
        digest: bytes,
        algorithm: SignatureAlgorithm | str | None = None,
        timeout: float | None = None,
    ) -> bytes:
        """Sign a precomputed ``digest``.

        ECDSA signatures are returned DER encoded, the form ``cryptography``
        verifiers accept; RSA signatures are returned unchanged.
        """
        choice = signing_algorithm(self._public_key, algorithm)
        if len(digest) != choice.digest_size:
            raise UnsupportedAlgorithmError(
                choice.name,
                f"digest is {len(digest)} bytes, expected {choice.digest_size}",
            )

        timeout = resolve_timeout(timeout, self._default_timeout)
        deadline = deadline_after(timeout)
        resolved = resolve_key_name(self._signing_key, self._defaults)
        client = self._cache.get(resolved.vault_url, timeout=timeout)
        remaining = time_remaining(deadline, "key vault sign", timeout)

        with remote_operation(
            "sign",
            remaining,
            vault_url=resolved.vault_url,
            key_name=resolved.name,
            key_version=resolved.version or None,
            algorithm=choice.name,
        ):
            signature = client.sign(resolved.name, resolved.version, choice.name, digest, timeout=remaining)

        if choice.is_ecdsa:
            return _der_signature(signature)
        return signature


def _der_signature(raw: bytes) -> bytes:
    # Key Vault returns ECDSA signatures as the fixed width concatenation r || s.
    if not raw or len(raw) % 2:
        raise RemoteError("sign", f"unexpected ECDSA signature length {len(raw)}")
    half = len(raw) // 2
    r = int.from_bytes(raw[:half], "big")
    s = int.from_bytes(raw[half:], "big")
    return encode_dss_signature(r, s)
