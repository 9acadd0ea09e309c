from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Callable

from azure.core.credentials import TokenCredential

from azurekms.adapters.client_cache import ClientCache
from azurekms.adapters.credentials import CredentialFactory, create_credential, credential_factory_for
from azurekms.adapters.key_vault import AzureVaultClient, public_key_from_jwk, remote_operation
from azurekms.config import Settings, deadline_after, get_settings, resolve_timeout, time_remaining
from azurekms.domain.interfaces import KeyManager, VaultClient
from azurekms.domain.models import CreateKeyRequest, CreateKeyResponse, ProtectionLevel, PublicKey
from azurekms.errors import EmptyNameError
from azurekms.policies.addressing import ConnectorDefaults, key_uri, parse_defaults, resolve_key_name
from azurekms.policies.algorithms import map_algorithm
from azurekms.signer import KeyVaultSigner
from azurekms.telemetry import log_event

_logger = logging.getLogger(__name__)

VaultClientFactory = Callable[[str, TokenCredential], VaultClient]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class KeyVault(KeyManager):
    """Key manager backed by Azure Key Vault.

    The connector URI sets the defaults applied to every key name:

    - ``azurekms:``
    - ``azurekms:vault=vault-name``
    - ``azurekms:environment=env-name``
    - ``azurekms:vault=vault-name;environment=env-name``
    - ``azurekms:vault=vault-name?hsm=true``

    ``environment`` picks the cloud (``public``, ``usgov``, ``china`` or
    ``german`` and their long names) and defaults to the public cloud.
    ``client-id``, ``client-secret`` and ``tenant-id`` select client secret
    authentication; without them the default Azure credential chain is used.

    Keys are then named ``azurekms:name=key-name;vault=vault-name``, optionally
    with ``?version=...`` and ``?hsm=true``.

    Without explicit ``settings`` the connector reads ``AZUREKMS_*`` variables
    from the environment and any ``.env`` file.
    """

    def __init__(
        self,
        connector_uri: str | None = None,
        *,
        settings: Settings | None = None,
        credential_factory: CredentialFactory | None = None,
        client_factory: VaultClientFactory | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        if connector_uri is None:
            connector_uri = self._settings.connector_uri
        connector_uri = connector_uri or None

        self._defaults = parse_defaults(connector_uri)
        credential = create_credential(
            credential_factory or credential_factory_for(self._settings),
            connector_uri,
        )
        make_client = client_factory or AzureVaultClient

        def _build_client(vault_url: str) -> VaultClient:
            return make_client(vault_url, credential)

        self._cache = ClientCache(self._defaults.dns_suffix, _build_client)
        self._default_timeout = self._settings.default_timeout_seconds
        log_event(
            _logger,
            "key_vault_connector_ready",
            default_vault=self._defaults.vault or None,
            dns_suffix=self._defaults.dns_suffix,
            protection_level=self._defaults.protection_level.value,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> KeyVault:
        return cls(settings.connector_uri, settings=settings, **kwargs)

    @property
    def defaults(self) -> ConnectorDefaults:
        return self._defaults

    @property
    def clients(self) -> ClientCache:
        return self._cache

    def get_public_key(self, name: str, timeout: float | None = None) -> PublicKey:
        if not name:
            raise EmptyNameError("name")

        resolved = resolve_key_name(name, self._defaults)
        timeout = resolve_timeout(timeout, self._default_timeout)
        deadline = deadline_after(timeout)
        client = self._cache.get(resolved.vault_url, timeout=timeout)
        remaining = time_remaining(deadline, "key vault get_key", timeout)

        with remote_operation(
            "get_key",
            remaining,
            vault_url=resolved.vault_url,
            key_name=resolved.name,
            key_version=resolved.version or None,
        ):
            key = client.get_key(resolved.name, resolved.version, timeout=remaining)
        return public_key_from_jwk(getattr(key, "key", None))

    def create_key(self, request: CreateKeyRequest, timeout: float | None = None) -> CreateKeyResponse:
        if not request.name:
            raise EmptyNameError("name")

        resolved = resolve_key_name(request.name, self._defaults)

        # The request wins; an unspecified level falls back to the key name's hsm flag.
        protection_level = request.protection_level
        if protection_level == ProtectionLevel.UNSPECIFIED:
            protection_level = ProtectionLevel.HSM if resolved.hsm else ProtectionLevel.SOFTWARE

        params = map_algorithm(request.signature_algorithm, protection_level, request.bits)
        timeout = resolve_timeout(timeout, self._default_timeout)
        deadline = deadline_after(timeout)
        client = self._cache.get(resolved.vault_url, timeout=timeout)
        remaining = time_remaining(deadline, "key vault create_key", timeout)
        created_at = _now()

        with remote_operation(
            "create_key",
            remaining,
            vault_url=resolved.vault_url,
            key_name=resolved.name,
            algorithm=request.signature_algorithm.value,
            key_type=params.key_type,
            protection_level=protection_level.value,
        ):
            key = client.create_key(resolved.name, params, not_before=created_at, timeout=remaining)

        public_key = public_key_from_jwk(getattr(key, "key", None))
        name = key_uri(resolved.vault, resolved.name, getattr(key, "id", None))
        log_event(
            _logger,
            "key_created",
            name=name,
            key_type=params.key_type,
            curve=params.curve,
            size=params.size,
        )
        return CreateKeyResponse(name=name, public_key=public_key, signing_key=name)

    def create_signer(self, signing_key: str, timeout: float | None = None) -> KeyVaultSigner:
        if not signing_key:
            raise EmptyNameError("signing_key")

        public_key = self.get_public_key(signing_key, timeout=timeout)
        return KeyVaultSigner(
            self._cache,
            signing_key,
            self._defaults,
            public_key,
            default_timeout=self._default_timeout,
        )

    def validate_name(self, name: str) -> None:
        resolve_key_name(name, self._defaults)

    def close(self) -> None:
        # Clients hold no connections worth releasing; they live as long as the connector.
        return None

    def __enter__(self) -> KeyVault:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()
