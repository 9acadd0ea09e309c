"""Parsing and default resolution for ``azurekms:`` resource names.

A connector is configured with a URI such as::

    azurekms:
    azurekms:vault=vault-name
    azurekms:vault=vault-name;environment=usgov
    azurekms:vault=vault-name?hsm=true

and keys are addressed with::

    azurekms:name=key-name;vault=vault-name
    azurekms:name=key-name;vault=vault-name?version=key-version
    azurekms:name=key-name?hsm=true

``vault`` and ``hsm`` on a key name override the connector defaults.
``environment`` only has an effect on the connector URI: the cloud is fixed
once the connector is built, so a per-key ``environment`` is accepted and
ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from types import MappingProxyType
from typing import Mapping
from urllib.parse import quote, unquote, urlparse

from azurekms.domain.models import ProtectionLevel
from azurekms.errors import EmptyNameError, MalformedAddressError, MissingVaultError
from azurekms.policies.clouds import AZURE_PUBLIC, resolve_cloud

SCHEME = "azurekms"
DEFAULT_DNS_SUFFIX = AZURE_PUBLIC.dns_suffix

_TRUE_TOKENS = {"1", "true", "yes", "y", "on"}

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedURI:
    raw: str
    scheme: str
    values: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    options: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def get(self, key: str) -> str:
        value = self.values.get(key, "")
        if not value:
            value = self.options.get(key, "")
        return value

    def has(self, key: str) -> bool:
        return bool(self.get(key))

    def get_bool(self, key: str) -> bool:
        return parse_bool_token(self.get(key))


@dataclass(frozen=True)
class ConnectorDefaults:
    vault: str = ""
    dns_suffix: str = DEFAULT_DNS_SUFFIX
    protection_level: ProtectionLevel = ProtectionLevel.UNSPECIFIED


@dataclass(frozen=True)
class ResourceAddress:
    vault: str
    name: str
    version: str = ""
    hsm: bool = False
    environment: str = ""


@dataclass(frozen=True)
class ResolvedKey:
    vault_url: str
    vault: str
    name: str
    version: str
    hsm: bool


def parse_bool_token(value: str) -> bool:
    return (value or "").strip().lower() in _TRUE_TOKENS


def parse_uri(raw: str, scheme: str = SCHEME) -> ParsedURI:
    """Split ``scheme:k1=v1;k2=v2?opt=v`` into its pairs and options."""
    prefix, sep, rest = raw.strip().partition(":")
    if not sep or not prefix:
        raise MalformedAddressError(raw, "scheme is missing")
    if prefix.lower() != scheme:
        raise MalformedAddressError(raw, f"scheme {prefix!r} is not {scheme!r}")
    if rest.startswith("/"):
        raise MalformedAddressError(raw, "expected key=value pairs after the scheme")

    opaque, _, query = rest.partition("?")
    return ParsedURI(
        raw=raw,
        scheme=scheme,
        values=MappingProxyType(_parse_pairs(raw, opaque, ";")),
        options=MappingProxyType(_parse_pairs(raw, query, "&")),
    )


def _parse_pairs(raw: str, text: str, separator: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for segment in text.split(separator):
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep or not key:
            raise MalformedAddressError(raw, f"{segment!r} is not a key=value pair")
        # First occurrence wins.
        pairs.setdefault(unquote(key), unquote(value))
    return pairs


def parse_defaults(connector_uri: str | None) -> ConnectorDefaults:
    if not connector_uri:
        return ConnectorDefaults()

    uri = parse_uri(connector_uri)
    cloud = resolve_cloud(uri.get("environment"))
    protection_level = ProtectionLevel.HSM if uri.get_bool("hsm") else ProtectionLevel.UNSPECIFIED
    return ConnectorDefaults(
        vault=uri.get("vault"),
        dns_suffix=cloud.dns_suffix,
        protection_level=protection_level,
    )


def parse_address(raw: str, defaults: ConnectorDefaults) -> ResourceAddress:
    """Parse a key name and overlay the connector defaults on missing fields."""
    if not raw:
        raise EmptyNameError("name")

    uri = parse_uri(raw)
    name = uri.get("name")
    if not name:
        raise EmptyNameError("name", raw=raw)

    vault = uri.get("vault") or defaults.vault
    if not vault:
        raise MissingVaultError(raw)

    if uri.get("hsm"):
        hsm = uri.get_bool("hsm")
    else:
        hsm = defaults.protection_level == ProtectionLevel.HSM

    environment = uri.get("environment")
    if environment:
        _logger.debug("key uri environment %r ignored; the cloud is set by the connector uri", environment)

    return ResourceAddress(
        vault=vault,
        name=name,
        version=uri.get("version"),
        hsm=hsm,
        environment=environment,
    )


def vault_url(vault: str, dns_suffix: str) -> str:
    return f"https://{vault}.{dns_suffix}"


def resolve_key_name(raw: str, defaults: ConnectorDefaults) -> ResolvedKey:
    address = parse_address(raw, defaults)
    return ResolvedKey(
        vault_url=vault_url(address.vault, defaults.dns_suffix),
        vault=address.vault,
        name=address.name,
        version=address.version,
        hsm=address.hsm,
    )


def key_uri(vault: str, name: str, key_id: str | None = None) -> str:
    """Build the canonical ``azurekms:`` name of a key.

    When ``key_id`` is a Key Vault key identifier
    (``https://<vault>.<suffix>/keys/<name>/<version>``) the vault, name and
    version are taken from it; otherwise the given vault and name are used.
    """
    if key_id:
        parsed = urlparse(key_id)
        host = parsed.netloc.split(".", 1)
        path = parsed.path.split("/")
        if len(host) == 2 and host[0] and len(path) == 4 and path[1] == "keys" and path[2]:
            base = _format_key_uri(host[0], path[2])
            if path[3]:
                return f"{base}?version={quote(path[3], safe='')}"
            return base
    return _format_key_uri(vault, name)


def _format_key_uri(vault: str, name: str) -> str:
    return f"{SCHEME}:name={quote(name, safe='')};vault={quote(vault, safe='')}"
