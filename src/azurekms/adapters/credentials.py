from __future__ import annotations

import logging
from typing import Callable

from azure.core.credentials import TokenCredential
from azure.identity import ClientSecretCredential, DefaultAzureCredential

from azurekms.config import Settings, get_settings
from azurekms.errors import CredentialError, KMSError
from azurekms.policies.addressing import parse_uri
from azurekms.policies.clouds import resolve_cloud
from azurekms.telemetry import log_event

_logger = logging.getLogger(__name__)

CredentialFactory = Callable[[str | None], TokenCredential]


def resolve_credential(connector_uri: str | None = None, *, settings: Settings | None = None) -> TokenCredential:
    """Build the credential shared by every vault client of a connector.

    A connector URI carrying ``client-id``, ``client-secret`` and ``tenant-id``
    yields a client secret credential and nothing else is tried. Otherwise
    ``DefaultAzureCredential`` walks environment variables, managed identity
    and developer tool sessions, in the order defined by ``azure-identity``.
    """
    settings = settings or get_settings()
    authority = None
    tenant_id = ""
    client_id = ""
    client_secret = ""

    if connector_uri:
        uri = parse_uri(connector_uri)
        cloud = resolve_cloud(uri.get("environment"))
        # Each cloud defines its Entra ID authority; aad-endpoint replaces it.
        authority = uri.get("aad-endpoint") or cloud.authority_host
        client_id = uri.get("client-id")
        client_secret = uri.get("client-secret")
        tenant_id = uri.get("tenant-id")

    if client_id and client_secret and tenant_id:
        log_event(_logger, "credential_selected", mode="client_secret", tenant_id=tenant_id, authority=authority)
        try:
            return ClientSecretCredential(
                tenant_id=tenant_id,
                client_id=client_id,
                client_secret=client_secret,
                authority=authority,
            )
        except Exception as err:
            raise CredentialError(f"error creating azure client secret credential for tenant {tenant_id!r}") from err

    kwargs: dict[str, object] = {
        "exclude_interactive_browser_credential": settings.exclude_interactive_credential,
    }
    if authority:
        kwargs["authority"] = authority
    if settings.managed_identity_client_id:
        kwargs["managed_identity_client_id"] = settings.managed_identity_client_id

    log_event(_logger, "credential_selected", mode="default_chain", authority=authority)
    try:
        return DefaultAzureCredential(**kwargs)
    except Exception as err:
        raise CredentialError("error creating azure default credential") from err


def credential_factory_for(settings: Settings) -> CredentialFactory:
    def _factory(connector_uri: str | None) -> TokenCredential:
        return resolve_credential(connector_uri, settings=settings)

    return _factory


def create_credential(factory: CredentialFactory, connector_uri: str | None) -> TokenCredential:
    """Run ``factory`` and report any failure as a :class:`CredentialError`.

    Address errors (bad URI, unknown environment) pass through unchanged.
    """
    try:
        return factory(connector_uri)
    except KMSError:
        raise
    except Exception as err:
        raise CredentialError(f"error creating azure credentials: {err}") from err

