from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from azurekms.errors import UnknownEnvironmentError


@dataclass(frozen=True)
class CloudProfile:
    name: str
    authority_host: str
    dns_suffix: str
    service_endpoints: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


AZURE_PUBLIC = CloudProfile(
    name="AzurePublicCloud",
    authority_host="https://login.microsoftonline.com/",
    dns_suffix="vault.azure.net",
    service_endpoints=MappingProxyType(
        {
            "resource_manager": "https://management.azure.com/",
            "resource_manager_audience": "https://management.core.windows.net/",
        }
    ),
)

AZURE_US_GOVERNMENT = CloudProfile(
    name="AzureUSGovernmentCloud",
    authority_host="https://login.microsoftonline.us/",
    dns_suffix="vault.usgovcloudapi.net",
    service_endpoints=MappingProxyType(
        {
            "resource_manager": "https://management.usgovcloudapi.net",
            "resource_manager_audience": "https://management.core.usgovcloudapi.net",
        }
    ),
)

AZURE_CHINA = CloudProfile(
    name="AzureChinaCloud",
    authority_host="https://login.chinacloudapi.cn/",
    dns_suffix="vault.azure.cn",
    service_endpoints=MappingProxyType(
        {
            "resource_manager": "https://management.chinacloudapi.cn",
            "resource_manager_audience": "https://management.core.chinacloudapi.cn",
        }
    ),
)

# The German sovereign cloud is not listed by the SDKs anymore; these
# endpoints are kept as published and have not been checked against a live
# deployment.
AZURE_GERMANY = CloudProfile(
    name="AzureGermanCloud",
    authority_host="https://login.microsoftonline.de/",
    dns_suffix="vault.microsoftazure.de",
)

_ALIASES: dict[str, CloudProfile] = {
    "": AZURE_PUBLIC,
    "public": AZURE_PUBLIC,
    "azurecloud": AZURE_PUBLIC,
    "azurepubliccloud": AZURE_PUBLIC,
    "usgov": AZURE_US_GOVERNMENT,
    "azureusgovernment": AZURE_US_GOVERNMENT,
    "azureusgovernmentcloud": AZURE_US_GOVERNMENT,
    "china": AZURE_CHINA,
    "azurechinacloud": AZURE_CHINA,
    "german": AZURE_GERMANY,
    "germany": AZURE_GERMANY,
    "azuregermancloud": AZURE_GERMANY,
}


def resolve_cloud(name: str | None) -> CloudProfile:
    """Return the cloud profile for an environment name or one of its aliases.

    Matching is case-insensitive and an empty name selects the public cloud.
    """
    profile = _ALIASES.get((name or "").strip().lower())
    if profile is None:
        raise UnknownEnvironmentError(name or "")
    return profile
