from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from azurekms.domain.models import CreateKeyRequest, CreateKeyResponse, KeyCreationParams, PublicKey


class VaultClient(ABC):
    """Authenticated handle bound to a single vault endpoint."""

    @abstractmethod
    def get_key(self, name: str, version: str, *, timeout: float) -> Any:
        raise NotImplementedError

    @abstractmethod
    def create_key(
        self,
        name: str,
        params: KeyCreationParams,
        *,
        not_before: datetime,
        timeout: float,
    ) -> Any:
        raise NotImplementedError

    @abstractmethod
    def sign(self, name: str, version: str, algorithm: str, digest: bytes, *, timeout: float) -> bytes:
        raise NotImplementedError


class Signer(ABC):
    @abstractmethod
    def public_key(self) -> PublicKey:
        raise NotImplementedError

    @abstractmethod
    def sign(self, digest: bytes, algorithm: Any = None, timeout: float | None = None) -> bytes:
        raise NotImplementedError


class KeyManager(ABC):
    @abstractmethod
    def get_public_key(self, name: str, timeout: float | None = None) -> PublicKey:
        raise NotImplementedError

    @abstractmethod
    def create_key(self, request: CreateKeyRequest, timeout: float | None = None) -> CreateKeyResponse:
        raise NotImplementedError

    @abstractmethod
    def create_signer(self, signing_key: str, timeout: float | None = None) -> Signer:
        raise NotImplementedError

    @abstractmethod
    def validate_name(self, name: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return None
