from __future__ import annotations

from enum import Enum
from typing import Union

from cryptography.hazmat.primitives.asymmetric import ec, rsa
from pydantic import BaseModel, ConfigDict, Field

PublicKey = Union[rsa.RSAPublicKey, ec.EllipticCurvePublicKey]


class ProtectionLevel(str, Enum):
    UNSPECIFIED = "unspecified"
    SOFTWARE = "software"
    HSM = "hsm"


class SignatureAlgorithm(str, Enum):
    UNSPECIFIED = "unspecified"
    SHA256_WITH_RSA = "SHA256-RSA"
    SHA384_WITH_RSA = "SHA384-RSA"
    SHA512_WITH_RSA = "SHA512-RSA"
    SHA256_WITH_RSA_PSS = "SHA256-RSAPSS"
    SHA384_WITH_RSA_PSS = "SHA384-RSAPSS"
    SHA512_WITH_RSA_PSS = "SHA512-RSAPSS"
    ECDSA_WITH_SHA256 = "ECDSA-SHA256"
    ECDSA_WITH_SHA384 = "ECDSA-SHA384"
    ECDSA_WITH_SHA512 = "ECDSA-SHA512"
    PURE_ED25519 = "Ed25519"

    def __str__(self) -> str:
        return self.value


class KeyCreationParams(BaseModel):
    key_type: str
    curve: str | None = None
    size: int | None = None
    key_operations: list[str] = Field(default_factory=lambda: ["sign", "verify"])


class CreateKeyRequest(BaseModel):
    name: str
    signature_algorithm: SignatureAlgorithm = SignatureAlgorithm.UNSPECIFIED
    bits: int = 0
    protection_level: ProtectionLevel = ProtectionLevel.UNSPECIFIED


class CreateKeyResponse(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    public_key: PublicKey
    signing_key: str
