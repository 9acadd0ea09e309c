from __future__ import annotations

from dataclasses import dataclass

from azure.keyvault.keys import KeyCurveName, KeyType
from azure.keyvault.keys.crypto import SignatureAlgorithm as KeyVaultSignatureAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from azurekms.domain.models import KeyCreationParams, ProtectionLevel, PublicKey, SignatureAlgorithm
from azurekms.errors import UnsupportedAlgorithmError, UnsupportedKeySizeError

DEFAULT_RSA_KEY_SIZE = 3072

_RSA_KEY_SIZES = {0: DEFAULT_RSA_KEY_SIZE, 2048: 2048, 3072: 3072, 4096: 4096}


@dataclass(frozen=True)
class _KeyShape:
    key_type: KeyType
    curve: KeyCurveName | None = None

    @property
    def is_rsa(self) -> bool:
        return self.key_type in (KeyType.rsa, KeyType.rsa_hsm)

    def key_type_for(self, protection_level: ProtectionLevel) -> KeyType:
        if protection_level != ProtectionLevel.HSM:
            return self.key_type
        if self.key_type == KeyType.ec:
            return KeyType.ec_hsm
        if self.key_type == KeyType.rsa:
            return KeyType.rsa_hsm
        return self.key_type


_EC_P256 = _KeyShape(KeyType.ec, KeyCurveName.p_256)
_EC_P384 = _KeyShape(KeyType.ec, KeyCurveName.p_384)
_EC_P521 = _KeyShape(KeyType.ec, KeyCurveName.p_521)
_RSA = _KeyShape(KeyType.rsa)

_KEY_SHAPES: dict[SignatureAlgorithm, _KeyShape] = {
    SignatureAlgorithm.UNSPECIFIED: _EC_P256,
    SignatureAlgorithm.SHA256_WITH_RSA: _RSA,
    SignatureAlgorithm.SHA384_WITH_RSA: _RSA,
    SignatureAlgorithm.SHA512_WITH_RSA: _RSA,
    SignatureAlgorithm.SHA256_WITH_RSA_PSS: _RSA,
    SignatureAlgorithm.SHA384_WITH_RSA_PSS: _RSA,
    SignatureAlgorithm.SHA512_WITH_RSA_PSS: _RSA,
    SignatureAlgorithm.ECDSA_WITH_SHA256: _EC_P256,
    SignatureAlgorithm.ECDSA_WITH_SHA384: _EC_P384,
    SignatureAlgorithm.ECDSA_WITH_SHA512: _EC_P521,
}


@dataclass(frozen=True)
class SigningAlgorithm:
    """A Key Vault signature algorithm and the digest size it signs."""

    name: str
    digest_size: int
    curve: str | None = None

    @property
    def is_ecdsa(self) -> bool:
        return self.curve is not None


_SIGNING_ALGORITHMS: dict[SignatureAlgorithm, SigningAlgorithm] = {
    SignatureAlgorithm.SHA256_WITH_RSA: SigningAlgorithm(KeyVaultSignatureAlgorithm.rs256.value, 32),
    SignatureAlgorithm.SHA384_WITH_RSA: SigningAlgorithm(KeyVaultSignatureAlgorithm.rs384.value, 48),
    SignatureAlgorithm.SHA512_WITH_RSA: SigningAlgorithm(KeyVaultSignatureAlgorithm.rs512.value, 64),
    SignatureAlgorithm.SHA256_WITH_RSA_PSS: SigningAlgorithm(KeyVaultSignatureAlgorithm.ps256.value, 32),
    SignatureAlgorithm.SHA384_WITH_RSA_PSS: SigningAlgorithm(KeyVaultSignatureAlgorithm.ps384.value, 48),
    SignatureAlgorithm.SHA512_WITH_RSA_PSS: SigningAlgorithm(KeyVaultSignatureAlgorithm.ps512.value, 64),
    SignatureAlgorithm.ECDSA_WITH_SHA256: SigningAlgorithm(
        KeyVaultSignatureAlgorithm.es256.value, 32, KeyCurveName.p_256.value
    ),
    SignatureAlgorithm.ECDSA_WITH_SHA384: SigningAlgorithm(
        KeyVaultSignatureAlgorithm.es384.value, 48, KeyCurveName.p_384.value
    ),
    SignatureAlgorithm.ECDSA_WITH_SHA512: SigningAlgorithm(
        KeyVaultSignatureAlgorithm.es512.value, 64, KeyCurveName.p_521.value
    ),
}

_ECDSA_BY_CURVE = {
    ec.SECP256R1.name: SignatureAlgorithm.ECDSA_WITH_SHA256,
    ec.SECP384R1.name: SignatureAlgorithm.ECDSA_WITH_SHA384,
    ec.SECP521R1.name: SignatureAlgorithm.ECDSA_WITH_SHA512,
}


def _coerce_algorithm(algorithm: SignatureAlgorithm | str | None) -> SignatureAlgorithm:
    if algorithm is None:
        return SignatureAlgorithm.UNSPECIFIED
    try:
        return SignatureAlgorithm(algorithm)
    except ValueError as err:
        raise UnsupportedAlgorithmError(algorithm) from err


def map_algorithm(
    algorithm: SignatureAlgorithm | str | None,
    protection_level: ProtectionLevel = ProtectionLevel.UNSPECIFIED,
    bits: int = 0,
) -> KeyCreationParams:
    """Translate a signature algorithm into Key Vault key creation parameters."""
    algorithm = _coerce_algorithm(algorithm)
    shape = _KEY_SHAPES.get(algorithm)
    if shape is None:
        raise UnsupportedAlgorithmError(algorithm)

    size = None
    if shape.is_rsa:
        size = _RSA_KEY_SIZES.get(bits)
        if size is None:
            raise UnsupportedKeySizeError(bits)

    return KeyCreationParams(
        key_type=shape.key_type_for(protection_level).value,
        curve=shape.curve.value if shape.curve is not None else None,
        size=size,
    )


def signing_algorithm(
    public_key: PublicKey,
    algorithm: SignatureAlgorithm | str | None = None,
) -> SigningAlgorithm:
    """Pick the Key Vault signature algorithm for ``public_key``.

    Without an explicit algorithm EC keys use the ECDSA variant matching
    their curve and RSA keys use PKCS#1 v1.5 with SHA-256.
    """
    algorithm = _coerce_algorithm(algorithm)

    if isinstance(public_key, ec.EllipticCurvePublicKey):
        expected = _ECDSA_BY_CURVE.get(public_key.curve.name)
        if expected is None:
            raise UnsupportedAlgorithmError(algorithm, f"curve {public_key.curve.name} is not supported")
        if algorithm == SignatureAlgorithm.UNSPECIFIED:
            algorithm = expected
        elif algorithm != expected:
            raise UnsupportedAlgorithmError(algorithm, f"key uses curve {public_key.curve.name}")
        return _SIGNING_ALGORITHMS[algorithm]

    if isinstance(public_key, rsa.RSAPublicKey):
        if algorithm == SignatureAlgorithm.UNSPECIFIED:
            algorithm = SignatureAlgorithm.SHA256_WITH_RSA
        choice = _SIGNING_ALGORITHMS.get(algorithm)
        if choice is None or choice.is_ecdsa:
            raise UnsupportedAlgorithmError(algorithm, "key type is RSA")
        return choice

    raise UnsupportedAlgorithmError(algorithm, f"unsupported public key type {type(public_key).__name__}")
