from __future__ import annotations

from cryptography.hazmat.primitives.asymmetric import ec, rsa
import pytest

from azurekms.domain.models import ProtectionLevel, SignatureAlgorithm
from azurekms.errors import UnsupportedAlgorithmError, UnsupportedKeySizeError
from azurekms.policies.algorithms import map_algorithm, signing_algorithm


@pytest.mark.parametrize(
    ("algorithm", "curve"),
    [
        (SignatureAlgorithm.UNSPECIFIED, "P-256"),
        (SignatureAlgorithm.ECDSA_WITH_SHA256, "P-256"),
        (SignatureAlgorithm.ECDSA_WITH_SHA384, "P-384"),
        (SignatureAlgorithm.ECDSA_WITH_SHA512, "P-521"),
    ],
)
def test_ecdsa_algorithms_map_to_ec_curves(algorithm: SignatureAlgorithm, curve: str) -> None:
    params = map_algorithm(algorithm, ProtectionLevel.SOFTWARE, bits=1024)
    assert params.key_type == "EC"
    assert params.curve == curve
    assert params.size is None
    assert params.key_operations == ["sign", "verify"]


def test_hsm_protection_selects_hardware_key_types() -> None:
    assert map_algorithm(SignatureAlgorithm.ECDSA_WITH_SHA384, ProtectionLevel.HSM).key_type == "EC-HSM"
    assert map_algorithm(SignatureAlgorithm.SHA256_WITH_RSA_PSS, ProtectionLevel.HSM).key_type == "RSA-HSM"
    assert map_algorithm(SignatureAlgorithm.SHA256_WITH_RSA, ProtectionLevel.UNSPECIFIED).key_type == "RSA"


@pytest.mark.parametrize(
    "algorithm",
    [
        SignatureAlgorithm.SHA256_WITH_RSA,
        SignatureAlgorithm.SHA384_WITH_RSA,
        SignatureAlgorithm.SHA512_WITH_RSA,
        SignatureAlgorithm.SHA256_WITH_RSA_PSS,
        SignatureAlgorithm.SHA384_WITH_RSA_PSS,
        SignatureAlgorithm.SHA512_WITH_RSA_PSS,
    ],
)
def test_rsa_algorithms_map_to_rsa_keys(algorithm: SignatureAlgorithm) -> None:
    params = map_algorithm(algorithm, ProtectionLevel.SOFTWARE, bits=2048)
    assert params.key_type == "RSA"
    assert params.curve is None
    assert params.size == 2048


def test_rsa_default_size_matches_3072() -> None:
    default = map_algorithm(SignatureAlgorithm.SHA256_WITH_RSA, ProtectionLevel.SOFTWARE, bits=0)
    explicit = map_algorithm(SignatureAlgorithm.SHA256_WITH_RSA, ProtectionLevel.SOFTWARE, bits=3072)
    assert default == explicit
    assert default.size == 3072
    assert map_algorithm(SignatureAlgorithm.SHA256_WITH_RSA, bits=4096).size == 4096


@pytest.mark.parametrize("bits", [1024, 1, 8192])
def test_rsa_rejects_unsupported_sizes(bits: int) -> None:
    with pytest.raises(UnsupportedKeySizeError) as err:
        map_algorithm(SignatureAlgorithm.SHA256_WITH_RSA, ProtectionLevel.SOFTWARE, bits=bits)
    assert err.value.bits == bits
    assert str(bits) in str(err.value)


def test_unknown_algorithms_are_rejected() -> None:
    with pytest.raises(UnsupportedAlgorithmError, match="Ed25519"):
        map_algorithm(SignatureAlgorithm.PURE_ED25519)
    with pytest.raises(UnsupportedAlgorithmError, match="DSA-SHA1"):
        map_algorithm("DSA-SHA1")


def test_algorithm_strings_are_accepted() -> None:
    assert map_algorithm("ECDSA-SHA384").curve == "P-384"


def test_signing_algorithm_defaults_from_key() -> None:
    ec_key = ec.generate_private_key(ec.SECP384R1()).public_key()
    rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048).public_key()

    ec_choice = signing_algorithm(ec_key)
    assert ec_choice.name == "ES384"
    assert ec_choice.digest_size == 48
    assert ec_choice.is_ecdsa

    rsa_choice = signing_algorithm(rsa_key)
    assert rsa_choice.name == "RS256"
    assert not rsa_choice.is_ecdsa
    assert signing_algorithm(rsa_key, SignatureAlgorithm.SHA512_WITH_RSA_PSS).name == "PS512"


def test_signing_algorithm_rejects_mismatched_keys() -> None:
    ec_key = ec.generate_private_key(ec.SECP256R1()).public_key()
    rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048).public_key()

    with pytest.raises(UnsupportedAlgorithmError):
        signing_algorithm(ec_key, SignatureAlgorithm.ECDSA_WITH_SHA384)
    with pytest.raises(UnsupportedAlgorithmError):
        signing_algorithm(ec_key, SignatureAlgorithm.SHA256_WITH_RSA)
    with pytest.raises(UnsupportedAlgorithmError):
        signing_algorithm(rsa_key, SignatureAlgorithm.ECDSA_WITH_SHA256)
