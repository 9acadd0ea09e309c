from __future__ import annotations


class KMSError(Exception):
    """Base class for every error raised by the Key Vault connector."""


class MalformedAddressError(KMSError, ValueError):
    def __init__(self, raw: str, reason: str) -> None:
        super().__init__(f"key uri {raw!r} is not valid: {reason}")
        self.raw = raw
        self.reason = reason


class EmptyNameError(KMSError, ValueError):
    def __init__(self, field: str = "name", raw: str = "") -> None:
        if raw:
            message = f"key uri {raw!r} is not valid: {field} is missing"
        else:
            message = f"{field} cannot be empty"
        super().__init__(message)
        self.field = field
        self.raw = raw


class MissingVaultError(KMSError, ValueError):
    def __init__(self, raw: str) -> None:
        super().__init__(f"key uri {raw!r} is not valid: vault is missing")
        self.raw = raw


class UnknownEnvironmentError(KMSError, ValueError):
    def __init__(self, environment: str) -> None:
        super().__init__(f"unknown key vault cloud environment with name {environment!r}")
        self.environment = environment


class CredentialError(KMSError):
    pass


class UnsupportedAlgorithmError(KMSError, ValueError):
    def __init__(self, algorithm: object, detail: str = "") -> None:
        message = f"key vault does not support signature algorithm {str(algorithm)!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.algorithm = algorithm


class UnsupportedKeySizeError(KMSError, ValueError):
    def __init__(self, bits: int) -> None:
        super().__init__(f"key vault does not support key size {bits}")
        self.bits = bits


class DeadlineExceededError(KMSError, TimeoutError):
    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(f"{operation} did not complete within {timeout:g}s")
        self.operation = operation
        self.timeout = timeout


class RemoteError(KMSError):
    """A Key Vault call failed; the SDK exception is kept as ``__cause__``."""

    def __init__(self, operation: str, detail: str = "") -> None:
        message = f"key vault {operation} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.operation = operation


class NotFoundError(RemoteError):
    pass
