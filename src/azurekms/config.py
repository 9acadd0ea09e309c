from __future__ import annotations

from dataclasses import dataclass
import os
from time import monotonic

from dotenv import find_dotenv, load_dotenv

from azurekms.errors import DeadlineExceededError

# Applied to every remote call that does not carry its own deadline. The
# Azure SDK transport otherwise waits up to 300s per read.
DEFAULT_TIMEOUT_SECONDS = 15.0


@dataclass(frozen=True)
class Settings:
    connector_uri: str = ""
    default_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    managed_identity_client_id: str = ""
    exclude_interactive_credential: bool = True


def _parse_bool(raw: str, default: bool) -> bool:
    text = (raw or "").strip().lower()
    if not text:
        return default
    return text in {"1", "true", "yes", "y", "on"}


def _parse_timeout(raw: str) -> float:
    text = (raw or "").strip()
    if not text:
        return DEFAULT_TIMEOUT_SECONDS
    value = float(text)
    if value <= 0:
        raise ValueError("AZUREKMS_TIMEOUT_SECONDS must be greater than zero")
    return value


def get_settings() -> Settings:
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    return Settings(
        connector_uri=os.getenv("AZUREKMS_URI", "").strip(),
        default_timeout_seconds=_parse_timeout(os.getenv("AZUREKMS_TIMEOUT_SECONDS", "")),
        managed_identity_client_id=os.getenv("AZUREKMS_MANAGED_IDENTITY_CLIENT_ID", "").strip(),
        exclude_interactive_credential=_parse_bool(
            os.getenv("AZUREKMS_EXCLUDE_INTERACTIVE_CREDENTIAL", "true"), default=True
        ),
    )


def resolve_timeout(timeout: float | None, default: float = DEFAULT_TIMEOUT_SECONDS) -> float:
    """Return the caller's deadline for a remote call, or ``default`` when none was given."""
    if timeout is None:
        return default
    if timeout <= 0:
        raise ValueError(f"timeout must be greater than zero, got {timeout!r}")
    return float(timeout)


def deadline_after(timeout: float) -> float:
    return monotonic() + timeout


def time_remaining(deadline: float, operation: str, timeout: float) -> float:
    """Seconds left before ``deadline``; waiting for a vault client spends the same budget."""
    remaining = deadline - monotonic()
    if remaining <= 0:
        raise DeadlineExceededError(operation, timeout)
    return remaining
