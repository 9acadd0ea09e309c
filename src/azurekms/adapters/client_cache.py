from __future__ import annotations

import logging
from threading import Event, Lock
from typing import Callable

from azurekms.domain.interfaces import VaultClient
from azurekms.errors import DeadlineExceededError, KMSError, RemoteError
from azurekms.policies.addressing import vault_url as build_vault_url
from azurekms.telemetry import log_event

_logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], VaultClient]


class _Pending:
    """Construction of one endpoint's client that other callers can wait on."""

    def __init__(self) -> None:
        self.done = Event()
        self.client: VaultClient | None = None
        self.error: Exception | None = None


class ClientCache:
    """Lazily built vault clients, one per endpoint, kept for the cache's lifetime.

    The first caller for an endpoint runs the factory outside the lock while
    later callers for the same endpoint wait for its outcome. A failed
    construction raises in the caller that ran it, reaches each waiter as a
    ``RemoteError`` caused by that failure, and is then forgotten,
    so the next call tries again. Callers for other endpoints never wait.
    """

    def __init__(self, dns_suffix: str, factory: ClientFactory) -> None:
        self.dns_suffix = dns_suffix
        self._factory = factory
        self._clients: dict[str, VaultClient] = {}
        self._pending: dict[str, _Pending] = {}
        self._lock = Lock()

    def get(self, vault: str, timeout: float | None = None) -> VaultClient:
        """Return the client for ``vault``, a vault URL or a bare vault name.

        ``timeout`` bounds how long this caller waits on a construction
        started by another caller; the construction itself keeps going.
        """
        endpoint = vault if "://" in vault else build_vault_url(vault, self.dns_suffix)

        with self._lock:
            client = self._clients.get(endpoint)
            if client is not None:
                return client
            pending = self._pending.get(endpoint)
            owner = pending is None
            if pending is None:
                pending = _Pending()
                self._pending[endpoint] = pending

        if owner:
            return self._construct(endpoint, pending)

        if not pending.done.wait(timeout):
            raise DeadlineExceededError(f"vault client construction for {endpoint}", timeout or 0.0)
        if pending.client is None:
            # Each waiter gets its own error; the shared one stays the cause.
            raise RemoteError("client construction", f"shared attempt for {endpoint} failed") from pending.error
        return pending.client

    def _construct(self, endpoint: str, pending: _Pending) -> VaultClient:
        try:
            client = self._factory(endpoint)
        except KMSError as err:
            pending.error = err
            raise
        except Exception as err:
            pending.error = RemoteError("client construction", f"{endpoint}: {err}")
            raise pending.error from err
        except BaseException as err:
            # Interrupted; waiters still need an outcome.
            pending.error = RemoteError("client construction", f"{endpoint}: interrupted by {type(err).__name__}")
            pending.error.__cause__ = err
            raise
        else:
            pending.client = client
        finally:
            with self._lock:
                if pending.client is not None:
                    self._clients[endpoint] = pending.client
                self._pending.pop(endpoint, None)
            pending.done.set()
            if pending.error is not None:
                _logger.warning("vault_client_create_failed endpoint=%s err=%s", endpoint, pending.error)

        log_event(_logger, "vault_client_created", endpoint=endpoint)
        return client
