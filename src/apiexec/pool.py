import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

C = TypeVar("C")


def normalize_endpoint(endpoint: str) -> str:
    if not endpoint or not endpoint.strip():
        raise ValueError("Base URL cannot be null or empty")
    return endpoint.strip().rstrip("/")


class ClientPool(Generic[C]):
    """Endpoint -> client registry. One client per base endpoint, created on first use.

    Get-or-create runs under a single lock; creation is cheap (no I/O) so contention
    stays negligible. Endpoints compare case-insensitively.
    """

    def __init__(self, factory: Callable[[str], C]):
        self._factory = factory
        self._clients: dict[str, C] = {}
        self._lock = threading.Lock()
        self._closed = False
        self._logger = logging.getLogger("apiexec")

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, endpoint: str) -> bool:
        return normalize_endpoint(endpoint).lower() in self._clients

    def get(self, endpoint: str) -> C:
        base = normalize_endpoint(endpoint)
        key = base.lower()
        with self._lock:
            if self._closed:
                raise RuntimeError("client pool is closed")
            client = self._clients.get(key)
            if client is None:
                client = self._factory(base)
                self._clients[key] = client
                self._logger.debug(f"created transport client for endpoint={base}")
            return client

    def drain(self) -> list[C]:
        """Close the pool and hand back every client for the caller to dispose of."""
        with self._lock:
            self._closed = True
            clients = list(self._clients.values())
            self._clients.clear()
        return clients
