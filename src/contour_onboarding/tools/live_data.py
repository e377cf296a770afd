"""Live system data for the prompt context, cached per customer.

The three lookups run in parallel and fail independently. A result is
cached for ``ttl`` seconds so a burst of turns does not hammer the
collaborators. Concurrent refreshes of the same customer are harmless:
the last writer wins.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from pydantic import BaseModel

from .system_clients import SystemClients

logger = logging.getLogger(__name__)


class LiveSystemData(BaseModel):
    asset_inventory: dict[str, Any] | None = None
    topology: dict[str, Any] | None = None
    graph_summary: dict[str, Any] | None = None

    @property
    def is_empty(self) -> bool:
        return self.asset_inventory is None and self.topology is None and self.graph_summary is None


class TTLCache:
    """Small thread-safe TTL cache with an injectable clock."""

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl]
            for k in expired:
                del self._entries[k]
            self._entries[key] = (now, value)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class LiveDataProvider:
    """Fetch asset inventory, topology and graph summary for a customer."""

    def __init__(self, clients: SystemClients, cache: TTLCache | None = None) -> None:
        self.clients = clients
        self.cache = cache or TTLCache()

    def _inventory(self, customer_id: str) -> dict[str, Any] | None:
        data = self.clients.aod.get_asset_inventory(customer_id)
        return data if data.get("systems") else None

    def _topology(self, customer_id: str) -> dict[str, Any] | None:
        data = self.clients.aam.get_topology(customer_id)
        return data if data.get("connections") else None

    def _graph(self, customer_id: str) -> dict[str, Any] | None:
        return self.clients.dcl.get_graph_summary(customer_id)

    def fetch(self, customer_id: str) -> LiveSystemData:
        cached = self.cache.get(customer_id)
        if cached is not None:
            return cached

        lookups = {
            "asset_inventory": self._inventory,
            "topology": self._topology,
            "graph_summary": self._graph,
        }
        results: dict[str, Any] = {}
        with ThreadPoolExecutor(max_workers=len(lookups)) as pool:
            futures = {name: pool.submit(fn, customer_id) for name, fn in lookups.items()}
            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except Exception as exc:
                    logger.warning("Live data lookup %s failed for %s: %s", name, customer_id, exc)
                    results[name] = None

        data = LiveSystemData(**results)
        self.cache.set(customer_id, data)
        return data
