"""Per-server traffic stats and the store they are looked up in."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace

from relaylb.backend import Backend
from relaylb.counters import (
    BackendsBandwidthCounter,
    BandwidthCounter,
    BandwidthStats,
    ReadWriteCount,
)
from relaylb.metrics import Metrics

INTERVAL = 2.0


@dataclass
class Stats:
    """Current stats of a server."""

    active_connections: int = 0
    rx_total: int = 0
    tx_total: int = 0
    rx_second: int = 0
    tx_second: int = 0
    backends: list[Backend] = field(default_factory=list)


class StatsStore:
    """Stats handlers by server name."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._handlers: dict[str, Handler] = {}

    def _add(self, handler: Handler) -> None:
        with self._lock:
            self._handlers[handler.name] = handler

    def _remove(self, name: str) -> None:
        with self._lock:
            self._handlers.pop(name, None)

    def get_stats(self, name: str) -> Stats | None:
        """Return the latest stats of the server, or None if it is unknown."""
        with self._lock:
            handler = self._handlers.get(name)
        if handler is None:
            return None
        return handler.latest_stats


default_store = StatsStore()


def get_stats(name: str) -> Stats | None:
    """Return the latest stats of a server in the default store."""
    return default_store.get_stats(name)


class Handler:
    """Collects traffic, connection and backend data of one server."""

    def __init__(
        self,
        name: str,
        store: StatsStore | None = None,
        metrics: Metrics | None = None,
        interval: float = INTERVAL,
    ) -> None:
        self.name = name
        self.metrics = metrics
        self.backend_stats_listener: Callable[[BandwidthStats], None] | None = None
        self._store = store if store is not None else default_store
        self._lock = threading.Lock()
        self._latest = Stats()
        self.server_counter = BandwidthCounter(interval, self._on_server_stats)
        self.backends_counter = BackendsBandwidthCounter(self._on_backend_stats, interval)
        self._store._add(self)

    @property
    def latest_stats(self) -> Stats:
        """A copy of the current stats."""
        with self._lock:
            return replace(self._latest, backends=list(self._latest.backends))

    def _on_server_stats(self, bs: BandwidthStats) -> None:
        with self._lock:
            self._latest.rx_total = bs.rx_total
            self._latest.tx_total = bs.tx_total
            self._latest.rx_second = bs.rx_second
            self._latest.tx_second = bs.tx_second
        if self.metrics is not None:
            self.metrics.report_stats_change(self.name, bs)

    def _on_backend_stats(self, bs: BandwidthStats) -> None:
        listener = self.backend_stats_listener
        if listener is not None:
            listener(bs)

    def start(self) -> None:
        """Start periodic counting."""
        self.server_counter.start()
        self.backends_counter.start()

    def stop(self) -> None:
        """Stop counting and drop this handler from its store."""
        self.server_counter.stop()
        self.backends_counter.stop()
        self._store._remove(self.name)

    def add_traffic(self, rwc: ReadWriteCount) -> None:
        """Count traffic for the server and for the backend it went to."""
        self.server_counter.add_traffic(rwc)
        self.backends_counter.add_traffic(rwc)

    def set_connections(self, connections: int) -> None:
        with self._lock:
            self._latest.active_connections = connections
        if self.metrics is not None:
            self.metrics.report_connections_change(self.name, connections)

    def set_backends(self, backends: Iterable[Backend]) -> None:
        with self._lock:
            self._latest.backends = list(backends)