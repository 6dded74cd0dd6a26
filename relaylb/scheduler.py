"""Keeps the backend pool of a server and elects backends for connections."""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from typing import Any, Protocol

from relaylb.backend import Backend, Target
from relaylb.counters import BandwidthStats, ReadWriteCount
from relaylb.metrics import Metrics
from relaylb.stats import Handler

BACKENDS_PUSH_INTERVAL = 2.0

_log = logging.getLogger("relaylb.scheduler")


class OpAction(enum.IntEnum):
    """Operations on a backend's counters."""

    INCREMENT_CONNECTION = 0
    DECREMENT_CONNECTION = 1
    INCREMENT_REFUSED = 2
    INCREMENT_TX = 3
    INCREMENT_RX = 4


class _Balancer(Protocol):
    def elect(self, context: Any, backends: Sequence[Backend]) -> Backend: ...


class _Discovery(Protocol):
    def start(self, on_backends: Callable[[list[Backend]], None]) -> None: ...

    def stop(self) -> None: ...


class _Healthcheck(Protocol):
    def start(self, on_result: Callable[[Target, bool], None]) -> None: ...

    def stop(self) -> None: ...

    def update_targets(self, targets: list[Target]) -> None: ...

    def initial_backend_healthy(self) -> bool: ...


def _copy_backend(backend: Backend) -> Backend:
    return replace(backend, stats=replace(backend.stats))


class Scheduler:
    """Tracks discovered backends, their health and counters, and elects backends."""

    def __init__(
        self,
        balancer: _Balancer,
        stats_handler: Handler,
        discovery: _Discovery | None = None,
        healthcheck: _Healthcheck | None = None,
        metrics: Metrics | None = None,
        push_interval: float = BACKENDS_PUSH_INTERVAL,
    ) -> None:
        self.balancer = balancer
        self.stats_handler = stats_handler
        self.discovery = discovery
        self.healthcheck = healthcheck
        self.metrics = metrics
        self.push_interval = push_interval
        self._backends: dict[Target, Backend] = {}
        self._lock = threading.RLock()
        self._stopping = threading.Event()
        self._pusher: threading.Thread | None = None

    @property
    def name(self) -> str:
        return self.stats_handler.name

    def start(self) -> None:
        """Start discovery, healthchecks and periodic pushing of backends to stats."""
        _log.info("Starting scheduler %s", self.name)
        self._stopping.clear()
        self.stats_handler.backend_stats_listener = self._on_backend_stats
        if self.discovery is not None:
            self.discovery.start(self._on_discovered)
        if self.healthcheck is not None:
            self.healthcheck.start(self.handle_backend_live_change)
        self._pusher = threading.Thread(target=self._push_loop, daemon=True)
        self._pusher.start()

    def stop(self) -> None:
        """Stop background work and drop this server's metrics."""
        _log.info("Stopping scheduler %s", self.name)
        self._stopping.set()
        pusher, self._pusher = self._pusher, None
        if pusher is not None and pusher is not threading.current_thread():
            pusher.join()
        if self.discovery is not None:
            self.discovery.stop()
        if self.healthcheck is not None:
            self.healthcheck.stop()
        self.stats_handler.backend_stats_listener = None
        with self._lock:
            backends = dict(self._backends)
        if self.metrics is not None:
            self.metrics.remove_server(self.name, backends)

    def _push_loop(self) -> None:
        while not self._stopping.wait(self.push_interval):
            self.stats_handler.set_backends(self.backends())

    def _on_backend_stats(self, bs: BandwidthStats) -> None:
        if bs.target is not None:
            self.handle_backend_stats_change(bs.target, bs)

    def _on_discovered(self, backends: Iterable[Backend]) -> None:
        with self._lock:
            self.handle_backends_update(backends)
            targets = self.targets()
        if self.healthcheck is not None:
            self.healthcheck.update_targets(targets)
        self.stats_handler.backends_counter.update_counters(targets)

    def targets(self) -> list[Target]:
        """Targets of the current backends."""
        with self._lock:
            return list(self._backends)

    def backends(self) -> list[Backend]:
        """Copies of the current backends."""
        with self._lock:
            return [_copy_backend(b) for b in self._backends.values()]

    def handle_backend_stats_change(self, target: Target, bs: BandwidthStats) -> None:
        with self._lock:
            backend = self._backends.get(target)
            if backend is None:
                _log.warning("No backends for checkResult %s", target)
                return
            backend.stats.rx_bytes = bs.rx_total
            backend.stats.tx_bytes = bs.tx_total
            backend.stats.rx_second = bs.rx_second
            backend.stats.tx_second = bs.tx_second
            if self.metrics is not None:
                self.metrics.report_backend_stats_change(self.name, target, self._backends)

    def handle_backend_live_change(self, target: Target, live: bool) -> None:
        with self._lock:
            backend = self._backends.get(target)
            if backend is None:
                _log.warning("No backends for checkResult %s", target)
                return
            backend.stats.live = live
        if self.metrics is not None:
            self.metrics.report_backend_live_change(self.name, target, live)

    def _initially_live(self) -> bool:
        if self.healthcheck is None:
            return True
        return self.healthcheck.initial_backend_healthy()

    def handle_backends_update(self, backends: Iterable[Backend]) -> None:
        """Merge a freshly discovered backend list into the pool."""
        with self._lock:
            for b in self._backends.values():
                b.stats.discovered = False

            for b in backends:
                old = self._backends.get(b.target)
                if old is not None:
                    old.priority = b.priority
                    old.weight = b.weight
                    old.sni = b.sni
                    old.stats.discovered = True
                    continue
                new = _copy_backend(b)
                new.stats.discovered = True
                new.stats.live = self._initially_live()
                self._backends[new.target] = new

            for target, b in list(self._backends.items()):
                if b.stats.discovered or b.stats.active_connections > 0:
                    continue
                if self.metrics is not None:
                    self.metrics.remove_backend(self.name, b)
                del self._backends[target]

    def handle_op(self, target: Target, op: OpAction, param: int | None = None) -> None:
        """Apply an operation to a backend's counters."""
        if op == OpAction.INCREMENT_TX:
            self.stats_handler.add_traffic(ReadWriteCount(count_write=param or 0, target=target))
            return
        if op == OpAction.INCREMENT_RX:
            self.stats_handler.add_traffic(ReadWriteCount(count_read=param or 0, target=target))
            return

        with self._lock:
            backend = self._backends.get(target)
            if backend is None:
                _log.warning("Trying op %s on not tracked target %s", op, target)
                return
            match op:
                case OpAction.INCREMENT_REFUSED:
                    backend.stats.refused_connections += 1
                case OpAction.INCREMENT_CONNECTION:
                    backend.stats.active_connections += 1
                    backend.stats.total_connections += 1
                case OpAction.DECREMENT_CONNECTION:
                    backend.stats.active_connections -= 1
                case _:
                    _log.warning("Don't know how to handle op %s", op)
            if self.metrics is not None:
                self.metrics.report_op(self.name, target, self._backends)

    def take_backend(self, context: Any) -> Backend:
        """Elect a live, discovered backend; errors of the balancer propagate."""
        with self._lock:
            candidates = [
                b for b in self._backends.values() if b.stats.live and b.stats.discovered
            ]
            backend = self.balancer.elect(context, candidates)
            return _copy_backend(backend)

    def increment_refused(self, backend: Backend) -> None:
        self.handle_op(backend.target, OpAction.INCREMENT_REFUSED)

    def increment_connection(self, backend: Backend) -> None:
        self.handle_op(backend.target, OpAction.INCREMENT_CONNECTION)

    def decrement_connection(self, backend: Backend) -> None:
        self.handle_op(backend.target, OpAction.DECREMENT_CONNECTION)

    def increment_rx(self, backend: Backend, count: int) -> None:
        self.handle_op(backend.target, OpAction.INCREMENT_RX, count)

    def increment_tx(self, backend: Backend, count: int) -> None:
        self.handle_op(backend.target, OpAction.INCREMENT_TX, count)