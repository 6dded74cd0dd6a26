"""Bandwidth counters for a server and for each of its backends."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

from relaylb.backend import Target

INTERVAL = 2.0


@dataclass(frozen=True)
class ReadWriteCount:
    """Bytes read and written, optionally for a given target."""

    count_read: int = 0
    count_write: int = 0
    target: Target | None = None

    def is_zero(self) -> bool:
        return self.count_read == 0 and self.count_write == 0


@dataclass(frozen=True)
class BandwidthStats:
    """Total and per-second traffic."""

    rx_total: int = 0
    tx_total: int = 0
    rx_second: int = 0
    tx_second: int = 0
    target: Target | None = None


class BandwidthCounter:
    """Accumulates traffic and reports stats to ``out`` every ``interval`` seconds."""

    def __init__(self, interval: float, out: Callable[[BandwidthStats], None], target: Target | None = None):
        if int(interval) < 1:
            raise ValueError("interval should be at least one second")
        self.interval = interval
        self.out = out
        self.stats = BandwidthStats(target=target)
        self._rx_last = 0
        self._tx_last = 0
        self._new_traffic = False
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            self.tick()

    def stop(self) -> None:
        self._stopped.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._thread = None

    def add_traffic(self, rwc: ReadWriteCount) -> None:
        with self._lock:
            self._new_traffic = True
            self.stats = replace(
                self.stats,
                rx_total=self.stats.rx_total + rwc.count_read,
                tx_total=self.stats.tx_total + rwc.count_write,
            )

    def tick(self) -> BandwidthStats:
        """Compute per-second rates, report them and return the stats."""
        with self._lock:
            if not self._new_traffic:
                self.stats = replace(self.stats, rx_second=0, tx_second=0)
            else:
                seconds = int(self.interval)
                self.stats = replace(
                    self.stats,
                    rx_second=(self.stats.rx_total - self._rx_last) // seconds,
                    tx_second=(self.stats.tx_total - self._tx_last) // seconds,
                )
                self._rx_last = self.stats.rx_total
                self._tx_last = self.stats.tx_total
                self._new_traffic = False
            stats = self.stats
        self.out(stats)
        return stats


class BackendsBandwidthCounter:
    """Keeps one BandwidthCounter per backend target and routes traffic to them."""

    def __init__(self, out: Callable[[BandwidthStats], None], interval: float = INTERVAL):
        self.out = out
        self.interval = interval
        self.counters: dict[Target, BandwidthCounter] = {}
        self._lock = threading.Lock()
        self._started = False

    def start(self) -> None:
        with self._lock:
            self._started = True
            for counter in self.counters.values():
                if not counter.running:
                    counter.start()

    def stop(self) -> None:
        with self._lock:
            self._started = False
            counters = list(self.counters.values())
            self.counters = {}
        for counter in counters:
            counter.stop()

    def update_counters(self, targets: Iterable[Target]) -> None:
        """Keep counters of listed targets, create missing ones and stop the rest."""
        wanted = list(targets)
        with self._lock:
            result: dict[Target, BandwidthCounter] = {}
            for target in wanted:
                counter = self.counters.get(target)
                if counter is None:
                    counter = BandwidthCounter(self.interval, self.out, target=target)
                    if self._started:
                        counter.start()
                result[target] = counter
            removed = [c for t, c in self.counters.items() if t not in result]
            self.counters = result
        for counter in removed:
            counter.stop()

    def add_traffic(self, rwc: ReadWriteCount) -> None:
        """Route traffic to its target's counter; unknown targets are ignored."""
        with self._lock:
            counter = self.counters.get(rwc.target)
        if counter is not None:
            counter.add_traffic(rwc)