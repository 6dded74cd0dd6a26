"""Gauges describing servers and backends, exposed in the Prometheus text format."""

from __future__ import annotations

import logging
import platform
import threading
from collections.abc import Iterable, Mapping, Sequence
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from relaylb.backend import Backend, Target
    from relaylb.counters import BandwidthStats

NAMESPACE = "relaylb"

_log = logging.getLogger("relaylb.metrics")

_SERVER_LABELS = ("server",)
_BACKEND_LABELS = ("server", "host", "port")


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_value(value: float) -> str:
    value = float(value)
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


class GaugeVec:
    """A gauge partitioned by a fixed set of label names."""

    def __init__(self, name: str, help: str, label_names: Iterable[str]) -> None:
        self.name = name
        self.help = help
        self.label_names = tuple(label_names)
        self._values: dict[tuple[str, ...], float] = {}
        self._lock = threading.Lock()

    def _key(self, labels: Sequence[str]) -> tuple[str, ...]:
        key = tuple(str(v) for v in labels)
        if len(key) != len(self.label_names):
            raise ValueError(
                f"{self.name}: expected {len(self.label_names)} label values, got {len(key)}"
            )
        return key

    def set(self, labels: Sequence[str], value: float) -> None:
        """Set the value of the gauge for the given label values."""
        key = self._key(labels)
        with self._lock:
            self._values[key] = float(value)

    def delete(self, labels: Sequence[str]) -> bool:
        """Remove the series with the given label values; tell whether it existed."""
        key = self._key(labels)
        with self._lock:
            return self._values.pop(key, None) is not None

    def samples(self) -> dict[tuple[str, ...], float]:
        """Return a copy of all series, keyed by label values."""
        with self._lock:
            return dict(self._values)

    def _render(self) -> list[str]:
        lines = [f"# HELP {self.name} {self.help}", f"# TYPE {self.name} gauge"]
        for key, value in sorted(self.samples().items()):
            if key:
                labels = ",".join(
                    f'{name}="{_escape(v)}"' for name, v in zip(self.label_names, key)
                )
                lines.append(f"{self.name}{{{labels}}} {_format_value(value)}")
            else:
                lines.append(f"{self.name} {_format_value(value)}")
        return lines


class _MetricsHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    metrics: Metrics


class _MetricsHTTPServer6(_MetricsHTTPServer):
    import socket as _socket

    address_family = _socket.AF_INET6


class _MetricsRequestHandler(BaseHTTPRequestHandler):
    server: _MetricsHTTPServer

    def do_GET(self) -> None:  # noqa: N802
        if self.path.split("?", 1)[0] != "/metrics":
            self.send_error(404)
            return
        body = self.server.metrics.render().encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/plain; version=0.0.4; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:
        _log.debug(format, *args)


def _split_bind(bind: str) -> tuple[str, int]:
    host, sep, port = bind.rpartition(":")
    if not sep:
        raise ValueError("missing port in address " + bind)
    host = host.strip("[]")
    return host, int(port or "0")


class Metrics:
    """Server and backend gauges; reports are ignored when disabled."""

    def __init__(self, enabled: bool = True, version: str = "", revision: str = "", branch: str = "") -> None:
        self.enabled = enabled
        self.version = version
        self.revision = revision
        self.branch = branch
        self._gauges: list[GaugeVec] = []
        self._http: _MetricsHTTPServer | None = None
        self._thread: threading.Thread | None = None

        self.build_info = self._gauge(
            "",
            "build_info",
            "A metric with a constant '1' value labeled by version, revision, branch, "
            f"and runtime from which {NAMESPACE} was built.",
            ("version", "revision", "branch", "runtime"),
        )

        self.server_count = self._gauge("server", "count", "Server Count.", _SERVER_LABELS)
        self.server_active_connections = self._gauge(
            "server", "active_connections", "Server Actice Connections.", _SERVER_LABELS
        )
        self.server_rx_total = self._gauge("server", "rx_total", "Server Rx Total.", _SERVER_LABELS)
        self.server_tx_total = self._gauge("server", "tx_total", "Server Tx Total.", _SERVER_LABELS)
        self.server_rx_second = self._gauge("server", "rx_second", "Server Rx per Second.", _SERVER_LABELS)
        self.server_tx_second = self._gauge("server", "tx_second", "Server Tx per Second.", _SERVER_LABELS)

        self.backend_active_connections = self._gauge(
            "backend", "active_connections", "Backend Actice Connections.", _BACKEND_LABELS
        )
        self.backend_refused_connections = self._gauge(
            "backend", "refused_connections", "Backend Refused Connections.", _BACKEND_LABELS
        )
        self.backend_total_connections = self._gauge(
            "backend", "total_connections", "Backend Total Connections.", _BACKEND_LABELS
        )
        self.backend_rx_bytes = self._gauge("backend", "rx_bytes", "Backend Rx Bytes.", _BACKEND_LABELS)
        self.backend_tx_bytes = self._gauge("backend", "tx_bytes", "Backend Tx Bytes.", _BACKEND_LABELS)
        self.backend_rx_second = self._gauge("backend", "rx_second", "Backend Rx per Second.", _BACKEND_LABELS)
        self.backend_tx_second = self._gauge("backend", "tx_second", "Backend Tx per Second.", _BACKEND_LABELS)
        self.backend_live = self._gauge("backend", "live", "Backend Alive.", _BACKEND_LABELS)

    def _gauge(self, subsystem: str, name: str, help: str, labels: Sequence[str]) -> GaugeVec:
        full_name = "_".join(part for part in (NAMESPACE, subsystem, name) if part)
        gauge = GaugeVec(full_name, help, labels)
        self._gauges.append(gauge)
        return gauge

    @property
    def address(self) -> tuple[str, int] | None:
        """The address the HTTP endpoint listens on, once started."""
        if self._http is None:
            return None
        return self._http.server_address[:2]

    def start(self, bind: str) -> None:
        """Serve the gauges at /metrics on ``bind`` ("host:port")."""
        if not self.enabled:
            _log.info("Metrics disabled")
            return

        _log.info("Starting up Metrics server %s", bind)
        self.build_info.set(
            (self.version, self.revision, self.branch, platform.python_version()), 1
        )

        host, port = _split_bind(bind)
        server_class = _MetricsHTTPServer6 if ":" in host else _MetricsHTTPServer
        http = server_class((host or "0.0.0.0", port), _MetricsRequestHandler)
        http.metrics = self
        self._http = http
        self._thread = threading.Thread(target=http.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the HTTP endpoint if it runs."""
        http, self._http = self._http, None
        if http is None:
            return
        http.shutdown()
        http.server_close()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def render(self) -> str:
        """Return all gauges in the Prometheus text exposition format."""
        lines: list[str] = []
        for gauge in self._gauges:
            lines.extend(gauge._render())
        return "\n".join(lines) + "\n"

    def remove_server(self, server: str, backends: Mapping[Target, Backend]) -> None:
        if not self.enabled:
            return
        for gauge in (
            self.server_count,
            self.server_active_connections,
            self.server_rx_total,
            self.server_tx_total,
            self.server_rx_second,
            self.server_tx_second,
        ):
            gauge.delete((server,))
        for backend in backends.values():
            self.remove_backend(server, backend)

    def remove_backend(self, server: str, backend: Backend) -> None:
        if not self.enabled:
            return
        labels = (server, backend.host, backend.port)
        for gauge in (
            self.backend_active_connections,
            self.backend_refused_connections,
            self.backend_total_connections,
            self.backend_rx_bytes,
            self.backend_tx_bytes,
            self.backend_rx_second,
            self.backend_tx_second,
            self.backend_live,
        ):
            gauge.delete(labels)

    def report_backend_live_change(self, server: str, target: Target, live: bool) -> None:
        if not self.enabled:
            return
        self.backend_live.set((server, target.host, target.port), 1 if live else 0)

    def report_connections_change(self, server: str, connections: int) -> None:
        if not self.enabled:
            return
        self.server_active_connections.set((server,), connections)

    def report_stats_change(self, server: str, bs: BandwidthStats) -> None:
        if not self.enabled:
            return
        self.server_rx_total.set((server,), bs.rx_total)
        self.server_tx_total.set((server,), bs.tx_total)
        self.server_rx_second.set((server,), bs.rx_second)
        self.server_tx_second.set((server,), bs.tx_second)

    def report_backend_stats_change(
        self, server: str, target: Target, backends: Mapping[Target, Backend]
    ) -> None:
        if not self.enabled:
            return
        stats = backends[target].stats
        labels = (server, target.host, target.port)
        self.server_count.set((server,), len(backends))
        self.backend_rx_bytes.set(labels, stats.rx_bytes)
        self.backend_tx_bytes.set(labels, stats.tx_bytes)
        self.backend_rx_second.set(labels, stats.rx_second)
        self.backend_tx_second.set(labels, stats.tx_second)

    def report_op(self, server: str, target: Target, backends: Mapping[Target, Backend]) -> None:
        if not self.enabled:
            return
        stats = backends[target].stats
        labels = (server, target.host, target.port)
        self.backend_active_connections.set(labels, stats.active_connections)
        self.backend_refused_connections.set(labels, stats.refused_connections)
        self.backend_total_connections.set(labels, stats.total_connections)