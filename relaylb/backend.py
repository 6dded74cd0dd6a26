"""Backends and the parser for backend description lines."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

DEFAULT_BACKEND_PATTERN = (
    r"^(?P<host>\S+):(?P<port>\d+)(\sweight=(?P<weight>\d+))?"
    r"(\spriority=(?P<priority>\d+))?(\ssni=(?P<sni>[^\s]+))?$"
)

_INTEGER = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class Target:
    """Host and port of a backend."""

    host: str
    port: str

    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def __str__(self) -> str:
        return self.address()


@dataclass
class BackendStats:
    """Live status and traffic counters of a backend."""

    live: bool = False
    discovered: bool = False
    total_connections: int = 0
    active_connections: int = 0
    refused_connections: int = 0
    rx_bytes: int = 0
    tx_bytes: int = 0
    rx_second: int = 0
    tx_second: int = 0


@dataclass
class Backend:
    """A backend target with balancing properties and stats."""

    target: Target
    priority: int = 1
    weight: int = 1
    sni: str = ""
    stats: BackendStats = field(default_factory=BackendStats)

    @property
    def host(self) -> str:
        return self.target.host

    @property
    def port(self) -> str:
        return self.target.port

    def address(self) -> str:
        return self.target.address()


def _int_or(value: str, default: int) -> int:
    if _INTEGER.fullmatch(value):
        return int(value)
    return default


def parse_backend(line: str, pattern: str) -> Backend:
    """Parse a backend line with a pattern holding host, port, weight, priority and sni groups."""
    line = line.strip()
    regex = re.compile(pattern, re.ASCII)
    match = regex.search(line)
    if match is None:
        raise ValueError("Cant parse " + line)

    groups = {name: value or "" for name, value in match.groupdict().items()}

    return Backend(
        target=Target(host=groups.get("host", ""), port=groups.get("port", "")),
        weight=_int_or(groups.get("weight", ""), 1),
        priority=_int_or(groups.get("priority", ""), 1),
        sni=groups.get("sni", ""),
        stats=BackendStats(live=True),
    )


def parse_backend_default(line: str) -> Backend:
    """Parse a backend line like "host:port weight=N priority=N sni=name"."""
    return parse_backend(line, DEFAULT_BACKEND_PATTERN)