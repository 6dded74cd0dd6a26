"""Configuration sections and validation of server configuration."""

from __future__ import annotations

import copy
import os
import re
import string
from dataclasses import dataclass, field, fields, replace
from typing import Any, ClassVar

from relaylb.durations import parse_duration


class ConfigError(ValueError):
    """Raised when a configuration is invalid."""


@dataclass
class _Section:
    extra: dict[str, Any] = field(default_factory=dict, kw_only=True)

    _sections: ClassVar[dict[str, type]] = {}
    _mappings: ClassVar[dict[str, type]] = {}

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        known = {f.name for f in fields(cls) if f.name != "extra"}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                extra[key] = copy.deepcopy(value)
                continue
            if value is not None and key in cls._sections:
                value = cls._sections[key].from_dict(value)
            elif value is not None and key in cls._mappings:
                section = cls._mappings[key]
                value = {name: section.from_dict(item) for name, item in value.items()}
            else:
                value = copy.deepcopy(value)
            kwargs[key] = value
        return cls(**kwargs, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, _Section):
                value = value.to_dict()
            elif isinstance(value, dict):
                value = {
                    k: v.to_dict() if isinstance(v, _Section) else copy.deepcopy(v)
                    for k, v in value.items()
                }
            else:
                value = copy.deepcopy(value)
            out[f.name] = value
        out.update(copy.deepcopy(self.extra))
        return out


@dataclass
class ConnectionOptions(_Section):
    max_connections: int | None = None
    client_idle_timeout: str | None = None
    backend_idle_timeout: str | None = None
    backend_connection_timeout: str | None = None


@dataclass
class HealthcheckConfig(_Section):
    kind: str = ""
    interval: str = ""
    timeout: str = ""
    fails: int = 0
    passes: int = 0
    initial_status: str | None = None
    probe_protocol: str = ""
    probe_send: str = ""
    probe_recv: str = ""
    probe_recv_len: int = 0
    probe_strategy: str = ""


@dataclass
class DiscoveryConfig(_Section):
    kind: str = ""
    failpolicy: str = ""
    interval: str = ""
    timeout: str = ""
    srv_dns_protocol: str = ""
    lxd_server_address: str = ""
    lxd_server_remote_name: str = ""
    lxd_config_directory: str = ""
    lxd_container_interface: str = ""
    lxd_container_address_type: str = ""


@dataclass
class SniConfig(_Section):
    read_timeout: str = ""
    unexpected_hostname_strategy: str = ""
    hostname_matching_strategy: str = ""


@dataclass
class ProxyProtocolConfig(_Section):
    version: str = ""


@dataclass
class TlsConfig(_Section):
    acme_hosts: list[str] = field(default_factory=list)
    cert_path: str = ""
    key_path: str = ""
    min_version: str = ""
    max_version: str = ""
    ciphers: list[str] = field(default_factory=list)
    prefer_server_ciphers: bool = False
    session_tickets: bool = False


@dataclass
class BackendsTlsConfig(_Section):
    ignore_verify: bool = False
    root_ca_cert_path: str | None = None
    cert_path: str | None = None
    key_path: str | None = None
    min_version: str = ""
    max_version: str = ""
    ciphers: list[str] = field(default_factory=list)
    prefer_server_ciphers: bool = False
    session_tickets: bool = False


@dataclass
class UdpConfig(_Section):
    max_requests: int = 0
    max_responses: int = 0
    transparent: bool = False


@dataclass
class AccessConfig(_Section):
    default: str = ""
    rules: list[str] = field(default_factory=list)


@dataclass
class AcmeConfig(_Section):
    challenge: str = ""
    http_bind: str = ""
    cache_dir: str = ""


@dataclass
class MetricsConfig(_Section):
    """Enabled flag and bind address of an auxiliary HTTP endpoint."""

    enabled: bool = False
    bind: str = ""


@dataclass
class ServerConfig(_Section):
    bind: str = ""
    protocol: str = ""
    balance: str = ""
    max_connections: int | None = None
    client_idle_timeout: str | None = None
    backend_idle_timeout: str | None = None
    backend_connection_timeout: str | None = None
    healthcheck: HealthcheckConfig | None = None
    discovery: DiscoveryConfig | None = None
    sni: SniConfig | None = None
    proxy_protocol: ProxyProtocolConfig | None = None
    tls: TlsConfig | None = None
    backends_tls: BackendsTlsConfig | None = None
    udp: UdpConfig | None = None
    access: AccessConfig | None = None

    _sections = {
        "healthcheck": HealthcheckConfig,
        "discovery": DiscoveryConfig,
        "sni": SniConfig,
        "proxy_protocol": ProxyProtocolConfig,
        "tls": TlsConfig,
        "backends_tls": BackendsTlsConfig,
        "udp": UdpConfig,
        "access": AccessConfig,
    }


@dataclass
class Config(_Section):
    defaults: ConnectionOptions = field(default_factory=ConnectionOptions)
    servers: dict[str, ServerConfig] = field(default_factory=dict)
    acme: AcmeConfig | None = None
    profiler: MetricsConfig | None = None
    metrics: MetricsConfig | None = None

    _sections = {
        "defaults": ConnectionOptions,
        "acme": AcmeConfig,
        "profiler": MetricsConfig,
        "metrics": MetricsConfig,
    }
    _mappings = {"servers": ServerConfig}


def init_defaults(defaults: ConnectionOptions) -> ConnectionOptions:
    """Return connection defaults with unset values filled in."""
    return replace(
        defaults,
        max_connections=0 if defaults.max_connections is None else defaults.max_connections,
        client_idle_timeout=defaults.client_idle_timeout if defaults.client_idle_timeout is not None else "0",
        backend_idle_timeout=defaults.backend_idle_timeout if defaults.backend_idle_timeout is not None else "0",
        backend_connection_timeout=(
            defaults.backend_connection_timeout if defaults.backend_connection_timeout is not None else "0"
        ),
    )


def init_config_globals(cfg: Config) -> Config:
    """Return the configuration with defaults of global sections filled in."""
    if cfg.acme is None:
        return cfg
    acme = replace(
        cfg.acme,
        challenge=cfg.acme.challenge or "http",
        http_bind=cfg.acme.http_bind or "0.0.0.0:80",
        cache_dir=cfg.acme.cache_dir or "/tmp",
    )
    return replace(cfg, acme=acme)


_SIMPLE_ESCAPES = {
    "a": 7,
    "b": 8,
    "f": 12,
    "n": 10,
    "r": 13,
    "t": 9,
    "v": 11,
    "\\": 92,
    '"': 34,
}
_HEX_WIDTH = {"x": 2, "u": 4, "U": 8}
_OCTAL = set("01234567")


def _unquote(s: str) -> str:
    """Interpret escape sequences of a double-quoted string literal body."""
    out = bytearray()
    i = 0
    n = len(s)
    while i < n:
        c = s[i]
        if c in ('"', "\n"):
            raise ValueError("invalid syntax")
        if c != "\\":
            out += c.encode("utf-8", "surrogateescape")
            i += 1
            continue
        if i + 1 >= n:
            raise ValueError("invalid syntax")
        esc = s[i + 1]
        i += 2
        if esc in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[esc])
        elif esc in _HEX_WIDTH:
            width = _HEX_WIDTH[esc]
            digits = s[i : i + width]
            if len(digits) != width or not all(d in string.hexdigits for d in digits):
                raise ValueError("invalid syntax")
            i += width
            value = int(digits, 16)
            if esc == "x":
                out.append(value)
            else:
                if value > 0x10FFFF or 0xD800 <= value <= 0xDFFF:
                    raise ValueError("invalid syntax")
                out += chr(value).encode("utf-8")
        elif esc in _OCTAL:
            digits = esc + s[i : i + 2]
            if len(digits) != 3 or not all(d in _OCTAL for d in digits):
                raise ValueError("invalid syntax")
            i += 2
            value = int(digits, 8)
            if value > 255:
                raise ValueError("invalid syntax")
            out.append(value)
        else:
            raise ValueError("invalid syntax")
    return out.decode("utf-8", "surrogateescape")


def _parses(duration: str) -> bool:
    try:
        parse_duration(duration)
    except ValueError:
        return False
    return True


def _prepare_probe(hc: HealthcheckConfig) -> None:
    if hc.probe_protocol not in ("tcp", "udp", "tls"):
        raise ConfigError("Unsupported probe_protocol")

    if not hc.probe_send or not hc.probe_recv:
        raise ConfigError("probe healthcheck should have both probe_send and probe_recv specified")

    if not hc.probe_strategy:
        hc.probe_strategy = "starts_with"

    try:
        hc.probe_send = _unquote(hc.probe_send)
    except ValueError as e:
        raise ConfigError("probe_send has invalid syntax " + str(e)) from e

    if hc.probe_strategy == "starts_with":
        if hc.probe_recv_len > 0:
            raise ConfigError("probe_recv_len is redundant for 'starts_with' strategy")
        try:
            hc.probe_recv = _unquote(hc.probe_recv)
        except ValueError as e:
            raise ConfigError("probe_recv has invalid syntax " + str(e)) from e
    elif hc.probe_strategy == "regexp":
        if hc.probe_recv_len == 0:
            raise ConfigError("probe_recv_len required")
        try:
            re.compile(hc.probe_recv)
        except re.error as e:
            raise ConfigError("probe_recv has invalid syntax " + str(e)) from e
    else:
        raise ConfigError("Unsupported probe_strategy " + hc.probe_strategy)


def _prepare_sni(sni: SniConfig) -> None:
    if not sni.read_timeout:
        sni.read_timeout = "2s"

    if not sni.unexpected_hostname_strategy:
        sni.unexpected_hostname_strategy = "default"
    if sni.unexpected_hostname_strategy not in ("default", "reject", "any"):
        raise ConfigError(
            "Not supported sni unexprected hostname strategy " + sni.unexpected_hostname_strategy
        )

    if not sni.hostname_matching_strategy:
        sni.hostname_matching_strategy = "exact"
    if sni.hostname_matching_strategy not in ("exact", "regexp"):
        raise ConfigError("Not supported sni matching " + sni.hostname_matching_strategy)

    if not _parses(sni.read_timeout):
        raise ConfigError("timeout parsing error")


def _prepare_lxd(discovery: DiscoveryConfig) -> None:
    address = discovery.lxd_server_address
    if not address:
        raise ConfigError("lxd_server_address is required" + address)
    if not (address.startswith("https:") or address.startswith("unix:")):
        raise ConfigError(
            "lxd_server_address should start with either unix:// or https:// but got " + address
        )

    if not discovery.lxd_server_remote_name:
        discovery.lxd_server_remote_name = "local"
    if not discovery.lxd_config_directory:
        discovery.lxd_config_directory = os.environ.get("HOME", "") + "/.config/lxc"
    if not discovery.lxd_container_interface:
        discovery.lxd_container_interface = "eth0"

    if discovery.lxd_container_address_type == "":
        discovery.lxd_container_address_type = "IPv4"
    elif discovery.lxd_container_address_type not in ("IPv4", "IPv6"):
        raise ConfigError("Invalid lxd_container_address_type. Must be IPv4 or IPv6")


def prepare_config(name: str, server: ServerConfig, defaults: ConnectionOptions) -> ServerConfig:
    """Validate a server configuration and return a copy with defaults merged in."""
    server = copy.deepcopy(server)

    if not server.bind:
        raise ConfigError("No bind specified for server " + name)
    if server.discovery is None:
        raise ConfigError("No .discovery specified for server " + name)

    if server.healthcheck is None:
        server.healthcheck = HealthcheckConfig(kind="none", interval="0", timeout="0")
    hc = server.healthcheck

    if hc.kind not in ("ping", "probe", "exec", "none"):
        raise ConfigError("Not supported healthcheck type " + hc.kind)

    if not hc.interval:
        hc.interval = "0"
    if not hc.timeout:
        hc.timeout = "0"
    if hc.fails <= 0:
        hc.fails = 1
    if hc.passes <= 0:
        hc.passes = 1

    if hc.kind != "none":
        try:
            interval = parse_duration(hc.interval)
        except ValueError as e:
            raise ConfigError("Could not parse healtcheck interval: " + str(e)) from e
        if interval <= 0:
            raise ConfigError("Healthcheck interval should be greater than 0s")

    if hc.initial_status is not None and hc.initial_status not in ("healthy", "unhealthy"):
        raise ConfigError("Unsupported healthcheck initial_status")

    if hc.kind == "probe":
        _prepare_probe(hc)

    if server.proxy_protocol is not None:
        if server.protocol != "tcp":
            raise ConfigError(
                "proxy_protocol may be used only with 'tcp' protocol, not with " + server.protocol
            )
        if not server.proxy_protocol.version:
            raise ConfigError("version field for proxy_protocol is not specified")
        if server.proxy_protocol.version != "1":
            raise ConfigError("Unsupported proxy_protocol version " + server.proxy_protocol.version)

    if server.sni is not None:
        _prepare_sni(server.sni)

    if not _parses(hc.timeout):
        raise ConfigError("timeout parsing error")
    if not _parses(hc.interval):
        raise ConfigError("interval parsing error")

    btls = server.backends_tls
    if btls is not None and ((btls.key_path is None) != (btls.cert_path is None)):
        raise ConfigError("backend_tls.cert_path and .key_path should be specified together")

    if server.tls is not None:
        if not server.tls.acme_hosts and (not server.tls.key_path or not server.tls.cert_path):
            raise ConfigError("tls requires specify either acme hosts or both key and cert paths")

    match server.protocol:
        case "":
            server.protocol = "tcp"
        case "tls":
            if server.tls is None:
                raise ConfigError("Need tls section for tls protocol")
        case "tcp":
            pass
        case "udp":
            if server.backends_tls is not None:
                raise ConfigError("backends_tls should not be enabled for udp protocol")
            if server.udp is None:
                server.udp = UdpConfig()
            if (
                server.udp.max_requests == 0
                and server.udp.max_responses == 0
                and server.client_idle_timeout is None
                and server.backend_idle_timeout is None
            ):
                raise ConfigError(
                    "udp protocol requires to specify at least one of (client|backend)_idle_timeout, "
                    "udp.max_requests, udp.max_responses"
                )
        case _:
            raise ConfigError("Not supported protocol " + server.protocol)

    if hc.kind == "ping" and server.protocol == "udp":
        raise ConfigError("Cant use ping healthcheck with udp server")

    if server.balance == "":
        server.balance = "weight"
    elif server.balance not in ("weight", "leastconn", "roundrobin", "leastbandwidth", "iphash1", "iphash"):
        raise ConfigError("Not supported balance type " + server.balance)

    discovery = server.discovery
    if discovery.failpolicy == "":
        discovery.failpolicy = "keeplast"
    elif discovery.failpolicy not in ("keeplast", "setempty"):
        raise ConfigError("Not supported failpolicy " + discovery.failpolicy)

    if not discovery.interval:
        discovery.interval = "0"
    if not discovery.timeout:
        discovery.timeout = "0"

    if discovery.kind == "srv":
        if discovery.srv_dns_protocol == "":
            discovery.srv_dns_protocol = "udp"
        elif discovery.srv_dns_protocol not in ("udp", "tcp"):
            raise ConfigError("Not supported srv_dns_protocol " + discovery.srv_dns_protocol)

    if discovery.kind == "lxd":
        _prepare_lxd(discovery)

    if server.max_connections is None:
        server.max_connections = defaults.max_connections
    if server.client_idle_timeout is None:
        server.client_idle_timeout = defaults.client_idle_timeout
    if server.backend_idle_timeout is None:
        server.backend_idle_timeout = defaults.backend_idle_timeout
    if server.backend_connection_timeout is None:
        server.backend_connection_timeout = defaults.backend_connection_timeout

    return server