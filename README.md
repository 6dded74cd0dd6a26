# relaylb

relaylb is a library of building blocks for a layer-4 (TCP/UDP) load
balancer. It covers checking server configuration, access rules, tracking and
electing backends, bandwidth statistics, Prometheus-style metrics, SNI
sniffing, PROXY protocol v1 headers and copying traffic between sockets.

## Modules

| Module | What it provides |
| --- | --- |
| `relaylb.config` | Configuration sections as dataclasses (`Config`, `ServerConfig`, `HealthcheckConfig`, `DiscoveryConfig`, `SniConfig`, `TlsConfig`, `BackendsTlsConfig`, `UdpConfig`, `AccessConfig`, `AcmeConfig`, `MetricsConfig`, `ConnectionOptions`, `ProxyProtocolConfig`). Also `init_defaults`, `init_config_globals`, `prepare_config` and `ConfigError`. |
| `relaylb.backend` | `Target`, `Backend`, `BackendStats`, `parse_backend`, `parse_backend_default` |
| `relaylb.access` | `parse_access_rule`, `AccessRule`, `Access`, `new_access` |
| `relaylb.scheduler` | `Scheduler` and `OpAction` |
| `relaylb.stats` | `Stats`, `Handler`, `StatsStore`, `get_stats` |
| `relaylb.counters` | `ReadWriteCount`, `BandwidthStats`, `BandwidthCounter`, `BackendsBandwidthCounter` |
| `relaylb.metrics` | `GaugeVec` and `Metrics`. `Metrics` renders in the Prometheus text format and can serve `/metrics` over HTTP. |
| `relaylb.tcpproxy` | `copy_stream`, `proxy`, `close_socket` |
| `relaylb.sni` | `extract_hostname`, `sniff`, `SniffedSocket` |
| `relaylb.proxyprotocol` | `format_header_v1`, `send_proxy_protocol_v1` |
| `relaylb.service` | `register`, `all_services` |
| `relaylb.durations` | `parse_duration`, `parse_duration_or_default` |
| `relaylb.codec` | `encode`, `decode` (TOML and JSON) |
| `relaylb.env` | `substitute_env_vars` |
| `relaylb.execs` | `exec_timeout` |
| `relaylb.pidfile` | `write_pid_file` |

## Configuration

`prepare_config(name, server, defaults)` validates a `ServerConfig`. It
returns a copy with defaults filled in: protocol `tcp`, balance `weight`,
healthcheck kind `none`, discovery fail policy `keeplast`, and so on. It
raises `ConfigError` (a `ValueError`) with a message when something is wrong.

```python
from relaylb.codec import decode
from relaylb.config import Config, init_defaults, prepare_config

cfg = Config.from_dict(decode("""
[servers.web]
bind = "0.0.0.0:3000"

[servers.web.discovery]
kind = "static"
""", "toml"))

defaults = init_defaults(cfg.defaults)
web = prepare_config("web", cfg.servers["web"], defaults)
print(web.protocol, web.balance, web.healthcheck.kind)  # tcp weight none
print(web.client_idle_timeout)                          # "0"
```

Keys that a section does not know are kept in its `extra` dict.
`to_dict()` writes them back out again.

## Backends, access rules and scheduling

```python
from relaylb.access import parse_access_rule
from relaylb.backend import parse_backend_default
from relaylb.scheduler import Scheduler
from relaylb.stats import Handler

backend = parse_backend_default("10.0.0.5:8080 weight=3 priority=2")
print(backend.address(), backend.weight, backend.priority)

rule = parse_access_rule("allow 10.0.0.0/8")
print(rule.matches("10.1.2.3"), rule.allows())  # True True


class FirstLive:
    def elect(self, context, backends):
        if not backends:
            raise LookupError("no backends")
        return backends[0]


scheduler = Scheduler(FirstLive(), Handler("web"))
scheduler.handle_backends_update([backend])
chosen = scheduler.take_backend(None)
scheduler.increment_connection(chosen)
```

You supply the balancer to `Scheduler`. You may also supply discovery and
healthcheck objects. The scheduler only calls them through small interfaces:

- The balancer needs `elect(context, backends)`.
- Discovery needs `start(callback)` and `stop()`.
- A healthcheck needs `start(callback)`, `stop()`, `update_targets(targets)`
  and `initial_backend_healthy()`.

When there is no healthcheck, newly discovered backends start out live.

## Statistics and metrics

A stats `Handler` counts traffic for its server and for each backend, using
bandwidth counters that report every two seconds. `get_stats(name)` returns the
latest `Stats` of a server, or `None` if the server is unknown.

`Metrics` holds gauges for servers and backends. `render()` returns them as
Prometheus text. `start("127.0.0.1:9284")` serves them at `/metrics` until
`stop()` is called. A `Metrics(enabled=False)` ignores every report.

## Smaller helpers

```python
from relaylb.durations import parse_duration, parse_duration_or_default
from relaylb.proxyprotocol import format_header_v1

print(parse_duration("1m30s"))                  # 90.0 (seconds)
print(parse_duration_or_default("bogus", 2.0))  # 2.0
print(format_header_v1(("192.0.2.1", 5000), ("192.0.2.2", 80)))
# PROXY TCP4 192.0.2.1 192.0.2.2 5000 80
```

- `encode(data, format)` and `decode(text, format)` handle `"toml"` and
  `"json"`. Any other format raises `ValueError`.
- `substitute_env_vars` replaces `${NAME}` with the value of that environment
  variable, or with an empty string when it is unset.
- `write_pid_file(path)` refuses to overwrite a pid file whose process is still
  running.
- `exec_timeout(timeout, *args)` returns a command's output. It kills the
  command after `timeout` seconds.

## What this package does not do

- It has no listening TCP or UDP server.
- It has no UDP session handling.
- It has no object that creates and deletes servers at runtime.
- It has no builder for TLS contexts.
- It has no balancing algorithms, discovery or health checks of its own.
- It installs no command-line program.

The pieces above are what such a program would be built from. Wiring sockets,
TLS and a balancer together is left to the application.

## Requirements

Python 3.11 or newer. TOML output uses `tomli-w`. Everything else comes from
the standard library.