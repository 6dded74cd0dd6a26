"""Access rules that allow or deny clients by IP address or network."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field

from relaylb.config import AccessConfig

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def _normalize(ip: str | IPAddress) -> IPAddress:
    if isinstance(ip, str):
        ip = ipaddress.ip_address(ip)
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


@dataclass(frozen=True)
class AccessRule:
    """An allow or deny rule for a single IP or a network."""

    allow: bool
    ip: IPAddress | None = None
    network: IPNetwork | None = None

    @property
    def is_network(self) -> bool:
        return self.network is not None

    def matches(self, ip: str | IPAddress) -> bool:
        """Tell whether ``ip`` falls under this rule."""
        address = _normalize(ip)
        if self.network is not None:
            return address.version == self.network.version and address in self.network
        return self.ip is not None and _normalize(self.ip) == address

    def allows(self) -> bool:
        return self.allow


def parse_access_rule(rule: str) -> AccessRule:
    """Parse a rule like "allow 10.0.0.0/8" or "deny 192.168.1.1"."""
    parts = rule.split(" ")
    if len(parts) != 2:
        raise ValueError("Bad access rule format: " + rule)

    action, cidr_or_ip = parts
    if action not in ("allow", "deny"):
        raise ValueError("Cant parse rule definition " + rule)
    allow = action == "allow"

    try:
        return AccessRule(allow=allow, ip=_normalize(cidr_or_ip))
    except ValueError:
        pass

    if "/" in cidr_or_ip:
        try:
            network = ipaddress.ip_network(cidr_or_ip, strict=False)
        except ValueError:
            pass
        else:
            return AccessRule(allow=allow, network=network)

    raise ValueError("Cant parse acces rule target, not an ip or cidr: " + cidr_or_ip)


@dataclass
class Access:
    """A chain of access rules with a default verdict."""

    allow_default: bool = True
    rules: list[AccessRule] = field(default_factory=list)

    def allows(self, ip: str | IPAddress) -> bool:
        """Return the verdict of the first matching rule, or the default."""
        for rule in self.rules:
            if rule.matches(ip):
                return rule.allows()
        return self.allow_default


def new_access(cfg: AccessConfig | None) -> Access:
    """Build an Access from its configuration section."""
    if cfg is None:
        raise ValueError("AccessConfig is nil")

    if cfg.default == "":
        cfg.default = "allow"
    if cfg.default not in ("allow", "deny"):
        raise ValueError("AccessConfig Unexpected Default: " + cfg.default)

    return Access(
        allow_default=cfg.default == "allow",
        rules=[parse_access_rule(r) for r in cfg.rules],
    )