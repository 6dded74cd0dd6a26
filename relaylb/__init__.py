"""Building blocks for a TCP/UDP load balancer: configuration checks, access rules, backend scheduling, bandwidth statistics, metrics and proxy helpers."""

__version__ = "0.1.0"