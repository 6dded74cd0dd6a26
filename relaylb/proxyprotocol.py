"""PROXY protocol version 1 header."""

from __future__ import annotations

import ipaddress
import logging
import socket

_log = logging.getLogger("relaylb.proxyprotocol")


def format_header_v1(source: tuple, destination: tuple) -> str:
    """Format a v1 header for TCP from ``source`` to ``destination`` (host, port) pairs."""
    src_ip = ipaddress.ip_address(source[0])
    dst_ip = ipaddress.ip_address(destination[0])
    if src_ip.version != dst_ip.version:
        raise ValueError("source and destination address families differ")
    family = "TCP4" if src_ip.version == 4 else "TCP6"
    return f"PROXY {family} {src_ip} {dst_ip} {source[1]} {destination[1]}\r\n"


def send_proxy_protocol_v1(client: socket.socket, backend: socket.socket) -> None:
    """Send a v1 header describing ``client`` to ``backend``; write errors are only logged."""
    header = format_header_v1(client.getpeername()[:2], client.getsockname()[:2])
    try:
        backend.sendall(header.encode("ascii"))
    except OSError as e:
        _log.warning("Could not send proxy protocol header: %s", e)