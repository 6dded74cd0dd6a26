"""Reading the server name from a TLS ClientHello without consuming it."""

from __future__ import annotations

import socket
from typing import Any

MAX_HEADER_SIZE = 16385


def _u8(buf: bytes, pos: int) -> int:
    if pos >= len(buf):
        raise ValueError("truncated")
    return buf[pos]


def _u16(buf: bytes, pos: int) -> int:
    if pos + 2 > len(buf):
        raise ValueError("truncated")
    return int.from_bytes(buf[pos : pos + 2], "big")


def _server_name(data: bytes) -> str:
    if len(data) < 5 or data[0] != 0x16:
        return ""
    record = data[5 : 5 + _u16(data, 3)]
    if _u8(record, 0) != 1:
        return ""
    length = int.from_bytes(record[1:4], "big")
    msg = record[4 : 4 + length]
    if len(msg) < length:
        raise ValueError("truncated")

    pos = 2 + 32
    pos += 1 + _u8(msg, pos)
    pos += 2 + _u16(msg, pos)
    pos += 1 + _u8(msg, pos)
    if pos >= len(msg):
        return ""

    end = pos + 2 + _u16(msg, pos)
    pos += 2
    if end > len(msg):
        raise ValueError("truncated")

    while pos + 4 <= end:
        ext_type = _u16(msg, pos)
        ext_len = _u16(msg, pos + 2)
        pos += 4
        if ext_type == 0:
            names = msg[pos : pos + ext_len]
            p = 2
            while p + 3 <= len(names):
                name_type = names[p]
                name_len = _u16(names, p + 1)
                name = names[p + 3 : p + 3 + name_len]
                if name_type == 0:
                    return name.decode("ascii")
                p += 3 + name_len
            return ""
        pos += ext_len
    return ""


def extract_hostname(data: bytes) -> str:
    """Return the SNI host name in a ClientHello, or "" if none can be read."""
    try:
        return _server_name(bytes(data))
    except (ValueError, UnicodeDecodeError):
        return ""


class SniffedSocket:
    """A socket whose first reads replay the bytes consumed while sniffing."""

    def __init__(self, sock: socket.socket, buffered: bytes) -> None:
        self._sock = sock
        self._buffer = bytearray(buffered)

    def recv(self, bufsize: int) -> bytes:
        if self._buffer:
            chunk = bytes(self._buffer[:bufsize])
            del self._buffer[:bufsize]
            return chunk
        return self._sock.recv(bufsize)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._sock, name)


def sniff(sock: socket.socket, read_timeout: float) -> tuple[SniffedSocket, str]:
    """Read the first chunk from ``sock`` and return a replaying socket and the host name."""
    previous = sock.gettimeout()
    sock.settimeout(read_timeout)
    try:
        data = sock.recv(MAX_HEADER_SIZE)
    finally:
        sock.settimeout(previous)
    if not data:
        raise ConnectionError("EOF")
    return SniffedSocket(sock, data), extract_hostname(data)