"""Copying data between two sockets while counting the traffic."""

from __future__ import annotations

import logging
import queue
import socket
import threading
import time
from collections.abc import Callable, Iterator
from typing import Any

from relaylb.counters import ReadWriteCount

BUFFER_SIZE = 16 * 1024
PROXY_STATS_PUSH_INTERVAL = 1.0

_log = logging.getLogger("relaylb.proxy")

_END = object()


def _is_closed(sock: Any) -> bool:
    try:
        return sock.fileno() == -1
    except OSError:
        return True


def close_socket(sock: Any) -> None:
    """Shut a socket down, waking any blocked reader, and close it."""
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    try:
        sock.close()
    except OSError:
        pass


def copy_stream(dst: Any, src: Any, report: Callable[[ReadWriteCount], None]) -> None:
    """Copy from ``src`` to ``dst`` until end of stream, reporting every chunk.

    Read and write errors propagate as OSError.
    """
    while True:
        data = src.recv(BUFFER_SIZE)
        if not data:
            return
        dst.sendall(data)
        report(ReadWriteCount(count_read=len(data), count_write=len(data)))


def proxy(to: Any, src: Any, timeout: float | None) -> Iterator[ReadWriteCount]:
    """Copy from ``src`` to ``to`` in the background and yield aggregated traffic.

    Counts are pushed once per PROXY_STATS_PUSH_INTERVAL and once more at the
    end. A positive ``timeout`` drops the connection after that many idle
    seconds on ``src``. Both sockets are closed when copying ends.
    """
    stats: queue.SimpleQueue = queue.SimpleQueue()
    out: queue.SimpleQueue = queue.SimpleQueue()

    def copier() -> None:
        try:
            if timeout and timeout > 0:
                src.settimeout(timeout)
            copy_stream(to, src, stats.put)
        except TimeoutError as e:
            _log.warning("%s", e or "i/o timeout")
        except OSError as e:
            if not (_is_closed(src) or _is_closed(to)):
                _log.warning("%s", e)
        finally:
            close_socket(to)
            close_socket(src)
            stats.put(_END)

    def collector() -> None:
        buffer = ReadWriteCount()
        next_tick = time.monotonic() + PROXY_STATS_PUSH_INTERVAL
        while True:
            remaining = next_tick - time.monotonic()
            if remaining <= 0:
                if not buffer.is_zero():
                    out.put(buffer)
                    buffer = ReadWriteCount()
                next_tick += PROXY_STATS_PUSH_INTERVAL
                continue
            try:
                item = stats.get(timeout=remaining)
            except queue.Empty:
                continue
            if item is _END:
                if not buffer.is_zero():
                    out.put(buffer)
                out.put(_END)
                return
            buffer = ReadWriteCount(
                count_read=buffer.count_read + item.count_read,
                count_write=buffer.count_write + item.count_write,
            )

    threading.Thread(target=collector, daemon=True).start()
    threading.Thread(target=copier, daemon=True).start()

    def results() -> Iterator[ReadWriteCount]:
        while (item := out.get()) is not _END:
            yield item

    return results()