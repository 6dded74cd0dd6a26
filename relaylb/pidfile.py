"""Pid file handling."""

from __future__ import annotations

import os
import re

_INTEGER = re.compile(r"[+-]?[0-9]+")


def _is_running(pid: int) -> bool:
    if pid in (0, -1):
        return False
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


def write_pid_file(path: str | os.PathLike) -> None:
    """Write the current pid to ``path``.

    Refuses when the file names a process that is still alive, and when
    an existing file cannot be parsed.
    """
    if os.path.exists(path):
        try:
            with open(path, encoding="utf-8", errors="surrogateescape") as f:
                data = f.read()
        except OSError as e:
            raise OSError(f"Could not read {path}: {e}") from e

        if not _INTEGER.fullmatch(data):
            raise ValueError(f"Could not parse pid file {path} contents '{data}': invalid syntax")
        pid = int(data)

        if _is_running(pid):
            raise RuntimeError(f"process with pid {pid} is still running")

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o664)
    with os.fdopen(fd, "w", encoding="ascii") as f:
        f.write(str(os.getpid()))