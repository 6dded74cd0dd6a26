"""Running external commands with a timeout."""

from __future__ import annotations

import logging
import subprocess

_log = logging.getLogger("relaylb.exec")


def exec_timeout(timeout: float, *args: str) -> str:
    """Run a command and return its standard output.

    The process is killed when ``timeout`` seconds pass, raising
    subprocess.TimeoutExpired. A non-zero exit raises
    subprocess.CalledProcessError.
    """
    if not args:
        raise ValueError("no command given")
    try:
        result = subprocess.run(
            list(args),
            stdout=subprocess.PIPE,
            timeout=timeout,
            check=True,
        )
    except subprocess.TimeoutExpired:
        _log.info("Response from exec %s is timed out. Killing process...", list(args))
        raise
    return result.stdout.decode("utf-8", "surrogateescape")