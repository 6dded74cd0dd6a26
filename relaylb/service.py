"""Registry of services that attach to servers as they are created and removed."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

_log = logging.getLogger("relaylb.services")

_registry: dict[str, Callable[[Any], Any]] = {}


def register(name: str, constructor: Callable[[Any], Any]) -> None:
    """Register a service constructor; it may return None when not configured."""
    _registry[name] = constructor


def all_services(cfg: Any) -> list[Any]:
    """Build every registered service that is configured in ``cfg``."""
    result = []
    for name, constructor in _registry.items():
        service = constructor(cfg)
        if service is None:
            continue
        _log.info("Creating %s", name)
        result.append(service)
    return result