"""Encoding and decoding of configuration documents in TOML or JSON."""

from __future__ import annotations

import dataclasses
import json
import tomllib
from typing import Any

import tomli_w


def _drop_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_drop_none(v) for v in value if v is not None]
    return value


def _plain(data: Any) -> Any:
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return dataclasses.asdict(data)
    return data


def encode(data: Any, format: str) -> str:
    """Encode ``data`` as "toml" or "json"; raises ValueError for other formats."""
    data = _plain(data)
    if format == "toml":
        return tomli_w.dumps(_drop_none(data))
    if format == "json":
        return json.dumps(data, indent=4)
    raise ValueError("Unknown format " + format)


def decode(data: str, format: str) -> Any:
    """Decode a "toml" or "json" document; raises ValueError for other formats."""
    if format == "toml":
        return tomllib.loads(data)
    if format == "json":
        return json.loads(data)
    raise ValueError("Unknown format " + format)