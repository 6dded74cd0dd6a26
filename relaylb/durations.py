"""Duration strings such as "300ms", "1.5s" or "1h30m"."""

from __future__ import annotations

import re
from fractions import Fraction

_NANOSECONDS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

_COMPONENT = re.compile(r"([0-9]*)(?:\.([0-9]*))?([^0-9.]*)")
_MAX_NANOSECONDS = 2**63 - 1


def parse_duration(s: str) -> float:
    """Parse a duration string and return it in seconds.

    A duration is an optionally signed sequence of decimal numbers, each
    with an optional fraction and a unit suffix; "0" alone needs no unit.
    Raises ValueError for malformed input.
    """
    text = s
    if not text:
        raise ValueError(f'invalid duration "{s}"')

    negative = text[0] == "-"
    if text[0] in "+-":
        text = text[1:]

    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f'invalid duration "{s}"')

    total = Fraction(0)
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        whole, frac, unit = match.group(1), match.group(2), match.group(3)
        if not whole and not frac:
            raise ValueError(f'invalid duration "{s}"')
        if not unit:
            raise ValueError(f'missing unit in duration "{s}"')
        if unit not in _NANOSECONDS:
            raise ValueError(f'unknown unit "{unit}" in duration "{s}"')

        value = Fraction(int(whole or "0"))
        if frac:
            value += Fraction(int(frac), 10 ** len(frac))
        total += value * _NANOSECONDS[unit]
        if total > _MAX_NANOSECONDS:
            raise ValueError(f'invalid duration "{s}"')
        pos = match.end()

    nanoseconds = int(total)
    if negative:
        nanoseconds = -nanoseconds
    return nanoseconds / 1_000_000_000


def parse_duration_or_default(s: str | None, default: float) -> float:
    """Parse a duration in seconds, falling back to ``default`` if empty or invalid."""
    if not s:
        return default
    try:
        return parse_duration(s)
    except ValueError:
        return default