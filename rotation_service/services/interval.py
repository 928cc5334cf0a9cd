# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Interval parsing — shift lengths to milliseconds.
Pure computation, no side effects.

Accepted forms, all equivalent for the same duration:
    "1 day", "2 weeks 3 hours", "90 minutes", "1 day 02:30:00"
    {"days": 1}, {"week": 2, "hours": 3}
    timedelta(days=1)
"""

import re
from collections.abc import Mapping
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from rotation_service.core.errors import InvalidInterval

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR
MS_PER_WEEK = 7 * MS_PER_DAY

UNIT_MS: dict[str, int] = {
    "week": MS_PER_WEEK,
    "day": MS_PER_DAY,
    "hour": MS_PER_HOUR,
    "minute": MS_PER_MINUTE,
    "second": MS_PER_SECOND,
    "millisecond": 1,
}

UNIT_ALIASES: dict[str, str] = {
    "w": "week", "wk": "week", "wks": "week",
    "d": "day",
    "h": "hour", "hr": "hour", "hrs": "hour",
    "m": "minute", "min": "minute", "mins": "minute",
    "s": "second", "sec": "second", "secs": "second",
    "ms": "millisecond", "msec": "millisecond", "msecs": "millisecond",
}

_TOKEN = re.compile(
    r"(?P<clock>(?P<h>\d+):(?P<m>\d{2}):(?P<s>\d{2}(?:\.\d+)?))"
    r"|(?P<num>\d+(?:\.\d+)?)\s*(?P<unit>[A-Za-z]+)"
)
_SEPARATORS = re.compile(r"[\s,]*")


def _unit_ms(unit: str) -> int:
    key = unit.strip().lower()
    key = UNIT_ALIASES.get(key, key)
    if key not in UNIT_MS and key.endswith("s"):
        key = key[:-1]
    if key not in UNIT_MS:
        raise InvalidInterval(f"Unknown interval unit: {unit}", {"unit": unit})
    return UNIT_MS[key]


def _to_decimal(value: Any, raw: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInterval(f"Invalid interval value: {value!r}", {"raw": str(raw)})
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise InvalidInterval(f"Invalid interval value: {value!r}", {"raw": str(raw)})
    if not number.is_finite():
        raise InvalidInterval(f"Interval value must be finite: {value!r}", {"raw": str(raw)})
    return number


def _parse_text(raw: str) -> Decimal:
    total = Decimal(0)
    pos = 0
    matched = False
    text_value = raw.strip()
    while pos < len(text_value):
        sep = _SEPARATORS.match(text_value, pos)
        pos = sep.end()
        if pos >= len(text_value):
            break
        match = _TOKEN.match(text_value, pos)
        if match is None:
            raise InvalidInterval(f"Invalid interval format: {raw}", {"raw": raw})
        if match.group("clock"):
            total += (
                Decimal(match.group("h")) * MS_PER_HOUR
                + Decimal(match.group("m")) * MS_PER_MINUTE
                + Decimal(match.group("s")) * MS_PER_SECOND
            )
        else:
            total += Decimal(match.group("num")) * _unit_ms(match.group("unit"))
        matched = True
        pos = match.end()
    if not matched:
        raise InvalidInterval(f"Invalid interval format: {raw!r}", {"raw": raw})
    return total


def _parse_mapping(raw: Mapping) -> Decimal:
    if not raw:
        raise InvalidInterval("Interval object has no unit fields", {"raw": str(raw)})
    total = Decimal(0)
    for unit, value in raw.items():
        if value is None:
            continue
        total += _to_decimal(value, raw) * _unit_ms(str(unit))
    return total


def parse_interval(raw: Any) -> int:
    """Return the duration of ``raw`` in whole milliseconds.

    Raises InvalidInterval for unknown units, malformed text, or a
    non-positive result.
    """
    if isinstance(raw, timedelta):
        total = Decimal(raw // timedelta(microseconds=1)) / 1000
    elif isinstance(raw, str):
        total = _parse_text(raw)
    elif isinstance(raw, Mapping):
        total = _parse_mapping(raw)
    else:
        raise InvalidInterval(
            f"Unsupported interval type: {type(raw).__name__}", {"raw": str(raw)}
        )

    ms = int(total.to_integral_value())
    if ms <= 0:
        raise InvalidInterval(
            f"Interval must be positive: {raw!r}", {"raw": str(raw), "milliseconds": ms}
        )
    return ms


def format_interval(ms: int) -> str:
    """Render milliseconds as the canonical compact string, largest units first."""
    if ms <= 0:
        raise InvalidInterval(f"Interval must be positive: {ms}", {"milliseconds": ms})
    parts: list[str] = []
    remaining = ms
    for unit, size in UNIT_MS.items():
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count} {unit}{'' if count == 1 else 's'}")
    return " ".join(parts)


def normalize_interval(raw: Any) -> tuple[str, int]:
    """Parse ``raw`` and return ``(canonical_text, milliseconds)``."""
    ms = parse_interval(raw)
    return format_interval(ms), ms
