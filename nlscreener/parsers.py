from __future__ import annotations

import re
from dataclasses import dataclass

MAGNITUDE_SUFFIXES = {
    "K": 1e3,
    "M": 1e6,
    "B": 1e9,
    "T": 1e12,
}

PERIOD_UNITS = {
    "year": "year",
    "yr": "year",
    "y": "year",
    "month": "month",
    "mo": "month",
    "m": "month",
    "week": "week",
    "wk": "week",
    "w": "week",
    "day": "day",
    "d": "day",
}

_MAGNITUDE_RE = re.compile(r"^(-?\d+(?:\.\d+)?|-?\.\d+)\s*([KMBT])?$")
_PERCENT_RE = re.compile(r"(%|percent)\s*$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"^-?(?:\d+(?:\.\d+)?|\.\d+)$")
_PERIOD_RE = re.compile(r"(\d+)\s*(year|yr|y|month|mo|m|week|wk|w|day|d)s?\b", re.IGNORECASE)


@dataclass(frozen=True)
class TimePeriod:
    value: int
    unit: str


def parse_magnitude(text: str) -> float | None:
    """'5B' -> 5e9, '$1,200' -> 1200.0, 'abc' -> None."""
    if text is None:
        return None
    cleaned = re.sub(r"[$,\s]", "", str(text)).upper()
    match = _MAGNITUDE_RE.match(cleaned)
    if not match:
        return None
    value = float(match.group(1))
    suffix = match.group(2)
    if suffix:
        value *= MAGNITUDE_SUFFIXES[suffix]
    return value


def parse_percentage(text: str) -> float | None:
    if text is None:
        return None
    cleaned = _PERCENT_RE.sub("", str(text)).strip()
    if not _NUMBER_RE.match(cleaned):
        return None
    return float(cleaned)


def parse_time_period(text: str) -> TimePeriod | None:
    if text is None:
        return None
    match = _PERIOD_RE.search(str(text))
    if not match:
        return None
    return TimePeriod(value=int(match.group(1)), unit=PERIOD_UNITS[match.group(2).lower()])


def parse_number(text: str) -> float | None:
    """Magnitude first, then percentage, then a plain float."""
    for parser in (parse_magnitude, parse_percentage):
        value = parser(text)
        if value is not None:
            return value
    cleaned = re.sub(r"[$,\s]", "", str(text or ""))
    if _NUMBER_RE.match(cleaned):
        return float(cleaned)
    return None
