"""Normalization heuristics for raw source values.

Every parser returns None for input it cannot interpret. Adapters treat None
as "skip this row", so a malformed cell never aborts a collection run.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping, Sequence
from datetime import date
from typing import Any, TypeVar

T = TypeVar("T")

_ISO_DATETIME = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})[T\s]")
_YMD = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")
_MDY_LONG = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
_MDY_SHORT = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2})$")

_DATE_NOISE = re.compile(r"[^\d/-]")
_PRICE_NOISE = re.compile(r"[$¥￥€£元,\s]")
_VOLUME_NOISE = re.compile(r"[,\s吨]")
_VOLUME_UNIT = re.compile(r"(tco2e|t)$", re.IGNORECASE)

# Chinese exchanges quote volume in units of 10,000 tonnes
_WAN = "万"
_WAN_MULTIPLIER = 10_000


def _build_date(year: int, month: int, day: int, min_year: int) -> str | None:
    if not (1 <= month <= 12 and 1 <= day <= 31 and year >= min_year):
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        # e.g. February 30th
        return None


def parse_date(value: Any, min_year: int = 2000) -> str | None:
    """Normalize a raw date to ``YYYY-MM-DD``.

    Accepts ``YYYY-MM-DD``, ``YYYY/MM/DD``, ``MM/DD/YYYY``, ``MM/DD/YY``
    (two-digit years below 50 map to 20xx, the rest to 19xx), ISO datetimes
    and the Chinese ``2024年1月15日`` form. Impossible calendar dates and
    years before ``min_year`` are rejected, never clamped.
    """
    if isinstance(value, date):
        return _build_date(value.year, value.month, value.day, min_year)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    match = _ISO_DATETIME.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _build_date(year, month, day, min_year)

    text = text.replace("年", "-").replace("月", "-").replace("日", "")
    clean = _DATE_NOISE.sub("", text)

    match = _YMD.match(clean)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _build_date(year, month, day, min_year)

    match = _MDY_LONG.match(clean)
    if match:
        month, day, year = (int(g) for g in match.groups())
        return _build_date(year, month, day, min_year)

    match = _MDY_SHORT.match(clean)
    if match:
        month, day, short_year = (int(g) for g in match.groups())
        year = 2000 + short_year if short_year < 50 else 1900 + short_year
        return _build_date(year, month, day, min_year)

    return None


def parse_price(value: Any) -> float | None:
    """Parse a price, stripping currency symbols and thousands separators.

    Returns None unless the result is a finite number greater than zero.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = _PRICE_NOISE.sub("", value)
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(number) or number <= 0:
        return None
    return number


def parse_volume(value: Any) -> float | None:
    """Parse a traded volume in tonnes.

    ``-`` and blanks mean "not reported" and yield None. A ``万`` unit
    multiplies by 10,000. Negative volumes are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text or text == "-":
            return None
        multiplier = 1
        if _WAN in text:
            multiplier = _WAN_MULTIPLIER
            text = text.replace(_WAN, "")
        cleaned = _VOLUME_UNIT.sub("", _VOLUME_NOISE.sub("", text))
        try:
            number = float(cleaned) * multiplier
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(number) or number < 0:
        return None
    return number


def pick_field(
    row: Mapping[str, Any],
    candidates: Sequence[str],
    parser: Callable[[Any], T | None],
) -> T | None:
    """Return the first candidate column whose value parses successfully."""
    for name in candidates:
        raw = row.get(name)
        if raw is None or raw == "":
            continue
        parsed = parser(raw)
        if parsed is not None:
            return parsed
    return None


def within_window(record_date: str, target: date, days: int) -> bool:
    """True if ``record_date`` is at most ``days`` calendar days from ``target``."""
    try:
        observed = date.fromisoformat(record_date)
    except ValueError:
        return False
    return abs((observed - target).days) <= days


def format_number(value: float) -> str:
    """Render a number without a trailing ``.0`` when it is integral."""
    if math.isfinite(value) and float(value).is_integer():
        return str(int(value))
    return repr(float(value))
