"""Period-key parsing, chronological ordering and trend calculation."""
from __future__ import annotations

import re
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

_QUARTER_FIRST = re.compile(r"Q([1-4])\s*[-/ ]?\s*(\d{4})", re.IGNORECASE)   # Q1 2024, Q1-2024
_YEAR_FIRST = re.compile(r"(\d{4})\s*-?\s*Q([1-4])", re.IGNORECASE)          # 2024-Q1, 2024Q1
_YEAR_M_MONTH = re.compile(r"(\d{4})M(\d{2})")                              # 2024M01
_YEAR_MONTH = re.compile(r"(\d{4})(\d{2})")                                 # 202401
_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")                          # 2024-01-31
_US_DATE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")                       # 01/31/2024

_ZERO = 0.0001


def _safe_date(year: int, month: int, day: int = 1) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_period_date(period: Optional[str]) -> Optional[date]:
    """Parse a period label into the first day it covers, or ``None``.

    Examples:
        "Q1 2024" -> date(2024, 1, 1)
        "2024-Q3" -> date(2024, 7, 1)
        "2024M02" -> date(2024, 2, 1)
        "202412" -> date(2024, 12, 1)
        "03/31/2024" -> date(2024, 3, 31)
        "Budget" -> None
    """
    if not period:
        return None
    text = str(period).strip()

    m = _QUARTER_FIRST.search(text)
    if m:
        return _safe_date(int(m.group(2)), (int(m.group(1)) - 1) * 3 + 1)
    m = _YEAR_FIRST.search(text)
    if m:
        return _safe_date(int(m.group(1)), (int(m.group(2)) - 1) * 3 + 1)
    m = _YEAR_M_MONTH.search(text)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)))
    m = _YEAR_MONTH.fullmatch(text)
    if m and 1 <= int(m.group(2)) <= 12:
        return _safe_date(int(m.group(1)), int(m.group(2)))
    m = _ISO_DATE.search(text)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = _US_DATE.search(text)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
    return None


def period_sort_key(period: str) -> Tuple[int, str, str]:
    """Parseable periods first in date order, then the rest lexically."""
    parsed = parse_period_date(period)
    if parsed is None:
        return (1, "", period)
    return (0, parsed.isoformat(), period)


def sort_periods(periods: Iterable[str]) -> List[str]:
    """Return the distinct periods in chronological order."""
    return sorted(set(periods), key=period_sort_key)


def calculate_trend(values: Sequence[Tuple[str, float]]) -> Optional[float]:
    """Percentage change from the earliest to the latest period.

    *values* are ``(period, value)`` pairs.  When fewer than two periods
    parse as dates, input order decides first and last.  Returns ``0`` when
    both ends are ~0 and ``None`` when only the first is.
    """
    if len(values) < 2:
        return None

    dated = [(parse_period_date(p), v) for p, v in values]
    dated = [(d, v) for d, v in dated if d is not None]
    if len(dated) >= 2:
        dated.sort(key=lambda pair: pair[0])
        first, last = dated[0][1], dated[-1][1]
    else:
        first, last = values[0][1], values[-1][1]

    if abs(first) < _ZERO:
        return 0.0 if abs(last) < _ZERO else None
    return (last - first) / abs(first) * 100
