"""Number normalization utilities for free-form spreadsheet cells."""
import math
import re
from datetime import date, timedelta
from typing import Any, Optional

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)")

# Excel's serial day 1 is 1900-01-01; the 1899-12-30 epoch absorbs the
# phantom 1900-02-29.
_EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_SERIAL_RANGE = (1, 100000)


def coerce_number(value: Any) -> Optional[float]:
    """Coerce a cell value to float, or ``None`` when it is not numeric.

    Examples:
        1200 -> 1200.0
        "$1,200.50" -> 1200.5
        "(15)" -> 15.0
        "12-3" -> 12.0
        "n/a" -> None
        float("nan") -> None
        float("inf") -> None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value)
        match = _LEADING_NUMBER.match(cleaned)
        if not match:
            return None
        return float(match.group(0))
    return None


def normalize_margin_pct(value: float) -> float:
    """Return a margin percentage on the 0-100 scale.

    Magnitudes >= 1 are already percentages; smaller ones are fractions.

    Examples:
        0.83 -> 83.0
        83 -> 83
        -0.05 -> -5.0
    """
    if abs(value) >= 1:
        return value
    return value * 100


def is_excel_serial(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    low, high = EXCEL_SERIAL_RANGE
    return low <= value <= high


def excel_serial_to_iso(serial: float) -> str:
    """Convert an Excel serial date to ``YYYY-MM-DD``.

    Examples:
        45292 -> "2024-01-01"
    """
    return (_EXCEL_EPOCH + timedelta(days=int(math.floor(serial)))).isoformat()


def normalize_period(value: Any) -> str:
    """Render a period cell as a trimmed string key.

    Dates and Excel serials become ISO dates; integral floats lose their
    ``.0``; everything else is stringified and stripped.
    """
    if value is None:
        return ""
    if isinstance(value, date):
        return value.isoformat()[:10]
    if is_excel_serial(value):
        return excel_serial_to_iso(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()
