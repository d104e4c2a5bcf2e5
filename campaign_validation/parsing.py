"""Value parsing shared by every rule.

Records arrive from CSV and spreadsheet parsers, so the same field can hold a
``date``, an ISO string, ``"05-Jan-25"`` or a US-style ``"01/05/2025"``; and a
number can be ``1000``, ``"1,000"`` or ``"45%"``. Rules call these helpers
instead of parsing inline so every rule agrees on what a value means.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any


_YEAR_TOKEN = re.compile(r"\b(\d{4})\b")

# Tried in order; first match wins.
_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d-%b-%y",
    "%d-%b-%Y",
    "%d %b %Y",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%d.%m.%Y",
)


def is_blank(value: Any) -> bool:
    """True for ``None``, NaN and empty or whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def as_text(value: Any) -> str:
    """Trimmed string form of a value; blanks become ``""``."""
    if is_blank(value):
        return ""
    return str(value).strip()


def normalize(value: Any) -> str:
    """Case-folded, trimmed key used for every name comparison."""
    return as_text(value).casefold()


def parse_number(value: Any) -> float | None:
    """Parse a numeric cell.

    Thousands separators, surrounding whitespace and a trailing ``%`` are
    removed. Booleans, blanks and unparseable text give ``None``.

    Example:
        >>> parse_number("1,250.50")
        1250.5
        >>> parse_number("45%")
        45.0
    """
    if isinstance(value, bool) or is_blank(value):
        return None
    if isinstance(value, int | float):
        return float(value)

    text = str(value).strip().replace(",", "").replace(" ", "")
    if text.endswith("%"):
        text = text[:-1]
    try:
        number = float(text)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_date(value: Any) -> date | None:
    """Parse a date cell into a ``date``.

    Accepts ``date``/``datetime`` objects, ISO dates and timestamps,
    ``DD-Mon-YY`` (two-digit years are 20YY), ``DD-Mon-YYYY``, and slash
    dates read month-first, falling back to day-first when the first part
    cannot be a month.

    Example:
        >>> parse_date("05-Jan-25")
        datetime.date(2025, 1, 5)
        >>> parse_date("31/12/2025")
        datetime.date(2025, 12, 31)
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if is_blank(value):
        return None

    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt).date()
        except ValueError:
            continue
        if fmt == "%d-%b-%y" and parsed.year < 2000:
            parsed = parsed.replace(year=parsed.year + 100)
        return parsed

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def extract_year(value: Any) -> int | None:
    """Return the last standalone four-digit number in ``value``.

    Example:
        >>> extract_year("ABP 2024/2025")
        2025
        >>> extract_year(2026)
        2026
    """
    if is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1000 <= value <= 9999 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and 1000 <= value <= 9999 else None
    matches = _YEAR_TOKEN.findall(str(value))
    if not matches:
        return None
    return int(matches[-1])
