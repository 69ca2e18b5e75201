"""
Source-specific number and date parsing for inbound payloads.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Literal

NumberStyle = Literal["auto", "eu", "us"]

_DMY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_YMD = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_US_GROUPED = re.compile(r"^[+-]?\d{1,3}(,\d{3})+$")


def parse_decimal(value: object, style: NumberStyle = "auto") -> Decimal | None:
    """
    Parse a human-entered amount.

    ``eu``   "1.234,56" -> 1234.56 (dot groups, comma decimal)
    ``us``   "1,234.56" -> 1234.56 (comma groups, dot decimal)
    ``auto`` the right-most separator is the decimal one; a lone comma is
             decimal unless it forms thousands groups ("1,234" -> 1234).
             A lone dot is always decimal, so "1.234" stays 1.234. Callers
             whose source has a known locale must pass ``style``.

    Returns ``None`` for empty or unparseable input. Booleans are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None

    text = str(value).strip().replace(" ", "").replace("\u00a0", "")
    for symbol in ("€", "$", "£"):
        text = text.replace(symbol, "")
    if not text:
        return None

    if style == "eu":
        text = text.replace(".", "").replace(",", ".")
    elif style == "us":
        text = text.replace(",", "")
    else:
        has_dot, has_comma = "." in text, "," in text
        if has_dot and has_comma:
            if text.rfind(",") > text.rfind("."):
                text = text.replace(".", "").replace(",", ".")
            else:
                text = text.replace(",", "")
        elif has_comma:
            if _US_GROUPED.match(text):
                text = text.replace(",", "")
            else:
                text = text.replace(",", ".")

    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def parse_date(value: object, *, default: date | None = None) -> date | None:
    """
    Parse ``DD/MM/YYYY``, ``YYYY-MM-DD`` or an ISO-8601 datetime.

    Falls back to ``default`` when the value is empty or unrecognised.
    """
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    match = _DMY.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return default
    match = _YMD.match(text)
    if match:
        try:
            return date.fromisoformat(text)
        except ValueError:
            return default
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return default
