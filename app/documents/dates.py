"""
Long-form Spanish dates for templates: "05 de marzo de 2024".
"""

import math
import re
from datetime import date, datetime
from typing import Any, Optional

from dateutil import parser as dateutil_parser

SPANISH_MONTHS = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)

DATE_KEY_RE = re.compile(r"date|fecha", re.IGNORECASE)
ISO_DATE_RE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
LONG_DATE_RE = re.compile(r"^(\d{1,2}) de ([a-z]+) de (\d{4})$", re.IGNORECASE)

# Epoch numbers at or above this magnitude are milliseconds (browser clients), below are seconds.
EPOCH_MS_THRESHOLD = 10 ** 11

# Two defaults that differ in day, month and year; dateutil fills whatever the text leaves out from them
PARSE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def is_date_key(key: Any) -> bool:
    return isinstance(key, str) and bool(DATE_KEY_RE.search(key))


def parse_long_date(text: str) -> Optional[date]:
    """Inverse of format_long_date."""
    match = LONG_DATE_RE.match((text or "").strip())
    if not match:
        return None
    month_name = match.group(2).lower()
    if month_name not in SPANISH_MONTHS:
        return None
    try:
        return date(int(match.group(3)), SPANISH_MONTHS.index(month_name) + 1, int(match.group(1)))
    except ValueError:
        return None


def _local_date(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone()
    return value.date()


def _parse_complete(text: str) -> Optional[date]:
    """Free-form date through dateutil, only when the text itself names the day, month and year."""
    try:
        first, second = (dateutil_parser.parse(text, default=default) for default in PARSE_DEFAULTS)
    except (ValueError, OverflowError, TypeError):
        return None
    if first.date() != second.date():
        return None
    return _local_date(first)


def coerce_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return _local_date(value)
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        seconds = value / 1000 if abs(value) >= EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds).date()
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        iso = ISO_DATE_RE.match(trimmed)
        if iso:
            # Calendar date in local time; never routed through UTC
            try:
                return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
            except ValueError:
                return None
        long_form = parse_long_date(trimmed)
        if long_form:
            return long_form
        return _parse_complete(trimmed)
    return None


def format_long_date(value: Any) -> Any:
    """Unparseable strings come back unchanged; None and other unparseable values become ''."""
    if value is None:
        return ""
    parsed = coerce_date(value)
    if parsed is None:
        return value if isinstance(value, str) else ""
    return f"{parsed.day:02d} de {SPANISH_MONTHS[parsed.month - 1]} de {parsed.year}"


def _format_entry(key: Any, value: Any) -> Any:
    if isinstance(value, dict):
        return format_dates_deep(value)
    if isinstance(value, (list, tuple)):
        if is_date_key(key):
            items = [
                format_dates_deep(item) if isinstance(item, (dict, list, tuple)) else format_long_date(item)
                for item in value
            ]
            return type(value)(items)
        return format_dates_deep(value)
    if is_date_key(key):
        return format_long_date(value)
    return value


def format_dates_deep(value: Any) -> Any:
    """Format every date-named key at every depth; other values keep their type and shape."""
    if isinstance(value, dict):
        return {key: _format_entry(key, item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(format_dates_deep(item) for item in value)
    return value
