"""
Date parsing and display for chat exports.

Exports mostly carry dates like "Thursday, September 12, 2013 at 3:50:11 PM UTC",
but the best-effort message shapes can hold anything. Parsing never raises:
a date we cannot read degrades to "no timestamp".
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

UNKNOWN_DATE = "Unknown date"

# Epoch values above this are taken as milliseconds (1e11 seconds is year 5138)
_EPOCH_MILLIS_THRESHOLD = 1e11

_LEADING_WEEKDAY = re.compile(r"^[A-Za-z]+,\s*")
_AT_SEPARATOR = re.compile(r"\s+at\s+")
_TRAILING_UTC = re.compile(r"\s+UTC$")
_EXPORT_DATE = re.compile(
    r"([A-Za-z]+)\s+(\d{1,2}),\s+(\d{4})\s+at\s+(\d{1,2}):(\d{2}):(\d{2})\s+(AM|PM)",
    re.IGNORECASE,
)

_MONTHS = {
    name: index
    for index, names in enumerate(
        [
            ("january", "jan"), ("february", "feb"), ("march", "mar"),
            ("april", "apr"), ("may",), ("june", "jun"), ("july", "jul"),
            ("august", "aug"), ("september", "sep", "sept"),
            ("october", "oct"), ("november", "nov"), ("december", "dec"),
        ],
        start=1,
    )
    for name in names
}


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _try_parse(text: str) -> Optional[datetime]:
    try:
        return _as_utc(date_parser.parse(text))
    except (ValueError, OverflowError):
        return None


def _parse_export_pattern(text: str) -> Optional[datetime]:
    """Build the timestamp field-by-field from the export's literal pattern."""
    match = _EXPORT_DATE.search(text)
    if not match:
        return None

    month_name, day, year, hour, minute, second, ampm = match.groups()
    month = _MONTHS.get(month_name.lower())
    if month is None:
        return None

    hour24 = int(hour)
    if ampm.upper() == "PM" and hour24 != 12:
        hour24 += 12
    if ampm.upper() == "AM" and hour24 == 12:
        hour24 = 0

    try:
        return datetime(
            int(year), month, int(day), hour24, int(minute), int(second),
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


def parse_chat_date(value: Any) -> Optional[datetime]:
    """
    Parse a chat export date permissively.

    Order:
    1. Generic parsing (dateutil)
    2. Strip leading weekday, " at " -> " ", strip trailing " UTC", retry
    3. Explicit "<Month> <D>, <YYYY> at <H>:<MM>:<SS> <AM|PM>" pattern

    Also accepts datetime objects and numeric epochs (seconds or milliseconds).

    Args:
        value: Raw date value from the export

    Returns:
        UTC-aware datetime, or None when the value can't be read
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return _as_utc(value)

    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.warning(f"Could not parse epoch date: {value}")
            return None

    if not isinstance(value, str):
        logger.warning(f"Unsupported date value type: {type(value).__name__}")
        return None

    text = value.strip()

    parsed = _try_parse(text)
    if parsed is not None:
        return parsed

    cleaned = _LEADING_WEEKDAY.sub("", text)
    cleaned = _AT_SEPARATOR.sub(" ", cleaned, count=1)
    cleaned = _TRAILING_UTC.sub("", cleaned)
    parsed = _try_parse(cleaned)
    if parsed is not None:
        return parsed

    parsed = _parse_export_pattern(text)
    if parsed is not None:
        return parsed

    logger.warning(f"Could not parse date format: {value}")
    return None


def format_chat_date(value: Any) -> str:
    """
    Format a timestamp for context output, e.g. "Sep 12, 2013, 03:50 PM" (UTC).

    Strings are parsed first; anything unreadable renders as "Unknown date".
    """
    if value is None:
        return UNKNOWN_DATE

    when = value if isinstance(value, datetime) else parse_chat_date(value)
    if when is None:
        return UNKNOWN_DATE

    when = _as_utc(when)
    return f"{when:%b} {when.day}, {when.year}, {when:%I:%M %p}"
