# trainer_hub/dates.py
"""
Date and time normalization shared by every module that stores or compares
calendar values.

Dates are stored as ``YYYY-MM-DD`` strings and times as ``HH:MM:SS`` strings.
"""
import logging
import re
from datetime import date, datetime
from typing import Union

from trainer_hub.errors import InvalidDateError, InvalidTimeError

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime, str]

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_24H_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")
TIME_12H_RE = re.compile(r"^(\d{1,2})(?::([0-5]\d))?\s*([AaPp])\.?[Mm]\.?$")

# Tried in order after ISO parsing fails.
FALLBACK_DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%Y/%m/%d",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%a %b %d %Y",
    "%A, %B %d, %Y",
)


# --------------------
# Dates
# --------------------

def parse_canonical_date(value: str) -> date:
    """
    Parse a date string into a calendar date.

    ``YYYY-MM-DD`` is read as a plain calendar date with no timezone shift.
    Anything else goes through ISO datetime parsing and then a short list of
    common human formats. Raises InvalidDateError if nothing yields a valid date.
    """
    if not isinstance(value, str):
        raise InvalidDateError(f"Invalid date: {value!r}")
    text = value.strip()

    if ISO_DATE_RE.match(text):
        try:
            return date.fromisoformat(text)
        except ValueError as e:
            raise InvalidDateError(f"Invalid date: {value}") from e

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    for fmt in FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    raise InvalidDateError(f"Invalid date: {value}")


def to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_canonical_date(value)


def format_for_storage(value: DateLike) -> str:
    """Normalize a date or date string to ``YYYY-MM-DD``."""
    return to_date(value).isoformat()


def same_calendar_day(a: DateLike, b: DateLike) -> bool:
    # Calendar rendering must not blow up on one bad row.
    try:
        return to_date(a) == to_date(b)
    except InvalidDateError as e:
        logger.debug("Date comparison failed: %s", e)
        return False


# --------------------
# Times
# --------------------

def normalize_time(value: str) -> str:
    """
    Validate a 24-hour time and return it as ``HH:MM:SS``.

    Accepts ``H:MM``, ``HH:MM`` and ``HH:MM:SS``.
    """
    match = TIME_24H_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise InvalidTimeError(f"Invalid time: {value!r}")
    hours, minutes, seconds = match.groups()
    return f"{int(hours):02d}:{minutes}:{seconds or '00'}"


def to_24_hour(label: str) -> str:
    """
    Convert a clock label such as ``"5:00 AM"``, ``"2 pm"`` or ``"14:30"``
    to ``HH:MM``.
    """
    if not isinstance(label, str):
        raise InvalidTimeError(f"Invalid time: {label!r}")
    text = label.strip()

    match = TIME_12H_RE.match(text)
    if match:
        hours, minutes, meridiem = match.groups()
        hour = int(hours)
        if not 1 <= hour <= 12:
            raise InvalidTimeError(f"Invalid time: {label!r}")
        hour = hour % 12
        if meridiem.lower() == "p":
            hour += 12
        return f"{hour:02d}:{minutes or '00'}"

    return normalize_time(text)[:5]
