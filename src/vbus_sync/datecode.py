"""
Date code helpers.

A date code is an 8-digit ``YYYYMMDD`` string naming one capture or one
output bucket.
"""

from datetime import datetime, tzinfo

from .errors import ParseError

DATECODE_LENGTH = 8


def is_datecode(text: str) -> bool:
    """Return True if ``text`` is exactly eight ASCII digits."""
    return len(text) == DATECODE_LENGTH and text.isascii() and text.isdigit()


def parse_datecode(datecode: str, tz: tzinfo) -> datetime:
    """
    Parse a date code into midnight of that calendar day in ``tz``.

    Args:
        datecode: ``YYYYMMDD`` string
        tz: Time zone the day is interpreted in

    Returns:
        Timezone-aware datetime at 00:00:00 local time

    Raises:
        ParseError: If the code is not eight digits or not a valid date
    """
    if not is_datecode(datecode):
        raise ParseError(f"Invalid date code {datecode!r}", datecode=datecode)

    value = int(datecode)
    year = value // 10000
    month = (value // 100) % 100
    day = value % 100
    try:
        return datetime(year, month, day, tzinfo=tz)
    except ValueError as e:
        raise ParseError(f"Invalid date code {datecode!r}", datecode=datecode, cause=e) from e


def format_datecode(moment: datetime) -> str:
    """Format the calendar date of ``moment`` (in its own zone) as a date code."""
    return moment.strftime("%Y%m%d")
