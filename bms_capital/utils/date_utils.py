"""Date manipulation utilities"""

from datetime import date, datetime
from typing import Tuple, Union


def shift_month(year: int, month: int, months: int) -> Tuple[int, int]:
    """Move a (year, month) pair by whole months, rolling the year as needed"""
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def to_local_date(value: Union[str, date, datetime]) -> date:
    """
    Coerce an activation date to a calendar date using its local components.

    Strings are parsed as ISO-8601; any time or offset part is ignored so the
    calendar day never shifts across timezones.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip()[:10])


def format_iso_date(year: int, month: int, day: int) -> str:
    return f"{year:04d}-{month:02d}-{day:02d}"
