"""Calendar day key utilities."""

from stairbot.dates.datekey import (
    Clock,
    DateRange,
    InvalidDateFormatError,
    add_days,
    format_dm,
    is_valid_key,
    last_n_days,
    now,
    parse,
    range_inclusive,
    to_date,
    today,
    utc_now,
)

__all__ = [
    "Clock",
    "DateRange",
    "InvalidDateFormatError",
    "add_days",
    "format_dm",
    "is_valid_key",
    "last_n_days",
    "now",
    "parse",
    "range_inclusive",
    "to_date",
    "today",
    "utc_now",
]
