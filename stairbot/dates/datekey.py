"""
Calendar Day Keys

A DateKey is a canonical "YYYY-MM-DD" string for one calendar day in UTC.

DESIGN DECISION: Keys are plain strings, not date objects.
They are used directly as JSON object keys in the snapshot, and the
fixed-width zero-padded format means lexicographic order IS
chronological order. Sorting keys never needs parsing.

All "now" lookups go through an injectable clock so tests can pin
the current day.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterator, Optional


Clock = Callable[[], datetime]

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DAY_MONTH_RE = re.compile(r"^\d{2}\.\d{2}$")


class InvalidDateFormatError(ValueError):
    """User-supplied date is neither YYYY-MM-DD nor DD.MM (or is not a real day)."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"Invalid date: {raw!r}. Use YYYY-MM-DD or DD.MM")


def utc_now() -> datetime:
    """Default clock: timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def _to_utc(moment: datetime) -> datetime:
    # Naive datetimes are treated as already being UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def now(clock: Optional[Clock] = None) -> datetime:
    """Current instant from ``clock`` (default system clock), in UTC."""
    return _to_utc((clock or utc_now)())


def today(clock: Optional[Clock] = None) -> str:
    """Key for the current day in UTC."""
    return now(clock).date().isoformat()


def to_date(key: str) -> date:
    """Parse a canonical key back into a date (raises InvalidDateFormatError)."""
    if not ISO_DATE_RE.match(key):
        raise InvalidDateFormatError(key)
    try:
        return date.fromisoformat(key)
    except ValueError:
        raise InvalidDateFormatError(key)


def is_valid_key(key: Optional[str]) -> bool:
    """True if ``key`` is a canonical key for a real calendar day."""
    if not key:
        return False
    try:
        to_date(key)
    except InvalidDateFormatError:
        return False
    return True


def parse(raw: str, clock: Optional[Clock] = None) -> str:
    """
    Parse a user-supplied date into a canonical key.

    Accepts:
        "2024-11-05"  -> "2024-11-05"
        "05.11"       -> "<current UTC year>-11-05"

    Anything else, including impossible days like "13.13" or
    "2024-02-30", raises InvalidDateFormatError.
    """
    text = (raw or "").strip()

    if ISO_DATE_RE.match(text):
        return to_date(text).isoformat()

    if DAY_MONTH_RE.match(text):
        day_str, month_str = text.split(".")
        year = now(clock).year
        try:
            return date(year, int(month_str), int(day_str)).isoformat()
        except ValueError:
            raise InvalidDateFormatError(raw)

    raise InvalidDateFormatError(raw)


def add_days(key: str, n: int) -> str:
    """Shift a key by ``n`` days (negative goes back)."""
    return (to_date(key) + timedelta(days=n)).isoformat()


def format_dm(key: str) -> str:
    """Short "DD.MM" label for a key."""
    _, month, day = key.split("-")
    return f"{day}.{month}"


class DateRange:
    """
    Inclusive range of day keys.

    Iteration is lazy and can be repeated; each ``iter()`` starts over.
    An end before the start gives an empty range.
    """

    def __init__(self, start: str, end: str):
        self.start = to_date(start)
        self.end = to_date(end)

    def __iter__(self) -> Iterator[str]:
        current = self.start
        while current <= self.end:
            yield current.isoformat()
            current += timedelta(days=1)

    def __len__(self) -> int:
        return max(0, (self.end - self.start).days + 1)

    def __repr__(self) -> str:
        return f"DateRange({self.start.isoformat()!r}, {self.end.isoformat()!r})"


def range_inclusive(start: str, end: str) -> DateRange:
    """All keys from ``start`` to ``end`` inclusive."""
    return DateRange(start, end)


def last_n_days(n: int, clock: Optional[Clock] = None) -> DateRange:
    """The ``n`` days ending today (inclusive)."""
    end = today(clock)
    return DateRange(add_days(end, -(n - 1)), end)
