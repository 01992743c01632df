"""
Per-User Stairs Ledger

This is the only place where user records change.

GUARANTEES (after every successful call):
1. record.total == sum(record.days.values())
2. every day value is >= 0
3. a day key, once created, is never removed (even at 0)

Every operation validates its input BEFORE touching state. A rejected
call leaves the ledger exactly as it was.

IMPORTANT: The ledger does no I/O. Persisting a mutation is the
caller's job (see LedgerStore.save).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from stairbot import dates
from stairbot.dates import Clock
from stairbot.models.ledger import SCHEMA_VERSION, LedgerSnapshot, UserRecord


NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 40
DEFAULT_USER_NAME = "unnamed"


class LedgerError(Exception):
    """Base exception for rejected ledger operations."""
    pass


class InvalidNameError(LedgerError):
    """Display name is outside the allowed length."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Name must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters, "
            f"got {len(name)}"
        )


class InvalidAmountError(LedgerError):
    """Amount is not an integer, or not positive where it must be."""

    def __init__(self, value, message: Optional[str] = None):
        self.value = value
        super().__init__(message or f"Invalid amount: {value!r}")


class InsufficientDayBalanceError(LedgerError):
    """Subtraction would drive a day below zero."""

    def __init__(self, date_key: str, current: int, requested: int):
        self.date_key = date_key
        self.current = current
        self.requested = requested
        if current == 0:
            message = f"Nothing recorded on {date_key}, nothing to subtract"
        else:
            message = (
                f"Cannot subtract {requested} from {date_key}, "
                f"only {current} recorded"
            )
        super().__init__(message)


class UserNotFoundError(LedgerError):
    """Operation needs an existing record."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No record for user {user_id!r}")


@dataclass(frozen=True)
class AdjustmentOutcome:
    """Result of :meth:`Ledger.adjust_day`, enough to render "5 -2 = 3"."""

    user_id: str
    date_key: str
    previous: int
    delta: int
    value: int
    total: int


def _require_int(value, *, positive: bool) -> int:
    # bool is an int subclass; True must not count as 1 stair
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(value, f"Amount must be a whole number, got {value!r}")
    if positive and value <= 0:
        raise InvalidAmountError(value, f"Amount must be greater than zero, got {value}")
    return value


def parse_amount(raw: str, *, allow_negative: bool = False) -> int:
    """
    Parse user text into a whole number of stairs.

    "120" -> 120, "+5" -> 5, "-2" -> -2 (only with allow_negative).
    Fractions, words and empty text raise InvalidAmountError.
    """
    text = (raw or "").strip()
    try:
        value = int(text)
    except ValueError:
        raise InvalidAmountError(raw, f"Amount must be a whole number, got {raw!r}")
    return _require_int(value, positive=not allow_negative)


def _validate_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not NAME_MIN_LENGTH <= len(cleaned) <= NAME_MAX_LENGTH:
        raise InvalidNameError(cleaned)
    return cleaned


class Ledger:
    """
    In-memory collection of all user records plus metadata.

    Owned by the process-lifetime context and handed to every operation;
    there is no module-level ledger.
    """

    def __init__(
        self,
        snapshot: Optional[LedgerSnapshot] = None,
        clock: Optional[Clock] = None,
        default_name: str = DEFAULT_USER_NAME,
    ):
        """
        Args:
            snapshot: State to start from. If None, starts empty.
            clock: Returns the current time. Defaults to the system clock.
            default_name: Name for users who log before registering
                          and have no transport name either.
        """
        self._clock = clock or dates.utc_now
        self._default_name = default_name
        self._last_stamp: Optional[datetime] = None

        if snapshot is None:
            stamp = self._now()
            snapshot = LedgerSnapshot(
                created_at=stamp,
                updated_at=stamp,
                schema_version=SCHEMA_VERSION,
            )
        self._state = snapshot.model_copy(deep=True)

    # -- metadata ---------------------------------------------------------

    @property
    def created_at(self) -> datetime:
        return self._state.created_at

    @property
    def updated_at(self) -> datetime:
        return self._state.updated_at

    @property
    def schema_version(self) -> int:
        return self._state.schema_version

    @property
    def clock(self) -> Clock:
        return self._clock

    def today(self) -> str:
        return dates.today(self._clock)

    def touch(self) -> datetime:
        """Stamp the ledger-level ``updated_at`` (done on every save)."""
        stamp = self._now()
        self._state.updated_at = stamp
        return stamp

    def _now(self) -> datetime:
        # Timestamps never go backwards, even if the wall clock does
        stamp = dates.now(self._clock)
        if self._last_stamp is not None and stamp < self._last_stamp:
            stamp = self._last_stamp
        self._last_stamp = stamp
        return stamp

    # -- reads ------------------------------------------------------------

    def get_record(self, user_id: str) -> Optional[UserRecord]:
        """Copy of the user's record, or None."""
        record = self._state.users.get(user_id)
        return record.model_copy(deep=True) if record else None

    def is_registered(self, user_id: str) -> bool:
        record = self._state.users.get(user_id)
        return bool(record and record.name)

    def list_users(self) -> Iterator[UserRecord]:
        """Copies of all records, in no particular order."""
        for record in self._state.users.values():
            yield record.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._state.users)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._state.users

    # -- mutations --------------------------------------------------------

    def register(self, user_id: str, name: str) -> UserRecord:
        """
        Create a record with this name, or rename an existing one.

        Day history is kept on rename.

        Raises:
            InvalidNameError: name (stripped) is not 2-40 characters
        """
        cleaned = _validate_name(name)
        stamp = self._now()

        record = self._state.users.get(user_id)
        if record is None:
            record = UserRecord(id=user_id, name=cleaned, updated_at=stamp)
            self._state.users[user_id] = record
        else:
            record.name = cleaned
            record.updated_at = stamp

        return record.model_copy(deep=True)

    def add_amount(
        self,
        user_id: str,
        fallback_name: Optional[str],
        amount: int,
        date_key: Optional[str] = None,
    ) -> UserRecord:
        """
        Add stairs to one day (today by default).

        Creates the record on first use, named ``fallback_name`` or the
        default name.

        Raises:
            InvalidAmountError: amount is not an int > 0
            InvalidDateFormatError: date_key is not a canonical key
        """
        _require_int(amount, positive=True)
        key = dates.to_date(date_key).isoformat() if date_key else self.today()
        stamp = self._now()

        record = self._state.users.get(user_id)
        if record is None:
            record = UserRecord(
                id=user_id,
                name=(fallback_name or "").strip() or self._default_name,
                updated_at=stamp,
            )
            self._state.users[user_id] = record

        record.days[key] = record.days.get(key, 0) + amount
        record.total = record.days_total()
        record.updated_at = stamp

        return record.model_copy(deep=True)

    def adjust_day(self, user_id: str, date_key: str, delta: int) -> AdjustmentOutcome:
        """
        Apply a signed correction to one day.

        A negative delta may take a day down to exactly 0 but never
        below; the day key stays in the map either way.

        Raises:
            InvalidAmountError: delta is not an int
            InvalidDateFormatError: date_key is not a canonical key
            UserNotFoundError: the user has no record yet
            InsufficientDayBalanceError: the day holds less than -delta
        """
        _require_int(delta, positive=False)
        key = dates.to_date(date_key).isoformat()

        record = self._state.users.get(user_id)
        if record is None:
            raise UserNotFoundError(user_id)

        current = record.days.get(key, 0)
        if delta < 0 and (current == 0 or -delta > current):
            raise InsufficientDayBalanceError(key, current, -delta)

        # The floor is unreachable after the check above
        record.days[key] = max(current + delta, 0)
        record.total = record.days_total()
        record.updated_at = self._now()

        return AdjustmentOutcome(
            user_id=user_id,
            date_key=key,
            previous=current,
            delta=delta,
            value=record.days[key],
            total=record.total,
        )

    # -- snapshots --------------------------------------------------------

    def reconcile_totals(self) -> list[tuple[str, int, int]]:
        """
        Force total == sum(days) for every record.

        Returns (user_id, stored, computed) for each record that was off.
        """
        fixed = []
        for user_id, record in self._state.users.items():
            computed = record.days_total()
            if record.total != computed:
                fixed.append((user_id, record.total, computed))
                record.total = computed
        return fixed

    def to_snapshot(self) -> LedgerSnapshot:
        """Deep copy of the full state, ready to serialize."""
        return self._state.model_copy(deep=True)

    @classmethod
    def from_snapshot(
        cls,
        snapshot: LedgerSnapshot,
        clock: Optional[Clock] = None,
        default_name: str = DEFAULT_USER_NAME,
    ) -> "Ledger":
        return cls(snapshot=snapshot, clock=clock, default_name=default_name)
