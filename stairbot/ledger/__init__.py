"""Ledger engine package."""

from stairbot.ledger.ledger import (
    DEFAULT_USER_NAME,
    NAME_MAX_LENGTH,
    NAME_MIN_LENGTH,
    AdjustmentOutcome,
    InsufficientDayBalanceError,
    InvalidAmountError,
    InvalidNameError,
    Ledger,
    LedgerError,
    UserNotFoundError,
    parse_amount,
)
from stairbot.ledger.migration import (
    drop_invalid_entries,
    migrate,
    needs_migration,
    seeded_users,
    snapshot_version,
)

__all__ = [
    "DEFAULT_USER_NAME",
    "NAME_MAX_LENGTH",
    "NAME_MIN_LENGTH",
    "AdjustmentOutcome",
    "InsufficientDayBalanceError",
    "InvalidAmountError",
    "InvalidNameError",
    "Ledger",
    "LedgerError",
    "UserNotFoundError",
    "parse_amount",
    "drop_invalid_entries",
    "migrate",
    "needs_migration",
    "seeded_users",
    "snapshot_version",
]
