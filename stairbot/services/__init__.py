"""Services package."""

from stairbot.services.storage import (
    AuditStorageInterface,
    InMemoryLedgerStorage,
    JsonFileLedgerStorage,
    JsonlAuditStorage,
    LedgerStorageInterface,
    StorageError,
    StoreCorruptError,
    WriteFailureError,
)
from stairbot.services.write_queue import WriteSerializer
from stairbot.services.ledger_store import LedgerStore, read_ledger

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "InMemoryLedgerStorage",
    "JsonFileLedgerStorage",
    "JsonlAuditStorage",
    "LedgerStorageInterface",
    "StorageError",
    "StoreCorruptError",
    "WriteFailureError",
    # Persistence
    "LedgerStore",
    "read_ledger",
    "WriteSerializer",
]
