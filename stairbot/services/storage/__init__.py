"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The ledger snapshot lives in a JSON file; tests use the in-memory backend.
"""

from stairbot.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    StorageError,
    StoreCorruptError,
    WriteFailureError,
)
from stairbot.services.storage.json_file import JsonFileLedgerStorage
from stairbot.services.storage.memory import InMemoryLedgerStorage
from stairbot.services.storage.audit_jsonl import JsonlAuditStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "StorageError",
    "StoreCorruptError",
    "WriteFailureError",
    # Implementations
    "InMemoryLedgerStorage",
    "JsonFileLedgerStorage",
    "JsonlAuditStorage",
]
