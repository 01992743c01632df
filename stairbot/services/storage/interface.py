"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the JSON snapshot file today, swap it for something else later
2. Use in-memory storage for testing
3. Keep the ledger and the store decoupled from file handling

The snapshot interface deals in raw dicts, not models: migration has to
see the snapshot BEFORE it is validated against the current schema.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from stairbot.models.audit import AuditEvent


class LedgerStorageInterface(ABC):
    """
    Abstract interface for the ledger snapshot.

    There is exactly one snapshot. Writes replace it as a whole.
    """

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable location of the snapshot (for logs)."""
        pass

    @abstractmethod
    async def read_snapshot(self) -> Optional[dict[str, Any]]:
        """
        Read the current snapshot.

        Returns:
            The raw snapshot dict, or None if no snapshot exists yet

        Raises:
            StoreCorruptError: A snapshot exists but cannot be parsed
        """
        pass

    @abstractmethod
    async def write_snapshot(self, snapshot: dict[str, Any]) -> bool:
        """
        Replace the snapshot.

        Must be atomic: a reader sees either the previous snapshot or
        this one, never a partial write.

        Returns:
            True if written successfully

        Raises:
            WriteFailureError: If the write failed (previous snapshot intact)
        """
        pass

    async def preserve_corrupt(self, suffix: str) -> Optional[str]:
        """
        Keep an unusable snapshot aside before it is replaced.

        Backends that cannot keep a copy return None.

        Returns:
            Location of the preserved copy, or None
        """
        return None


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StoreCorruptError(StorageError):
    """Snapshot exists but is unreadable or malformed."""
    pass


class WriteFailureError(StorageError):
    """Snapshot could not be written; the previous one is still in place."""
    pass
