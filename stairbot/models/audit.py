"""
Audit Models for Stairbot

Every ledger mutation and every storage incident is recorded as an
audit event. This provides:
1. Traceability of who changed which day and by how much
2. Debugging information when the store had to be recovered
3. A way to reconstruct history the snapshot no longer shows

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from stairbot.dates import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # User records
    USER_REGISTERED = "user_registered"
    USER_RENAMED = "user_renamed"
    STAIRS_ADDED = "stairs_added"
    DAY_ADJUSTED = "day_adjusted"
    VALIDATION_REJECTED = "validation_rejected"

    # Persistence
    SNAPSHOT_SAVED = "snapshot_saved"
    SAVE_FAILED = "save_failed"
    STORE_CREATED = "store_created"
    STORE_RECOVERED = "store_recovered"
    STORE_MIGRATED = "store_migrated"
    TOTAL_RECONCILED = "total_reconciled"
    ENTRIES_DROPPED = "entries_dropped"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'user', 'store')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one inbound message)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user message?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_json_line(self) -> str:
        """Serialize as a single JSONL line (no trailing newline)."""
        return json.dumps(
            self.model_dump(mode="json"),
            ensure_ascii=False,
            sort_keys=True,
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.stairs_added("42", "2024-03-01", 120, 120, cid)
    """

    @staticmethod
    def user_registered(
        user_id: str,
        name: str,
        renamed_from: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        if renamed_from:
            return AuditEvent(
                event_type=AuditEventType.USER_RENAMED,
                entity_type="user",
                entity_id=user_id,
                correlation_id=correlation_id,
                description=f"User renamed: {renamed_from} -> {name}",
                details={"name": name, "previous_name": renamed_from},
                is_user_action=True,
            )
        return AuditEvent(
            event_type=AuditEventType.USER_REGISTERED,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"User registered: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def stairs_added(
        user_id: str,
        date_key: str,
        amount: int,
        new_total: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STAIRS_ADDED,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Added {amount} stairs on {date_key}",
            details={
                "date": date_key,
                "amount": amount,
                "total": new_total,
            },
            is_user_action=True,
        )

    @staticmethod
    def day_adjusted(
        user_id: str,
        date_key: str,
        previous: int,
        delta: int,
        new_total: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DAY_ADJUSTED,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Adjusted {date_key} by {delta:+d}",
            details={
                "date": date_key,
                "previous": previous,
                "delta": delta,
                "value": previous + delta,
                "total": new_total,
            },
            is_user_action=True,
        )

    @staticmethod
    def validation_rejected(
        user_id: str,
        command: str,
        error_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"/{command} rejected: {error_type}",
            details={"command": command},
            error_code=error_type,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def snapshot_saved(path: str, user_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_SAVED,
            severity=AuditSeverity.DEBUG,
            entity_type="store",
            entity_id=path,
            description=f"Snapshot written with {user_count} users",
            details={"user_count": user_count},
        )

    @staticmethod
    def save_failed(path: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="store",
            entity_id=path,
            description="Snapshot write failed; state kept in memory",
            error_code="WriteFailure",
            error_message=error_message,
        )

    @staticmethod
    def store_created(path: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_CREATED,
            entity_type="store",
            entity_id=path,
            description="No snapshot found, created an empty ledger",
        )

    @staticmethod
    def store_recovered(
        path: str,
        error_message: str,
        backup: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_RECOVERED,
            severity=AuditSeverity.ERROR,
            entity_type="store",
            entity_id=path,
            description="Snapshot unreadable, reinitialized an empty ledger",
            error_code="StoreCorrupt",
            error_message=error_message,
            details={"backup": backup},
        )

    @staticmethod
    def store_migrated(
        path: str,
        from_version: int,
        to_version: int,
        seeded_users: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_MIGRATED,
            severity=AuditSeverity.WARNING,
            entity_type="store",
            entity_id=path,
            description=f"Snapshot migrated from v{from_version} to v{to_version}",
            details={
                "from_version": from_version,
                "to_version": to_version,
                "seeded_users": seeded_users,
            },
        )

    @staticmethod
    def total_reconciled(user_id: str, stored: int, computed: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOTAL_RECONCILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=user_id,
            description=f"Stored total {stored} did not match day sum {computed}",
            details={"stored": stored, "computed": computed},
        )

    @staticmethod
    def entries_dropped(path: str, entries: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRIES_DROPPED,
            severity=AuditSeverity.WARNING,
            entity_type="store",
            entity_id=path,
            description=f"Dropped {len(entries)} invalid snapshot entries on load",
            details={"entries": entries},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
