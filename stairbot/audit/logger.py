"""
Audit Logger

DESIGN DECISION: Every ledger mutation and storage incident is logged.
This provides:
1. Complete traceability of who changed what
2. Debugging capability when the store had to be recovered
3. Compliance-style history the snapshot itself does not keep

The audit logger:
- Is async so an optional storage sink does not block the flow
- Gracefully handles failures (doesn't crash the bot if logging fails)
- Supports correlation IDs to trace everything one message caused
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from stairbot.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from stairbot.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route the structured log to stderr at ``level``."""
    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger().setLevel(level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (always)
    2. An audit storage sink (if configured)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("stairbot.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_user_registered(
        self,
        user_id: str,
        name: str,
        renamed_from: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log registration or rename."""
        await self.log(AuditEventBuilder.user_registered(
            user_id=user_id,
            name=name,
            renamed_from=renamed_from,
            correlation_id=correlation_id,
        ))

    async def log_stairs_added(
        self,
        user_id: str,
        date_key: str,
        amount: int,
        new_total: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.stairs_added(
            user_id=user_id,
            date_key=date_key,
            amount=amount,
            new_total=new_total,
            correlation_id=correlation_id,
        ))

    async def log_day_adjusted(
        self,
        user_id: str,
        date_key: str,
        previous: int,
        delta: int,
        new_total: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.day_adjusted(
            user_id=user_id,
            date_key=date_key,
            previous=previous,
            delta=delta,
            new_total=new_total,
            correlation_id=correlation_id,
        ))

    async def log_validation_rejected(
        self,
        user_id: str,
        command: str,
        error: Exception,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a command rejected before any state change."""
        await self.log(AuditEventBuilder.validation_rejected(
            user_id=user_id,
            command=command,
            error_type=type(error).__name__,
            error_message=str(error),
            correlation_id=correlation_id,
        ))

    async def log_snapshot_saved(self, location: str, user_count: int) -> None:
        await self.log(AuditEventBuilder.snapshot_saved(location, user_count))

    async def log_save_failed(self, location: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.save_failed(location, error_message))

    async def log_store_created(self, location: str) -> None:
        await self.log(AuditEventBuilder.store_created(location))

    async def log_store_recovered(
        self,
        location: str,
        error_message: str,
        backup: Optional[str] = None,
    ) -> None:
        """Log that a corrupt snapshot was set aside and replaced."""
        await self.log(AuditEventBuilder.store_recovered(location, error_message, backup))

    async def log_store_migrated(
        self,
        location: str,
        from_version: int,
        to_version: int,
        seeded_users: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.store_migrated(
            location, from_version, to_version, seeded_users,
        ))

    async def log_total_reconciled(self, user_id: str, stored: int, computed: int) -> None:
        await self.log(AuditEventBuilder.total_reconciled(user_id, stored, computed))

    async def log_entries_dropped(self, location: str, entries: list[str]) -> None:
        await self.log(AuditEventBuilder.entries_dropped(location, entries))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this when a new inbound message arrives and pass it
    through everything that message triggers.
    """
    return uuid4()
