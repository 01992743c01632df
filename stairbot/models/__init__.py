"""
Data Models Package

This package contains all Pydantic models used in Stairbot.
All data flowing through the system must conform to these schemas.
"""

from stairbot.models.ledger import (
    SCHEMA_VERSION,
    LedgerSnapshot,
    UserRecord,
)
from stairbot.models.messages import (
    CommandResult,
    InboundMessage,
)
from stairbot.models.reports import (
    DailySeries,
    LeaderboardRow,
    UserSeries,
)
from stairbot.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "SCHEMA_VERSION",
    "LedgerSnapshot",
    "UserRecord",
    # Transport boundary
    "CommandResult",
    "InboundMessage",
    # Reports
    "DailySeries",
    "LeaderboardRow",
    "UserSeries",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
