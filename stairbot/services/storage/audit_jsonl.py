"""
JSONL Audit Storage

One audit event per line, appended in order. The file is never
rewritten; reads scan it from the start.
"""

import asyncio
import json
from pathlib import Path

import structlog
from pydantic import ValidationError

from stairbot.models.audit import AuditEvent
from stairbot.services.storage.interface import AuditStorageInterface, StorageError


logger = structlog.get_logger(__name__)


class JsonlAuditStorage(AuditStorageInterface):
    """Append-only audit trail in a JSONL file."""

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def append_event(self, event: AuditEvent) -> bool:
        """Append one event as a JSON line."""
        line = event.to_json_line()
        try:
            await asyncio.to_thread(self._append_line, line)
        except OSError as e:
            raise StorageError(f"Failed to append audit event: {e}") from e
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = await asyncio.to_thread(self._read_all)
        return [
            e for e in events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = await asyncio.to_thread(self._read_all)
        return list(reversed(events))[:limit]

    def _append_line(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
            fh.flush()

    def _read_all(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []

        events = []
        with self._path.open("r", encoding="utf-8") as fh:
            for line_no, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(AuditEvent.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError):
                    logger.warning(
                        "audit_line_unreadable",
                        path=str(self._path),
                        line=line_no,
                    )
        return events
