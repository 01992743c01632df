"""
Shared fixtures.

Nothing here touches the network or the real data directory:
snapshots live in pytest's tmp_path or in memory, and time comes
from a clock the test controls.
"""

from datetime import datetime, timedelta, timezone

import pytest

from stairbot.config import ChartSettings, get_settings
from stairbot.ledger import Ledger
from stairbot.models.audit import AuditEvent
from stairbot.services import AuditStorageInterface, InMemoryLedgerStorage, LedgerStore


class MutableClock:
    """Clock the test can set and advance."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, moment: datetime) -> None:
        self.current = moment


class RecordingAuditStorage(AuditStorageInterface):
    """Keeps audit events in a list."""

    def __init__(self, fail: bool = False):
        self.events: list[AuditEvent] = []
        self.fail = fail

    async def append_event(self, event: AuditEvent) -> bool:
        if self.fail:
            raise RuntimeError("audit sink down")
        self.events.append(event)
        return True

    async def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        return [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]

    def types(self) -> list[str]:
        return [e.event_type.value for e in self.events]


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Fresh settings per test, pointing at a temp data file."""
    for var in (
        "CHART_DAYS", "CHART_START", "CHART_END",
        "LEDGER_DATA_FILE", "DATA_FILE", "LEDGER_AUDIT_FILE",
        "LEDGER_WRITE_RETRY_ATTEMPTS", "LOG_LEVEL", "DEFAULT_USER_NAME",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("LEDGER_DATA_FILE", str(tmp_path / "data" / "users.json"))
    # Keep a stray .env in the working directory out of the tests
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    """2024-03-10 12:00 UTC, advanceable."""
    return MutableClock(datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger(clock):
    return Ledger(clock=clock)


@pytest.fixture
def memory_storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return RecordingAuditStorage()


@pytest.fixture
def chart_settings():
    return ChartSettings(days=7)


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "store" / "users.json"


@pytest.fixture
def make_store(clock):
    """Build a LedgerStore on the given backend with the test clock."""
    stores = []

    def factory(storage, audit_logger=None):
        store = LedgerStore(storage, audit_logger=audit_logger, clock=clock)
        stores.append(store)
        return store

    return factory
