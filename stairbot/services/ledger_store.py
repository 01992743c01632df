"""
Ledger Store

Bridge between the in-memory Ledger and the durable snapshot.

LOAD (once, at startup):
- no snapshot         -> new empty ledger, persisted immediately
- corrupt snapshot    -> logged, set aside as <file>.corrupt-<ts>,
                         new empty ledger persisted
- bad single entries  -> dropped and logged, the rest is kept
- old schema version  -> migrated (pure step), then persisted
- current snapshot    -> used as is (totals reconciled if they drifted)

SAVE (after every mutation):
Goes through the WriteSerializer, so saves hit the backend one at a
time in the order they were issued. Each save serializes the ledger as
it is when its turn comes, so a later save always carries every
mutation an earlier one did.

DESIGN DECISION: Store failures never crash the bot. A failed write
is logged and the in-memory ledger stays authoritative; the next
successful save carries the missed state to disk.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Optional

import structlog
from pydantic import ValidationError

from stairbot import dates
from stairbot.dates import Clock
from stairbot.ledger import (
    DEFAULT_USER_NAME,
    Ledger,
    drop_invalid_entries,
    migrate,
    needs_migration,
    seeded_users,
    snapshot_version,
)
from stairbot.models.ledger import SCHEMA_VERSION, LedgerSnapshot
from stairbot.services.storage.interface import (
    LedgerStorageInterface,
    StoreCorruptError,
    WriteFailureError,
)
from stairbot.services.write_queue import WriteSerializer

if TYPE_CHECKING:
    from stairbot.audit.logger import AuditLogger


logger = structlog.get_logger(__name__)


class LedgerStore:
    """
    Loads the ledger at startup and persists it after every mutation.

    The store owns the snapshot exclusively; nothing else touches
    the storage backend.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        serializer: Optional[WriteSerializer] = None,
        audit_logger: Optional["AuditLogger"] = None,
        clock: Optional[Clock] = None,
        default_name: str = DEFAULT_USER_NAME,
    ):
        """
        Args:
            storage: Snapshot backend
            serializer: Write queue. A private one is created if None.
            audit_logger: Receives store events. If None, only the
                          local structured log is written.
            clock: Time source shared with the loaded Ledger
            default_name: Passed to the Ledger for unnamed users
        """
        self._storage = storage
        self._serializer = serializer or WriteSerializer()
        self._audit_logger = audit_logger
        self._clock = clock or dates.utc_now
        self._default_name = default_name

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    @property
    def serializer(self) -> WriteSerializer:
        return self._serializer

    async def load(self) -> Ledger:
        """
        Load the ledger, creating, recovering or migrating as needed.

        Never raises for storage problems; the worst case is an empty ledger.
        """
        location = self._storage.location

        try:
            raw = await self._storage.read_snapshot()
        except StoreCorruptError as e:
            return await self._reinitialize(str(e))

        if raw is None:
            ledger = self._new_ledger()
            logger.info("ledger_store_created", path=location)
            if self._audit_logger:
                await self._audit_logger.log_store_created(location)
            await self.save(ledger)
            return ledger

        migrated = needs_migration(raw)
        data = raw
        if migrated:
            data = migrate(raw, dates.today(self._clock))
        data, dropped = drop_invalid_entries(data)

        try:
            snapshot = LedgerSnapshot.model_validate(fill_defaults(data, self._clock))
        except ValidationError as e:
            return await self._reinitialize(str(e))

        ledger = Ledger.from_snapshot(
            snapshot,
            clock=self._clock,
            default_name=self._default_name,
        )

        if dropped:
            logger.warning("ledger_entries_dropped", path=location, entries=dropped)
            if self._audit_logger:
                await self._audit_logger.log_entries_dropped(location, dropped)

        reconciled = ledger.reconcile_totals()
        for user_id, stored, computed in reconciled:
            logger.warning(
                "ledger_total_reconciled",
                user_id=user_id,
                stored=stored,
                computed=computed,
            )
            if self._audit_logger:
                await self._audit_logger.log_total_reconciled(user_id, stored, computed)

        if migrated:
            from_version = snapshot_version(raw)
            seeded = seeded_users(raw, data)
            logger.warning(
                "ledger_store_migrated",
                path=location,
                from_version=from_version,
                to_version=SCHEMA_VERSION,
                seeded_users=seeded,
            )
            if self._audit_logger:
                await self._audit_logger.log_store_migrated(
                    location, from_version, SCHEMA_VERSION, seeded,
                )

        if migrated or dropped or reconciled:
            await self.save(ledger)

        logger.info("ledger_loaded", path=location, users=len(ledger))
        return ledger

    def save(self, ledger: Ledger) -> "asyncio.Future[bool]":
        """
        Schedule a durable write of the full ledger.

        Returns a future; await it to know the write (and rename) has
        finished. It resolves to False if the write failed.
        """
        async def write() -> None:
            await self._write(ledger)

        return self._serializer.submit(write, label="ledger_snapshot")

    async def flush(self) -> None:
        """Wait for every scheduled save to finish."""
        await self._serializer.join()

    async def close(self) -> None:
        """Flush pending saves and stop the write queue."""
        await self._serializer.close()

    async def _write(self, ledger: Ledger) -> None:
        ledger.touch()
        snapshot = ledger.to_snapshot().to_json_dict()
        location = self._storage.location

        try:
            await self._storage.write_snapshot(snapshot)
        except WriteFailureError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(location, str(e))
            raise

        if self._audit_logger:
            await self._audit_logger.log_snapshot_saved(location, len(snapshot["users"]))

    async def _reinitialize(self, reason: str) -> Ledger:
        location = self._storage.location
        suffix = dates.now(self._clock).strftime("%Y%m%dT%H%M%SZ")
        backup = await self._storage.preserve_corrupt(suffix)
        logger.error("ledger_store_corrupt", path=location, error=reason, backup=backup)
        if self._audit_logger:
            await self._audit_logger.log_store_recovered(location, reason, backup)

        ledger = self._new_ledger()
        await self.save(ledger)
        return ledger

    def _new_ledger(self) -> Ledger:
        return Ledger(clock=self._clock, default_name=self._default_name)


async def read_ledger(
    storage: LedgerStorageInterface,
    clock: Optional[Clock] = None,
    default_name: str = DEFAULT_USER_NAME,
) -> Ledger:
    """
    Build a Ledger from the stored snapshot without ever writing it.

    For readers running beside the bot (the dashboard). Migration,
    entry dropping and total reconciliation happen in memory only;
    the file stays exactly as the bot left it.

    Raises:
        StoreCorruptError: The snapshot is unreadable or fails validation
    """
    clock = clock or dates.utc_now
    raw = await storage.read_snapshot()
    if raw is None:
        return Ledger(clock=clock, default_name=default_name)

    data = migrate(raw, dates.today(clock)) if needs_migration(raw) else raw
    data, _ = drop_invalid_entries(data)
    try:
        snapshot = LedgerSnapshot.model_validate(fill_defaults(data, clock))
    except ValidationError as e:
        raise StoreCorruptError(str(e)) from e

    ledger = Ledger.from_snapshot(snapshot, clock=clock, default_name=default_name)
    ledger.reconcile_totals()
    return ledger


def fill_defaults(data: dict[str, Any], clock: Clock) -> dict[str, Any]:
    """Missing top-level fields, stamped with the current time."""
    stamp = dates.now(clock).isoformat()
    filled = dict(data)
    filled["users"] = filled.get("users") or {}
    filled["createdAt"] = filled.get("createdAt") or stamp
    filled["updatedAt"] = filled.get("updatedAt") or stamp
    filled.pop("version", None)
    filled.setdefault("schemaVersion", SCHEMA_VERSION)
    return filled
