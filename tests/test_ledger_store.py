"""
Tests for loading and saving the ledger.

Covers the startup paths (missing, corrupt, legacy, current snapshot),
ordering and durability of saves, and the JSON file backend.
"""

import asyncio
import json
import os
from datetime import datetime, timezone

import pytest

from stairbot.audit import AuditLogger
from stairbot.ledger import Ledger
from stairbot.services import (
    InMemoryLedgerStorage,
    JsonFileLedgerStorage,
    StoreCorruptError,
    WriteFailureError,
    read_ledger,
)


def user_totals(snapshot: dict) -> dict:
    return {uid: rec["total"] for uid, rec in snapshot["users"].items()}


class TestLoad:
    """Tests for the startup paths."""

    @pytest.mark.asyncio
    async def test_missing_snapshot_creates_empty_and_persists(self, make_store, memory_storage):
        store = make_store(memory_storage)
        ledger = await store.load()
        await store.flush()

        assert len(ledger) == 0
        saved = memory_storage.snapshot
        assert saved["users"] == {}
        assert saved["schemaVersion"] == 2

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_reinitialized(self, make_store, audit_storage):
        storage = InMemoryLedgerStorage("{not json")
        store = make_store(storage, AuditLogger(audit_storage))

        ledger = await store.load()
        await store.flush()

        assert len(ledger) == 0
        assert storage.snapshot["users"] == {}
        assert "store_recovered" in audit_storage.types()

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_set_aside(self, make_store, audit_storage):
        storage = InMemoryLedgerStorage("{not json")
        store = make_store(storage, AuditLogger(audit_storage))

        await store.load()
        await store.flush()

        assert storage.preserved == {"20240310T120000Z": "{not json"}
        event = audit_storage.events[0]
        assert event.details["backup"] == "memory.corrupt-20240310T120000Z"

    @pytest.mark.asyncio
    async def test_non_object_root_reinitialized(self, make_store):
        storage = InMemoryLedgerStorage("[1, 2, 3]")
        ledger = await make_store(storage).load()
        assert len(ledger) == 0

    @pytest.mark.asyncio
    async def test_unusable_record_shape_reinitialized(self, make_store):
        storage = InMemoryLedgerStorage({
            "users": {"1": {"name": ["A"], "total": 5, "days": {"2024-01-01": 5}}},
            "schemaVersion": 2,
        })
        ledger = await make_store(storage).load()
        assert len(ledger) == 0
        assert len(storage.preserved) == 1

    @pytest.mark.asyncio
    async def test_negative_day_dropped_user_kept(self, make_store):
        storage = InMemoryLedgerStorage({
            "users": {"1": {"name": "A", "total": 5, "days": {"2024-01-01": -5, "2024-01-02": 5}}},
            "schemaVersion": 2,
        })
        ledger = await make_store(storage).load()
        assert ledger.get_record("1").days == {"2024-01-02": 5}
        assert ledger.get_record("1").total == 5

    @pytest.mark.asyncio
    async def test_bad_day_key_dropped_rest_kept(self, make_store, audit_storage):
        """A snapshot tagged "version": 2 with one impossible day key."""
        storage = InMemoryLedgerStorage({
            "users": {
                "1": {"name": "Olena", "total": 500, "days": {"2024-03-01": 500}},
                "2": {"name": "Renat", "total": 5, "days": {"2024-13-45": 5}},
            },
            "version": 2,
        })
        store = make_store(storage, AuditLogger(audit_storage))

        ledger = await store.load()
        await store.flush()

        assert len(ledger) == 2
        assert ledger.get_record("1").days == {"2024-03-01": 500}
        assert ledger.get_record("2").days == {}
        assert ledger.get_record("2").total == 0

        saved = storage.snapshot
        assert user_totals(saved) == {"1": 500, "2": 0}
        assert saved["schemaVersion"] == 2
        assert storage.preserved == {}
        types = audit_storage.types()
        assert "store_recovered" not in types
        assert "total_reconciled" in types
        dropped = audit_storage.events[types.index("entries_dropped")]
        assert dropped.details["entries"] == ["users.2.days.2024-13-45"]

    @pytest.mark.asyncio
    async def test_legacy_snapshot_migrated_and_persisted(self, make_store, clock, audit_storage):
        """Legacy totals land on the day of the migration."""
        clock.set(datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc))
        storage = InMemoryLedgerStorage({"users": {"7": {"name": "X", "total": 40, "days": {}}}})
        store = make_store(storage, AuditLogger(audit_storage))

        ledger = await store.load()
        await store.flush()

        record = ledger.get_record("7")
        assert record.name == "X"
        assert record.days == {"2024-05-01": 40}
        assert record.total == 40

        saved = storage.snapshot
        assert saved["schemaVersion"] == 2
        assert saved["users"]["7"]["days"] == {"2024-05-01": 40}
        assert "store_migrated" in audit_storage.types()

    @pytest.mark.asyncio
    async def test_current_snapshot_loaded_without_write(self, make_store):
        storage = InMemoryLedgerStorage({
            "users": {"42": {"name": "Vadym", "total": 3, "days": {"2024-01-01": 3}}},
            "createdAt": "2024-01-01T00:00:00+00:00",
            "updatedAt": "2024-01-01T00:00:00+00:00",
            "schemaVersion": 2,
        })
        store = make_store(storage)

        ledger = await store.load()
        await store.flush()

        assert ledger.get_record("42").total == 3
        assert storage.writes == []

    @pytest.mark.asyncio
    async def test_drifted_total_reconciled(self, make_store, audit_storage):
        storage = InMemoryLedgerStorage({
            "users": {"42": {"name": "Vadym", "total": 999, "days": {"2024-01-01": 3}}},
            "schemaVersion": 2,
        })
        store = make_store(storage, AuditLogger(audit_storage))

        ledger = await store.load()
        await store.flush()

        assert ledger.get_record("42").total == 3
        assert storage.snapshot["users"]["42"]["total"] == 3
        assert "total_reconciled" in audit_storage.types()


class TestSave:
    """Tests for durable, ordered saves."""

    @pytest.mark.asyncio
    async def test_round_trip(self, make_store, memory_storage, clock):
        store = make_store(memory_storage)
        ledger = await store.load()
        ledger.register("42", "Vadym")
        ledger.add_amount("42", None, 120, "2024-03-01")
        ledger.adjust_day("42", "2024-03-01", -120)
        assert await store.save(ledger) is True

        reloaded = await make_store(memory_storage).load()

        assert reloaded.get_record("42").model_dump() == ledger.get_record("42").model_dump()
        assert reloaded.get_record("42").days == {"2024-03-01": 0}
        assert reloaded.created_at == ledger.created_at

    @pytest.mark.asyncio
    async def test_save_stamps_updated_at(self, make_store, memory_storage, clock):
        store = make_store(memory_storage)
        ledger = await store.load()
        clock.advance(hours=1)
        await store.save(ledger)
        assert ledger.updated_at == clock()

    @pytest.mark.asyncio
    async def test_concurrent_adds_all_persisted(self, make_store, clock):
        """N interleaved add+save calls: the file ends up with every one."""
        storage = InMemoryLedgerStorage(write_delay=0.001)
        store = make_store(storage)
        ledger = await store.load()
        ledger.register("42", "Vadym")

        async def add(n):
            ledger.add_amount("42", None, n)
            await asyncio.sleep(0)
            return await store.save(ledger)

        amounts = list(range(1, 51))
        results = await asyncio.gather(*(add(n) for n in amounts))
        await store.flush()

        assert all(results)
        assert storage.snapshot["users"]["42"]["total"] == sum(amounts)
        # Saves land in order, so totals on disk never go down
        totals = [w["users"]["42"]["total"] for w in storage.writes if "42" in w["users"]]
        assert totals == sorted(totals)

    @pytest.mark.asyncio
    async def test_failed_write_keeps_memory_state(self, make_store, audit_storage):
        storage = InMemoryLedgerStorage()
        store = make_store(storage, AuditLogger(audit_storage))
        ledger = await store.load()
        await store.flush()

        storage.fail_writes = 1
        ledger.add_amount("1", "A", 10)
        assert await store.save(ledger) is False
        assert ledger.get_record("1").total == 10
        assert "save_failed" in audit_storage.types()

        # The next successful save carries the missed change
        ledger.add_amount("1", "A", 5)
        assert await store.save(ledger) is True
        assert storage.snapshot["users"]["1"]["total"] == 15

    @pytest.mark.asyncio
    async def test_close_flushes(self, make_store, memory_storage):
        store = make_store(memory_storage)
        ledger = await store.load()
        ledger.add_amount("1", "A", 10)
        store.save(ledger)
        await store.close()
        assert memory_storage.snapshot["users"]["1"]["total"] == 10


class TestJsonFileStorage:
    """Tests for the JSON file backend."""

    @pytest.mark.asyncio
    async def test_missing_file_reads_none(self, snapshot_path):
        storage = JsonFileLedgerStorage(snapshot_path, retry_attempts=1)
        assert await storage.read_snapshot() is None

    @pytest.mark.asyncio
    async def test_write_creates_parent_and_leaves_no_tmp(self, snapshot_path):
        storage = JsonFileLedgerStorage(snapshot_path, retry_attempts=1)
        await storage.write_snapshot({"users": {"1": {"name": "Вадим"}}, "schemaVersion": 2})

        assert snapshot_path.exists()
        assert not storage.tmp_path.exists()
        text = snapshot_path.read_text(encoding="utf-8")
        assert "Вадим" in text
        assert text.startswith("{\n  ")

    @pytest.mark.asyncio
    async def test_write_replaces_previous(self, snapshot_path):
        storage = JsonFileLedgerStorage(snapshot_path, retry_attempts=1)
        await storage.write_snapshot({"users": {}, "n": 1})
        await storage.write_snapshot({"users": {}, "n": 2})
        assert json.loads(snapshot_path.read_text(encoding="utf-8"))["n"] == 2

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, snapshot_path):
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text("{\"users\": ", encoding="utf-8")
        storage = JsonFileLedgerStorage(snapshot_path, retry_attempts=1)
        with pytest.raises(StoreCorruptError):
            await storage.read_snapshot()

    @pytest.mark.asyncio
    async def test_failed_replace_keeps_old_file(self, snapshot_path, monkeypatch):
        storage = JsonFileLedgerStorage(snapshot_path, retry_attempts=2)
        await storage.write_snapshot({"users": {}, "n": 1})

        calls = []

        def broken_replace(src, dst):
            calls.append(src)
            raise OSError("rename failed")

        monkeypatch.setattr(os, "replace", broken_replace)
        with pytest.raises(WriteFailureError):
            await storage.write_snapshot({"users": {}, "n": 2})

        assert len(calls) == 2
        assert json.loads(snapshot_path.read_text(encoding="utf-8"))["n"] == 1
        assert not storage.tmp_path.exists()

    @pytest.mark.asyncio
    async def test_transient_error_retried(self, snapshot_path, monkeypatch):
        storage = JsonFileLedgerStorage(snapshot_path, retry_attempts=3)
        real_replace = os.replace
        calls = []

        def flaky_replace(src, dst):
            calls.append(src)
            if len(calls) == 1:
                raise OSError("busy")
            return real_replace(src, dst)

        monkeypatch.setattr(os, "replace", flaky_replace)
        assert await storage.write_snapshot({"users": {}, "n": 3}) is True
        assert len(calls) == 2
        assert json.loads(snapshot_path.read_text(encoding="utf-8"))["n"] == 3

    @pytest.mark.asyncio
    async def test_defaults_come_from_settings(self, tmp_path):
        storage = JsonFileLedgerStorage()
        assert storage.path == tmp_path / "data" / "users.json"

    @pytest.mark.asyncio
    async def test_store_on_file_round_trip(self, make_store, snapshot_path):
        storage = JsonFileLedgerStorage(snapshot_path, retry_attempts=1)
        store = make_store(storage)
        ledger = await store.load()
        ledger.register("42", "Vadym")
        ledger.add_amount("42", None, 120, "2024-03-01")
        await store.save(ledger)

        on_disk = json.loads(snapshot_path.read_text(encoding="utf-8"))
        assert user_totals(on_disk) == {"42": 120}
        assert on_disk["users"]["42"]["days"] == {"2024-03-01": 120}

        reloaded = await make_store(JsonFileLedgerStorage(snapshot_path, retry_attempts=1)).load()
        assert isinstance(reloaded, Ledger)
        assert reloaded.get_record("42").total == 120

    @pytest.mark.asyncio
    async def test_store_recovers_corrupt_file(self, make_store, snapshot_path):
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text("garbage", encoding="utf-8")
        store = make_store(JsonFileLedgerStorage(snapshot_path, retry_attempts=1))

        ledger = await store.load()
        await store.flush()

        assert len(ledger) == 0
        assert json.loads(snapshot_path.read_text(encoding="utf-8"))["users"] == {}
        backup = snapshot_path.with_name("users.json.corrupt-20240310T120000Z")
        assert backup.read_text(encoding="utf-8") == "garbage"

    @pytest.mark.asyncio
    async def test_store_keeps_history_around_bad_key(self, make_store, snapshot_path):
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text(json.dumps({
            "users": {
                "1": {"name": "Olena", "total": 500, "days": {"2024-03-01": 500}},
                "2": {"name": "Renat", "total": 5, "days": {"2024-13-45": 5}},
            },
            "version": 2,
        }), encoding="utf-8")
        store = make_store(JsonFileLedgerStorage(snapshot_path, retry_attempts=1))

        ledger = await store.load()
        await store.flush()

        assert len(ledger) == 2
        on_disk = json.loads(snapshot_path.read_text(encoding="utf-8"))
        assert on_disk["users"]["1"]["days"] == {"2024-03-01": 500}
        assert on_disk["users"]["2"]["days"] == {}
        assert list(snapshot_path.parent.glob("*.corrupt-*")) == []

    @pytest.mark.asyncio
    async def test_preserve_missing_file_is_noop(self, snapshot_path):
        storage = JsonFileLedgerStorage(snapshot_path, retry_attempts=1)
        assert await storage.preserve_corrupt("x") is None


class TestReadLedger:
    """The read-only path never touches the file."""

    @pytest.mark.asyncio
    async def test_missing_file_gives_empty_ledger(self, snapshot_path, clock):
        ledger = await read_ledger(JsonFileLedgerStorage(snapshot_path, retry_attempts=1), clock=clock)
        assert len(ledger) == 0
        assert not snapshot_path.exists()
        assert not snapshot_path.parent.exists()

    @pytest.mark.asyncio
    async def test_legacy_and_bad_entries_handled_in_memory(self, snapshot_path, clock):
        snapshot_path.parent.mkdir(parents=True)
        content = json.dumps({
            "users": {
                "7": {"name": "X", "total": 40},
                "2": {"name": "Renat", "total": 5, "days": {"2024-13-45": 5}},
            },
        })
        snapshot_path.write_text(content, encoding="utf-8")

        ledger = await read_ledger(JsonFileLedgerStorage(snapshot_path, retry_attempts=1), clock=clock)

        assert ledger.get_record("7").days == {"2024-03-10": 40}
        assert ledger.get_record("2").total == 0
        assert snapshot_path.read_text(encoding="utf-8") == content
        assert not (snapshot_path.parent / "users.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_corrupt_file_raises_and_stays(self, snapshot_path, clock):
        snapshot_path.parent.mkdir(parents=True)
        snapshot_path.write_text("garbage", encoding="utf-8")
        with pytest.raises(StoreCorruptError):
            await read_ledger(JsonFileLedgerStorage(snapshot_path, retry_attempts=1), clock=clock)
        assert snapshot_path.read_text(encoding="utf-8") == "garbage"
        assert list(snapshot_path.parent.glob("*.corrupt-*")) == []

    @pytest.mark.asyncio
    async def test_invalid_shape_raises(self, clock):
        storage = InMemoryLedgerStorage({"users": {"1": {"name": ["A"]}}, "schemaVersion": 2})
        with pytest.raises(StoreCorruptError):
            await read_ledger(storage, clock=clock)
        assert storage.writes == []
