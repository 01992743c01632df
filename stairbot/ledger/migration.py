"""
Snapshot Schema Migration

Upgrades raw snapshot dicts (as read from JSON) to the current layout
BEFORE they are validated into models.

Version history:
    0 / missing  totals only, no per-day history
    2            per-day history in "days"

The very first layout tagged itself with a "version" key instead of
"schemaVersion"; both are read.

DESIGN DECISION: Migration is a pure function. It never reads the
clock and never writes files. LedgerStore.load decides when to run
it and persists the result.

drop_invalid_entries runs after migration and removes single entries
the schema would reject (a day key like "2024-13-45"), so one stray
entry never costs the rest of the snapshot.

The v0 -> v2 step is lossy by nature: the old layout has no history,
so a user's whole total is placed on the migration day. That gives
charts a point to draw without inventing a distribution.
"""

import copy
from typing import Any

from stairbot.dates import is_valid_key
from stairbot.models.ledger import SCHEMA_VERSION


def snapshot_version(snapshot: dict[str, Any]) -> int:
    """Schema version of a raw snapshot (0 if untagged)."""
    raw = snapshot.get("schemaVersion", snapshot.get("version"))
    try:
        return int(raw or 0)
    except (TypeError, ValueError):
        return 0


def needs_migration(snapshot: dict[str, Any]) -> bool:
    return snapshot_version(snapshot) < SCHEMA_VERSION


def migrate(snapshot: dict[str, Any], today_key: str) -> dict[str, Any]:
    """
    Return an upgraded copy of ``snapshot``.

    For every user with total > 0 and no day history, seeds
    ``days[today_key] = total``. Every user ends up with a ``days`` map.
    Running it on an already-current snapshot returns an equal copy.

    Args:
        snapshot: Raw snapshot dict (not modified)
        today_key: Day to put legacy totals on

    Returns:
        New dict tagged with the current ``schemaVersion``
    """
    migrated = copy.deepcopy(snapshot)
    if not needs_migration(migrated):
        return migrated

    users = migrated.get("users") or {}
    if not isinstance(users, dict):
        # Malformed; left for schema validation to reject
        migrated["schemaVersion"] = SCHEMA_VERSION
        return migrated

    for record in users.values():
        if not isinstance(record, dict):
            continue
        days = record.get("days") or {}
        total = record.get("total") or 0
        if isinstance(total, int) and total > 0 and not days:
            days = {today_key: total}
        record["days"] = days

    migrated["users"] = users
    migrated.pop("version", None)
    migrated["schemaVersion"] = SCHEMA_VERSION
    return migrated


def seeded_users(before: dict[str, Any], after: dict[str, Any]) -> list[str]:
    """User ids whose history was created by :func:`migrate`."""
    old_users = before.get("users") or {}
    seeded = []
    for user_id, record in (after.get("users") or {}).items():
        old = old_users.get(user_id)
        if isinstance(old, dict) and not old.get("days") and record.get("days"):
            seeded.append(user_id)
    return sorted(seeded)


def drop_invalid_entries(snapshot: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """
    Return a copy of ``snapshot`` without the entries the schema rejects.

    Removes user records that are not objects, day keys that are not
    real calendar days, and day values that are not non-negative
    integers. A malformed ``total`` is replaced by the sum of the
    remaining days; well-formed totals are left for the store to
    reconcile.

    Returns:
        (cleaned copy, path of every dropped or replaced entry)
    """
    cleaned = copy.deepcopy(snapshot)
    users = cleaned.get("users")
    if not isinstance(users, dict):
        return cleaned, []

    dropped = []
    for user_id in list(users):
        record = users[user_id]
        if not isinstance(record, dict):
            del users[user_id]
            dropped.append(f"users.{user_id}")
            continue

        days = record.get("days")
        if not isinstance(days, dict):
            continue
        for key in list(days):
            if not is_valid_key(key) or not _is_count(days[key]):
                del days[key]
                dropped.append(f"users.{user_id}.days.{key}")

        total = record.get("total")
        if total is not None and not _is_count(total):
            record["total"] = sum(days.values())
            dropped.append(f"users.{user_id}.total")

    return cleaned, dropped


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
