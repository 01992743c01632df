"""
In-Memory Storage Implementation

Used for tests and dry runs. Keeps the snapshot as a deep-copied dict
so callers can never share state with the "disk".

Failures can be injected to exercise the error paths.
"""

import asyncio
import copy
import json
from typing import Any, Optional, Union

from stairbot.services.storage.interface import (
    LedgerStorageInterface,
    StoreCorruptError,
    WriteFailureError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Snapshot kept in memory.

    Attributes:
        writes: Every snapshot successfully written, in order
        fail_writes: Number of upcoming writes that should fail
        write_delay: Seconds each write sleeps (forces interleaving)
        preserved: Unusable snapshots set aside on recovery, by suffix
    """

    def __init__(
        self,
        initial: Optional[Union[dict[str, Any], str]] = None,
        write_delay: float = 0.0,
    ):
        """
        Args:
            initial: Starting snapshot. A str is treated as raw file
                     content and parsed on read (so it can be corrupt).
        """
        self._raw = initial
        self.writes: list[dict[str, Any]] = []
        self.fail_writes = 0
        self.write_delay = write_delay
        self.preserved: dict[str, Union[dict[str, Any], str]] = {}

    @property
    def location(self) -> str:
        return "memory"

    @property
    def snapshot(self) -> Optional[dict[str, Any]]:
        """Last stored snapshot (deep copy), or None."""
        if isinstance(self._raw, dict):
            return copy.deepcopy(self._raw)
        return None

    async def read_snapshot(self) -> Optional[dict[str, Any]]:
        if self._raw is None:
            return None
        if isinstance(self._raw, dict):
            return copy.deepcopy(self._raw)
        try:
            data = json.loads(self._raw)
        except json.JSONDecodeError as e:
            raise StoreCorruptError(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StoreCorruptError("Snapshot root must be an object")
        return data

    async def write_snapshot(self, snapshot: dict[str, Any]) -> bool:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise WriteFailureError("Injected write failure")
        stored = copy.deepcopy(snapshot)
        self._raw = stored
        self.writes.append(copy.deepcopy(stored))
        return True

    async def preserve_corrupt(self, suffix: str) -> Optional[str]:
        if self._raw is None:
            return None
        self.preserved[suffix] = copy.deepcopy(self._raw)
        return f"memory.corrupt-{suffix}"
