"""
JSON File Storage Implementation

DESIGN DECISION: A single JSON file is the storage backend because:
1. The group is small; the whole ledger fits comfortably in memory
2. No database setup required
3. The file is human-readable and trivially backed up

CRASH SAFETY:
Each write goes to "<file>.tmp" next to the target, is flushed and
fsynced, then renamed over the target with os.replace. A crash at any
point leaves either the old snapshot or the new one on disk, never a
truncated file.

Blocking file calls run in a worker thread (asyncio.to_thread) so the
event loop keeps serving messages while a snapshot is written.
"""

import asyncio
import contextlib
import json
import os
from pathlib import Path
from typing import Any, Optional

import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from stairbot.config import get_settings
from stairbot.services.storage.interface import (
    LedgerStorageInterface,
    StoreCorruptError,
    WriteFailureError,
)


logger = structlog.get_logger(__name__)


class JsonFileLedgerStorage(LedgerStorageInterface):
    """
    Ledger snapshot stored as one pretty-printed JSON file.

    Transient OS errors on write (e.g. a briefly locked file) are
    retried with exponential backoff before giving up.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        retry_attempts: Optional[int] = None,
    ):
        """
        Args:
            path: Snapshot file. Defaults to the configured data file.
            retry_attempts: Attempts per write. Defaults to configuration.
        """
        if path is None or retry_attempts is None:
            settings = get_settings().storage
            path = path if path is not None else settings.data_file
            if retry_attempts is None:
                retry_attempts = settings.write_retry_attempts

        self._path = Path(path)
        self._retrying = Retrying(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(OSError),
            reraise=True,
        )

    @property
    def path(self) -> Path:
        return self._path

    @property
    def tmp_path(self) -> Path:
        """Scratch file used for the atomic write."""
        return self._path.with_name(self._path.name + ".tmp")

    @property
    def location(self) -> str:
        return str(self._path)

    async def read_snapshot(self) -> Optional[dict[str, Any]]:
        """Read and parse the snapshot file."""
        return await asyncio.to_thread(self._read)

    async def preserve_corrupt(self, suffix: str) -> Optional[str]:
        """Rename the snapshot to "<file>.corrupt-<suffix>"."""
        backup = self._path.with_name(f"{self._path.name}.corrupt-{suffix}")
        try:
            moved = await asyncio.to_thread(self._move, backup)
        except OSError:
            logger.warning("snapshot_backup_failed", path=str(self._path), exc_info=True)
            return None
        return str(backup) if moved else None

    async def write_snapshot(self, snapshot: dict[str, Any]) -> bool:
        """Atomically replace the snapshot file."""
        try:
            payload = json.dumps(snapshot, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            raise WriteFailureError(f"Snapshot is not JSON-serializable: {e}") from e

        try:
            await asyncio.to_thread(self._retrying.copy(), self._atomic_write, payload)
        except OSError as e:
            raise WriteFailureError(f"Failed to write {self._path}: {e}") from e

        return True

    def _read(self) -> Optional[dict[str, Any]]:
        if not self._path.exists():
            return None

        try:
            raw = self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StoreCorruptError(f"Cannot read {self._path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreCorruptError(f"Invalid JSON in {self._path}: {e}") from e

        if not isinstance(data, dict):
            raise StoreCorruptError(
                f"Snapshot root must be an object, got {type(data).__name__}"
            )
        return data

    def _move(self, target: Path) -> bool:
        if not self._path.exists():
            return False
        os.replace(self._path, target)
        return True

    def _atomic_write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.tmp_path
        try:
            with tmp.open("w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self._path)
        except OSError:
            logger.warning("snapshot_write_attempt_failed", path=str(self._path), exc_info=True)
            raise
        finally:
            # Only left behind if something failed before the rename
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
